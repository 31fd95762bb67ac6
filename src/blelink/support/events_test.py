import threading
import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, calling, contains_exactly, empty, is_, raises

from blelink.support.events import EventSource


class EventSourceTest(unittest.TestCase):

    def setUp(self):
        self.sut = EventSource()

    def test_starts_without_handlers(self):
        assert_that(self.sut.handlers(), is_(empty()))
        self.sut.fire('nobody listening')

    def test_fires_in_registration_order(self):
        order = []
        self.sut.add(lambda value: order.append(('first', value)))
        self.sut.add(lambda value: order.append(('second', value)))
        self.sut.fire('X1')
        assert_that(order, contains_exactly(('first', 'X1'), ('second', 'X1')))

    def test_passes_positional_and_keyword_arguments(self):
        handler = Mock()
        self.sut.add(handler)
        self.sut.fire('X1', state='connected')
        handler.assert_called_once_with('X1', state='connected')

    def test_removing_unknown_handler_is_ignored(self):
        handler = Mock()
        self.sut.remove(handler)
        self.sut.add(handler)
        self.sut.remove(handler)
        self.sut.remove(handler)
        assert_that(self.sut.handlers(), is_(()))

    def test_handler_may_remove_itself_while_firing(self):
        other = Mock()

        def once(value):
            self.sut.remove(once)

        self.sut.add(once)
        self.sut.add(other)
        self.sut.fire(1)
        self.sut.fire(2)
        other.assert_has_calls([call(1), call(2)])
        assert_that(self.sut.handlers(), is_((other,)))

    def test_handler_errors_reach_the_caller(self):
        after = Mock()
        self.sut.add(Mock(side_effect=ValueError("bad handler")))
        self.sut.add(after)
        assert_that(calling(self.sut.fire).with_args(1), raises(ValueError))
        after.assert_not_called()

    def test_handlers_added_from_other_threads(self):
        handlers = [Mock() for _ in range(20)]
        threads = [threading.Thread(target=self.sut.add, args=(h,)) for h in handlers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert_that(set(self.sut.handlers()), is_(set(handlers)))
