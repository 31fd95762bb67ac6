import threading
from unittest import TestCase
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, calling, greater_than_or_equal_to, is_, none, not_none, raises

from blelink.support.background import AsyncLoop
from blelink.support.debug import debug_timeout


class CountingLoop(AsyncLoop):
    """ counts its steps and can be told to fail the first few """

    def __init__(self, failures=0, **kwargs):
        super().__init__(name='counting', **kwargs)
        self.failures = failures
        self.steps = 0
        self.stepped = threading.Event()
        self.shut_down = threading.Event()

    def loop(self):
        self.steps += 1
        if self.steps <= self.failures:
            raise ValueError("step %d failed" % self.steps)
        self.stepped.set()
        self.stop_event.wait(0.01)

    def shutdown(self):
        self.shut_down.set()


class AsyncLoopTest(TestCase):

    @timeout_decorator.timeout(debug_timeout(5))
    def test_steps_until_stopped_then_shuts_down(self):
        sut = CountingLoop()
        sut.start()
        assert_that(sut.background_thread, is_(not_none()))
        sut.stepped.wait()
        sut.stop()
        assert_that(sut.background_thread, is_(none()))
        assert_that(sut.running(), is_(False))
        assert_that(sut.shut_down.is_set(), is_(True))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_failed_steps_are_logged_and_the_loop_continues(self):
        log = Mock()
        sut = CountingLoop(failures=2, log=log)
        sut.start()
        sut.stepped.wait()
        sut.stop()
        assert_that(log.exception.call_count, is_(2))
        assert_that(sut.steps, greater_than_or_equal_to(3))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_start_twice_uses_one_thread(self):
        sut = CountingLoop()
        sut.start()
        thread = sut.background_thread
        sut.start()
        assert_that(sut.background_thread, is_(thread))
        sut.stop()

    def test_stop_without_start(self):
        sut = CountingLoop()
        sut.stop()
        assert_that(sut.running(), is_(False))

    def test_loop_must_be_implemented(self):
        assert_that(calling(AsyncLoop().loop), raises(NotImplementedError))
