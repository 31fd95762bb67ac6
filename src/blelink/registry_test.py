import threading
from unittest import TestCase
from unittest.mock import Mock

from hamcrest import assert_that, calling, contains_exactly, equal_to, has_length, instance_of, is_, none, raises

from blelink.device import CONNECTED, CONNECTING, DISCONNECTED, DISCONNECTING, Device, ServiceSummary
from blelink.notifications import DeviceDiscovered
from blelink.registry import DeviceRegistry


class Clock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class DeviceRegistryTest(TestCase):

    def setUp(self):
        self.clock = Clock()
        self.sut = DeviceRegistry(self.clock)
        self.changes = Mock()
        self.transitions = Mock()
        self.sut.changes.add(self.changes)
        self.sut.transitions.add(self.transitions)

    def discover(self, device_id='X1', name='U1SMARTLIGHT'):
        return self.sut.upsert_discovered(device_id, name)

    def test_new_device_is_disconnected(self):
        device = self.discover()
        assert_that(device, is_(Device('X1', 'U1SMARTLIGHT', DISCONNECTED, 100.0)))
        assert_that(self.sut.get('X1'), is_(device))
        assert_that('X1' in self.sut, is_(True))
        self.changes.assert_called_once_with((device,))

    def test_same_discovery_twice_is_idempotent(self):
        n = DeviceDiscovered('X1', 'U1SMARTLIGHT', timestamp=50.0)
        self.sut.upsert_discovered(n.id, n.name, n.timestamp)
        once = self.sut.snapshot()
        self.sut.upsert_discovered(n.id, n.name, n.timestamp)
        assert_that(self.sut.snapshot(), is_(equal_to(once)))
        assert_that(self.sut, has_length(1))
        assert_that(self.changes.call_count, is_(1))

    def test_rediscovery_does_not_regress_state(self):
        self.discover()
        self.sut.set_connection_state('X1', CONNECTING)
        self.sut.set_connection_state('X1', CONNECTED)
        self.clock.now = 200.0
        self.discover()
        assert_that(self.sut.get('X1').state, is_(CONNECTED))
        assert_that(self.sut.get('X1').last_event, is_(200.0))

    def test_rediscovery_updates_name(self):
        self.discover(name='UNIT1 AURA')
        self.discover(name='UNIT1 FARO')
        assert_that(self.sut.get('X1').name, is_('UNIT1 FARO'))
        assert_that(self.changes.call_count, is_(2))

    def test_missing_name_keeps_previous(self):
        self.discover(name='UNIT1 AURA')
        self.discover(name=None)
        assert_that(self.sut.get('X1').name, is_('UNIT1 AURA'))

    def test_stale_discovery_is_ignored(self):
        self.discover()
        assert_that(self.sut.upsert_discovered('X1', 'OTHER', timestamp=10.0), is_(none()))
        assert_that(self.sut.get('X1').name, is_('U1SMARTLIGHT'))

    def test_snapshot_keeps_discovery_order(self):
        self.discover('B')
        self.discover('A')
        self.discover('C')
        self.discover('A')
        snapshot = self.sut.snapshot()
        assert_that(snapshot, instance_of(tuple))
        assert_that([d.id for d in snapshot], is_(['B', 'A', 'C']))

    def test_snapshot_is_not_affected_by_later_writes(self):
        self.discover()
        snapshot = self.sut.snapshot()
        self.sut.set_connection_state('X1', CONNECTING)
        assert_that(snapshot[0].state, is_(DISCONNECTED))

    def test_set_state_unknown_device_is_not_fatal(self):
        with self.assertLogs('blelink.registry', 'WARNING'):
            assert_that(self.sut.set_connection_state('nope', CONNECTED), is_(False))
        self.transitions.assert_not_called()

    def test_set_state_fires_transition(self):
        self.discover()
        self.changes.reset_mock()
        assert_that(self.sut.set_connection_state('X1', CONNECTING), is_(True))
        self.transitions.assert_called_once_with('X1', DISCONNECTED, CONNECTING)
        assert_that(self.changes.call_count, is_(1))

    def test_set_same_state_is_idempotent(self):
        self.discover()
        self.sut.set_connection_state('X1', CONNECTING)
        self.transitions.reset_mock()
        assert_that(self.sut.set_connection_state('X1', CONNECTING), is_(True))
        self.transitions.assert_not_called()

    def test_transition_not_permitted(self):
        self.discover()
        with self.assertLogs('blelink.registry', 'WARNING'):
            assert_that(self.sut.set_connection_state('X1', DISCONNECTING), is_(False))
        assert_that(self.sut.get('X1').state, is_(DISCONNECTED))

    def test_stale_state_write_is_ignored(self):
        self.discover()
        self.sut.set_connection_state('X1', CONNECTING)
        assert_that(self.sut.set_connection_state('X1', DISCONNECTED, timestamp=99.0), is_(False))
        assert_that(self.sut.get('X1').state, is_(CONNECTING))

    def test_newer_state_write_is_applied(self):
        self.discover()
        self.sut.set_connection_state('X1', CONNECTED, timestamp=150.0)
        assert_that(self.sut.get('X1').state, is_(CONNECTED))
        assert_that(self.sut.get('X1').last_event, is_(150.0))

    def test_transition_from_expected_state(self):
        self.discover()
        assert_that(self.sut.transition('X1', (DISCONNECTED,), CONNECTING), is_(True))
        assert_that(self.sut.transition('X1', (DISCONNECTED,), CONNECTING), is_(True))
        assert_that(self.sut.transition('X1', (CONNECTED,), DISCONNECTING), is_(False))
        assert_that(self.sut.get('X1').state, is_(CONNECTING))

    def test_record_services(self):
        self.discover()
        summary = ServiceSummary(3, 9, 0.5)
        assert_that(self.sut.record_services('X1', summary), is_(True))
        assert_that(self.sut.get('X1').services, is_(summary))
        assert_that(self.sut.get('X1').state, is_(DISCONNECTED))

    def test_record_services_unknown_device(self):
        with self.assertLogs('blelink.registry', 'WARNING'):
            assert_that(self.sut.record_services('nope', ServiceSummary(1)), is_(False))

    def test_handlers_see_the_new_snapshot(self):
        self.discover('A')
        self.discover('B')
        self.sut.set_connection_state('B', CONNECTING)
        snapshot = self.changes.call_args[0][0]
        assert_that([d.state for d in snapshot], contains_exactly(DISCONNECTED, CONNECTING))

    def test_handler_errors_propagate_to_writer(self):
        self.changes.side_effect = ValueError()
        assert_that(calling(self.discover), raises(ValueError))
        assert_that(self.sut, has_length(1))

    def test_last_snapshot_delivered_is_current_when_writes_overlap(self):
        self.discover('A')
        self.discover('B')

        def write_b_while_a_is_publishing(device_id, old, new):
            if device_id == 'A':
                self.sut.set_connection_state('B', CONNECTED)

        self.sut.transitions.add(write_b_while_a_is_publishing)
        self.sut.set_connection_state('A', CONNECTED)
        last = self.changes.call_args[0][0]
        assert_that(last, is_(self.sut.snapshot()))
        assert_that([d.state for d in last], contains_exactly(CONNECTED, CONNECTED))

    def test_overlapping_writers_on_threads(self):
        self.discover('A')
        self.discover('B')
        a_written = threading.Event()
        b_published = threading.Event()

        def hold_a(device_id, old, new):
            if device_id == 'A':
                a_written.set()
                b_published.wait(5)

        self.sut.transitions.add(hold_a)
        writer = threading.Thread(target=self.sut.set_connection_state, args=('A', CONNECTED))
        writer.start()
        a_written.wait(5)
        self.sut.set_connection_state('B', CONNECTED)
        b_published.set()
        writer.join(5)
        last = self.changes.call_args[0][0]
        assert_that(last, is_(self.sut.snapshot()))
