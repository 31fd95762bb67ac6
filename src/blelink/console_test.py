from unittest import TestCase
from unittest.mock import patch

from hamcrest import assert_that, contains_exactly, contains_string, instance_of, is_

from blelink import console
from blelink.device import CONNECTED, Device, ServiceSummary
from blelink.transport.base import TransportError
from blelink.transport.simulated import SimulatedPeripheral, SimulatedTransport


class ConsoleTest(TestCase):

    def test_render(self):
        text = console.render((Device('X1', 'U1SMARTLIGHT', CONNECTED, services=ServiceSummary(3, 9)),
                               Device('X2')))
        lines = text.splitlines()
        assert_that(lines[0], contains_string('U1SMARTLIGHT'))
        assert_that(lines[0], contains_string('connected'))
        assert_that(lines[0], contains_string('3 services'))
        assert_that(lines[1], contains_string('X2'))
        assert_that(lines[1], contains_string('disconnected'))

    def test_parse_args(self):
        options = console.parse_args(['--connect', '--hold', '2.5', '--simulate'])
        assert_that(options.connect, is_(True))
        assert_that(options.hold, is_(2.5))
        assert_that(options.simulate, is_(True))

    def test_parse_args_defaults(self):
        options = console.parse_args([])
        assert_that((options.connect, options.hold, options.simulate), is_((False, 0, False)))

    def test_simulated_transport_includes_a_stranger(self):
        transport = console.simulated_transport(['U1SMARTLIGHT'])
        assert_that(transport, instance_of(SimulatedTransport))
        assert_that([p.name for p in transport.peripherals.values()],
                    contains_exactly('U1SMARTLIGHT', 'SOMEONE ELSES WATCH'))

    @patch('blelink.console.settings.load')
    @patch('blelink.console.simulated_transport')
    def test_main_simulated(self, simulated_transport, load):
        simulated_transport.return_value = SimulatedTransport([SimulatedPeripheral('SIM-00', 'U1SMARTLIGHT')])
        with patch('builtins.print') as printed:
            assert_that(console.main(['--simulate', '--connect']), is_(0))
        load.assert_called_once_with()
        output = '\n'.join(str(c[0][0]) for c in printed.call_args_list if c[0])
        assert_that(output, contains_string('connected'))

    @patch('blelink.console.settings.load')
    @patch('blelink.console.simulated_transport')
    def test_main_scan_failure(self, simulated_transport, load):
        simulated_transport.return_value = SimulatedTransport(scan_error=TransportError("radio off"))
        with patch('builtins.print'):
            assert_that(console.main(['--simulate']), is_(1))
