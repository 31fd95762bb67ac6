"""
A console front end: scans, optionally connects everything found, and prints the devices each time
they change.
"""
import argparse
import logging
import time

from blelink import settings
from blelink.manager import build_device_manager
from blelink.transport.simulated import SimulatedPeripheral, SimulatedTransport

logger = logging.getLogger(__name__)


def render(devices):
    """
    >>> render(())
    'no devices'
    """
    if not devices:
        return 'no devices'
    lines = []
    for index, device in enumerate(devices):
        services = '' if device.services is None else '  %d services' % device.services.services
        lines.append('%2d %-20s %-20s %-13s%s' % (index, device.display_name, device.id, device.state, services))
    return '\n'.join(lines)


def simulated_transport(names):
    peripherals = [SimulatedPeripheral('SIM-%02d' % i, name) for i, name in enumerate(names)]
    peripherals.append(SimulatedPeripheral('SIM-XX', 'SOMEONE ELSES WATCH'))
    return SimulatedTransport(peripherals, scan_window=1.0)


def parse_args(args=None):
    parser = argparse.ArgumentParser(prog='blelink', description=__doc__)
    parser.add_argument('--connect', action='store_true', help='connect every device found')
    parser.add_argument('--hold', type=float, default=0, help='seconds to stay connected before disconnecting')
    parser.add_argument('--simulate', action='store_true', help='use a simulated radio')
    return parser.parse_args(args)


def print_snapshot(devices):
    print(render(devices))
    print()


def report(error):
    print('!! %s' % error)


def main(args=None):
    options = parse_args(args)
    settings.load()
    logging.basicConfig(level=getattr(logging, settings.log_level),
                        format='%(asctime)s %(levelname)-7s %(name)s: %(message)s')
    transport = simulated_transport(settings.scan_names) if options.simulate else None
    with build_device_manager(transport, configure=False) as manager:
        manager.diagnostics.add(report)
        manager.subscribe(print_snapshot)
        scan = manager.request_scan()
        if scan is None or scan.exception() is not None:
            return 1
        manager.settle()
        if options.connect:
            result = manager.request_connect_all().result()
            if result.failed:
                print('failed to connect: %s' % ', '.join(sorted(result.failed)))
            time.sleep(options.hold)
            manager.request_disconnect_all().result()
        manager.settle()
    return 0
