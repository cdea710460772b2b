import unittest
import socket
from collections import namedtuple
from unittest.mock import patch

import psutil

from errors import InternalIPUnresolvable, InvalidDeviceAddress
from netif import resolve_internal_address

snicaddr = namedtuple('snicaddr', ['family', 'address', 'netmask', 'broadcast', 'ptp'])

INTERFACES = {
    'lo': [
        snicaddr(socket.AF_INET, '127.0.0.1', '255.0.0.0', None, None),
        snicaddr(socket.AF_INET6, '::1', 'ffff:ffff:ffff:ffff:ffff:ffff:ffff:ffff', None, None),
    ],
    'eth0': [
        snicaddr(psutil.AF_LINK, '00:11:22:33:44:55', None, 'ff:ff:ff:ff:ff:ff', None),
        snicaddr(socket.AF_INET, '192.168.1.50', '255.255.255.0', '192.168.1.255', None),
        snicaddr(socket.AF_INET6, 'fe80::211:22ff:fe33:4455%eth0', 'ffff:ffff:ffff:ffff::', None, None),
    ],
    'wlan0': [
        snicaddr(socket.AF_INET, '10.0.0.23', '255.255.0.0', None, None),
    ],
    'docker0': [
        snicaddr(socket.AF_INET, '172.17.0.1', None, None, None),
    ],
}

@patch('psutil.net_if_addrs', return_value=INTERFACES)
class TestResolveInternalAddress(unittest.TestCase):
    def test_same_subnet(self, _):
        self.assertEqual(resolve_internal_address("192.168.1.1"), "192.168.1.50")
        self.assertEqual(resolve_internal_address("192.168.1.254"), "192.168.1.50")

    def test_wider_prefix(self, _):
        self.assertEqual(resolve_internal_address("10.0.200.1"), "10.0.0.23")

    def test_no_matching_subnet(self, _):
        for host in ("192.168.2.1", "8.8.8.8", "2001:db8::1"):
            with self.subTest(host=host):
                with self.assertRaises(InternalIPUnresolvable):
                    resolve_internal_address(host)

    def test_interface_without_netmask_is_ignored(self, _):
        with self.assertRaises(InternalIPUnresolvable):
            resolve_internal_address("172.17.0.2")

    def test_ipv6_link_local(self, _):
        self.assertEqual(resolve_internal_address("fe80::1"), "fe80::211:22ff:fe33:4455")
        self.assertEqual(resolve_internal_address("fe80::1%eth0"), "fe80::211:22ff:fe33:4455")

    def test_not_a_literal(self, _):
        for host in ("router.lan", "", None, "192.168.1"):
            with self.subTest(host=host):
                with self.assertRaises(InvalidDeviceAddress):
                    resolve_internal_address(host)

    def test_invalid_address_is_unresolvable_too(self, _):
        with self.assertRaises(InternalIPUnresolvable):
            resolve_internal_address("router.lan")

class TestInterfaceOrder(unittest.TestCase):
    def test_first_match_wins(self):
        overlapping = {
            'eth0': [snicaddr(socket.AF_INET, '192.168.1.50', '255.255.255.0', None, None)],
            'eth1': [snicaddr(socket.AF_INET, '192.168.1.60', '255.255.0.0', None, None)],
        }
        with patch('psutil.net_if_addrs', return_value=overlapping):
            self.assertEqual(resolve_internal_address("192.168.1.1"), "192.168.1.50")

    def test_no_interfaces(self):
        with patch('psutil.net_if_addrs', return_value={}):
            with self.assertRaises(InternalIPUnresolvable):
                resolve_internal_address("192.168.1.1")

if __name__ == '__main__':
    unittest.main()
