import ipaddress
import logging
import socket

import psutil

from errors import InternalIPUnresolvable, InvalidDeviceAddress

def _strip_zone(addr):
    # fe80::1%eth0 -> fe80::1
    return addr.split('%', 1)[0]

def _interface_network(addr, netmask):
    """
    Builds the network an interface address lives on.
    psutil reports IPv6 netmasks in address form, which ipaddress won't take for v6, so count the bits.
    """
    mask = ipaddress.ip_address(_strip_zone(netmask))
    prefix = bin(int(mask)).count('1')
    return ipaddress.ip_interface(f"{_strip_zone(addr)}/{prefix}").network

def resolve_internal_address(device_base_host):
    """
    Returns the local address that shares a subnet with the router at device_base_host.
    No default-route guessing: a mapping pointed at the wrong host is worse than an error.
    """
    try:
        device_ip = ipaddress.ip_address(_strip_zone(device_base_host or ""))
    except ValueError as e:
        raise InvalidDeviceAddress(f"Router's base host {device_base_host!r} is not an IP address") from e

    for iface, addrs in psutil.net_if_addrs().items():
        for snic in addrs:
            if snic.family not in (socket.AF_INET, socket.AF_INET6) or not snic.netmask:
                continue
            try:
                network = _interface_network(snic.address, snic.netmask)
            except ValueError:
                continue
            if network.version != device_ip.version:
                continue
            if device_ip in network:
                local_ip = _strip_zone(snic.address)
                logging.debug(f"UPnP: {device_ip} is on {iface} ({network}), using {local_ip}")
                return local_ip

    raise InternalIPUnresolvable(f"No local interface shares a subnet with {device_ip}")
