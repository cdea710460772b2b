import asyncio
import logging
from urllib.parse import urljoin, urlparse

import aiohttp
import defusedxml
import defusedxml.ElementTree as ET

from errors import DescriptionError

DEVICE_NS = "urn:schemas-upnp-org:device-1-0"
HTTP_TIMEOUT = 5

def _local_name(tag):
    return tag.rsplit('}', 1)[-1]

def _child_text(elem, name):
    # Namespace-agnostic: some routers omit the device-1-0 namespace entirely.
    for child in elem:
        if _local_name(child.tag) == name:
            return (child.text or "").strip()
    return None

def _child(elem, name):
    for child in elem:
        if _local_name(child.tag) == name:
            return child
    return None

class Service:
    def __init__(self, device, service_type, service_id, control_url, scpd_url, event_sub_url):
        self.device = device
        self.service_type = service_type
        self.service_id = service_id
        self.control_url = control_url
        self.scpd_url = scpd_url
        self.event_sub_url = event_sub_url

    def __repr__(self):
        return f"<Service {self.service_type} at {self.control_url}>"

class Device:
    def __init__(self, device_type, friendly_name, udn):
        self.device_type = device_type
        self.friendly_name = friendly_name
        self.udn = udn
        self.services = []
        self.devices = []

class RootDevice:
    """
    A parsed device description document.
    url_base is the <URLBase> element when the router sends one, otherwise the
    url the description was fetched from.
    """
    def __init__(self, location, url_base, device):
        self.location = location
        self.url_base = url_base
        self.device = device

    @property
    def base_host(self):
        return urlparse(self.url_base).hostname

    @property
    def devices(self):
        """Flattened device tree, root first, in document order."""
        result = []
        stack = [self.device]
        while stack:
            dev = stack.pop(0)
            result.append(dev)
            stack[0:0] = dev.devices
        return result

    def find_services(self, service_type):
        return [
            svc for dev in self.devices for svc in dev.services
            if svc.service_type == service_type
        ]

def _parse_device(elem, url_base):
    device = Device(
        _child_text(elem, 'deviceType'),
        _child_text(elem, 'friendlyName'),
        _child_text(elem, 'UDN'),
    )

    service_list = _child(elem, 'serviceList')
    if service_list is not None:
        for svc in service_list:
            if _local_name(svc.tag) != 'service':
                continue
            control_path = _child_text(svc, 'controlURL')
            if not control_path:
                continue
            device.services.append(Service(
                device,
                _child_text(svc, 'serviceType'),
                _child_text(svc, 'serviceId'),
                urljoin(url_base, control_path),
                urljoin(url_base, _child_text(svc, 'SCPDURL') or ""),
                urljoin(url_base, _child_text(svc, 'eventSubURL') or ""),
            ))

    device_list = _child(elem, 'deviceList')
    if device_list is not None:
        for sub in device_list:
            if _local_name(sub.tag) == 'device':
                device.devices.append(_parse_device(sub, url_base))

    return device

def parse_description(xml_content, location):
    try:
        root = ET.fromstring(xml_content)
    except (ET.ParseError, defusedxml.DefusedXmlException) as e:
        raise DescriptionError(f"Malformed device description at {location}: {e}") from e

    url_base = _child_text(root, 'URLBase') or location
    device_elem = _child(root, 'device')
    if device_elem is None:
        raise DescriptionError(f"No root device in description at {location}")

    return RootDevice(location, url_base, _parse_device(device_elem, url_base))

async def fetch_root_device(location, timeout=HTTP_TIMEOUT):
    """
    Fetches and parses the device description document at location.
    """
    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(location, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
                if resp.status != 200:
                    raise DescriptionError(f"Failed to fetch router XML: {resp.status}")
                xml_content = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise DescriptionError(f"Could not fetch {location}: {e!r}") from e

    logging.debug(f"UPnP: Fetched description from {location} ({len(xml_content)} bytes)")
    return parse_description(xml_content, location)
