import asyncio
import logging

import soap
import ssdp
from description import fetch_root_device
from errors import DescriptionError

class ServiceClient:
    """
    One service instance on one root device.
    """
    def __init__(self, root_device, service):
        self.root_device = root_device
        self.service = service

    @property
    def location(self):
        return self.root_device.location

    @property
    def base_host(self):
        return self.root_device.base_host

    @property
    def control_url(self):
        return self.service.control_url

class WANConnectionClient:
    """
    Control client for a WAN connection service.
    Subclasses only pick the service type; the action set is shared by both variants.
    """
    SERVICE_TYPE = None

    def __init__(self, service_client):
        self.service_client = service_client

    def __repr__(self):
        return f"<{type(self).__name__} {self.service_client.control_url}>"

    async def _perform(self, action, arguments):
        return await soap.perform_action(
            self.service_client.control_url, self.SERVICE_TYPE, action, arguments
        )

    async def get_external_ip_address(self):
        response = await self._perform('GetExternalIPAddress', [])
        return response.get('NewExternalIPAddress', "")

    async def add_port_mapping(self, remote_host, external_port, protocol, internal_port,
                               internal_client, enabled, description, lease_duration):
        await self._perform('AddPortMapping', [
            ('NewRemoteHost', remote_host),
            ('NewExternalPort', external_port),
            ('NewProtocol', protocol),
            ('NewInternalPort', internal_port),
            ('NewInternalClient', internal_client),
            ('NewEnabled', enabled),
            ('NewPortMappingDescription', description),
            ('NewLeaseDuration', lease_duration),
        ])

    async def delete_port_mapping(self, remote_host, external_port, protocol):
        await self._perform('DeletePortMapping', [
            ('NewRemoteHost', remote_host),
            ('NewExternalPort', external_port),
            ('NewProtocol', protocol),
        ])

    @classmethod
    def _clients_for(cls, root_device):
        return [cls(ServiceClient(root_device, svc)) for svc in root_device.find_services(cls.SERVICE_TYPE)]

    @classmethod
    async def from_location(cls, location):
        """
        Builds clients for every matching service described at location, without searching.
        """
        root_device = await fetch_root_device(location)
        return cls._clients_for(root_device)

    @classmethod
    async def discover(cls, timeout=ssdp.SEARCH_TIMEOUT):
        """
        Searches the network for cls.SERVICE_TYPE and returns a client per service found,
        in the order the devices answered. Devices whose description can't be read are skipped.
        """
        locations = await ssdp.search(cls.SERVICE_TYPE, timeout=timeout)
        results = await asyncio.gather(
            *(fetch_root_device(loc) for loc in locations), return_exceptions=True
        )

        clients = []
        for location, result in zip(locations, results):
            if isinstance(result, DescriptionError):
                logging.debug(f"UPnP: Skipping {location}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            clients.extend(cls._clients_for(result))
        return clients

class WANIPConnection1(WANConnectionClient):
    SERVICE_TYPE = "urn:schemas-upnp-org:service:WANIPConnection:1"

class WANPPPConnection1(WANConnectionClient):
    SERVICE_TYPE = "urn:schemas-upnp-org:service:WANPPPConnection:1"
