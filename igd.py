"""
Opinionated access to a UPnP Internet Gateway Device.

- Only the first router found is used.
- Mappings are symmetric: external port == internal port.
- TCP and UDP are always forwarded together.
- Mappings are permanent (lease 0) and stay until clear() is called.

Discovery is slow; keep the value of Gateway.location() and pass it to load() next time.
"""
import logging
from urllib.parse import urlparse

import ssdp
from errors import InvalidLocation, NoGatewayFound, UPnPError
from netif import resolve_internal_address
from wanconnection import WANIPConnection1, WANPPPConnection1

PROTOCOLS = ("TCP", "UDP")

# Preference order: DSL gateways often expose both and only the PPP one is live.
SERVICE_VARIANTS = (WANPPPConnection1, WANIPConnection1)

def select_client(ppp_clients, ip_clients):
    """
    Picks the first usable control client, preferring the PPP service.
    """
    for clients in (ppp_clients, ip_clients):
        if clients:
            return clients[0]
    return None

def _check_port(port):
    if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
        raise ValueError(f"Port must be in 1-65535, got {port!r}")

class Gateway:
    """
    Handle to one WAN connection service on one router.
    Holds no sockets or background tasks; every call is a fresh request.
    """
    def __init__(self, client):
        self._client = client

    def __repr__(self):
        return f"<Gateway {self._client.SERVICE_TYPE} at {self.location()}>"

    @property
    def client(self):
        return self._client

    async def external_ip(self):
        """Returns the router's external address exactly as it reports it."""
        return await self._client.get_external_ip_address()

    async def forward(self, port, description=""):
        """
        Maps port on the router to the same port on this host, for TCP then UDP.
        Stops at the first failure and leaves whatever was already applied.
        """
        _check_port(port)
        internal_ip = resolve_internal_address(self._client.service_client.base_host)

        for protocol in PROTOCOLS:
            await self._client.add_port_mapping("", port, protocol, port, internal_ip, True, description, 0)
        logging.info(f"UPnP: Port {port} mapped successfully on {internal_ip}")

    async def clear(self, port):
        """Removes the TCP then UDP mapping for port."""
        _check_port(port)
        for protocol in PROTOCOLS:
            await self._client.delete_port_mapping("", port, protocol)
        logging.info(f"UPnP: Port {port} unmapped")

    def location(self):
        """URL of the router's description document, for load()."""
        return self._client.service_client.location

    @property
    def control_url(self):
        """Control endpoint the actions are sent to."""
        return self._client.service_client.control_url

async def discover(timeout=ssdp.SEARCH_TIMEOUT):
    """
    Searches the local network and returns a Gateway for the first router that answers.
    Every call searches again; nothing is cached between calls.
    """
    found = {}
    for variant in SERVICE_VARIANTS:
        found[variant] = await variant.discover(timeout=timeout)
        if found[variant]:
            break

    client = select_client(found.get(WANPPPConnection1), found.get(WANIPConnection1))
    if client is None:
        logging.warning("UPnP: No Gateway found.")
        raise NoGatewayFound("no UPnP-enabled gateway found")

    logging.info(f"UPnP: Router found at {client.service_client.location}")
    return Gateway(client)

async def load(location):
    """
    Connects to the router described at location (see Gateway.location) without searching.
    """
    try:
        parsed = urlparse(location)
        parsed.port # raises ValueError for a malformed port
    except (TypeError, ValueError, AttributeError) as e:
        raise InvalidLocation(f"Invalid gateway location {location!r}") from e
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        raise InvalidLocation(f"Invalid gateway location {location!r}")

    found = {}
    for variant in SERVICE_VARIANTS:
        try:
            found[variant] = await variant.from_location(location)
        except UPnPError as e:
            logging.debug(f"UPnP: {variant.__name__} not available at {location}: {e}")
            found[variant] = []
        if found[variant]:
            break

    client = select_client(found.get(WANPPPConnection1), found.get(WANIPConnection1))
    if client is None:
        raise NoGatewayFound(f"no UPnP-enabled gateway found at URL {location}")
    return Gateway(client)
