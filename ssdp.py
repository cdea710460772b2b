import asyncio
import socket
import logging

# Constants for SSDP
SSDP_ADDR = "239.255.255.250"
SSDP_PORT = 1900
SSDP_MX = 2
SEARCH_TIMEOUT = SSDP_MX + 1

def build_msearch(search_target, mx=SSDP_MX):
    return (
        "M-SEARCH * HTTP/1.1\r\n"
        f"HOST: {SSDP_ADDR}:{SSDP_PORT}\r\n"
        'MAN: "ssdp:discover"\r\n'
        f"MX: {mx}\r\n"
        f"ST: {search_target}\r\n"
        "\r\n"
    ).encode()

def parse_response(data):
    """
    Parses an M-SEARCH reply into a dict of lower-cased headers.
    Returns None for anything that isn't an HTTP 200 reply (e.g. other hosts' M-SEARCH or NOTIFY).
    """
    lines = data.decode('utf-8', errors='ignore').split("\r\n")
    status = lines[0].split(None, 2)
    if len(status) < 2 or not status[0].upper().startswith("HTTP/") or status[1] != "200":
        return None

    headers = {}
    for line in lines[1:]:
        if ":" in line:
            key, value = line.split(":", 1)
            headers[key.strip().lower()] = value.strip()
    return headers

class SearchProtocol(asyncio.DatagramProtocol):
    """
    Collects M-SEARCH replies for one search.
    Each search owns its protocol and socket, so concurrent searches never share state.
    """
    def __init__(self, search_target):
        self.search_target = search_target
        self.locations = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        headers = parse_response(data)
        if headers is None:
            return

        st = headers.get('st')
        if st and st != self.search_target:
            logging.debug(f"UPnP: Ignoring reply for {st} from {addr[0]}")
            return

        location = headers.get('location')
        if not location:
            logging.debug(f"UPnP: Reply from {addr[0]} has no LOCATION")
            return

        if location not in self.locations:
            self.locations.append(location)

    def error_received(self, exc):
        logging.debug(f"UPnP: SSDP socket error: {exc}")

async def search(search_target, timeout=SEARCH_TIMEOUT):
    """
    Multicasts an M-SEARCH for search_target and returns the LOCATION urls of
    every device that answered within timeout, in order of arrival.
    """
    loop = asyncio.get_running_loop()
    request = build_msearch(search_target)

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
        sock.bind(('0.0.0.0', 0)) # Bind to ephemeral port
        sock.setblocking(False)
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: SearchProtocol(search_target), sock=sock
        )
    except OSError as e:
        sock.close()
        logging.warning(f"UPnP: Could not open SSDP socket: {e}")
        return []
    except BaseException:
        sock.close()
        raise

    try:
        logging.info(f"UPnP: Sending SSDP discovery for {search_target}...")
        transport.sendto(request, (SSDP_ADDR, SSDP_PORT))
        await asyncio.sleep(timeout)
    finally:
        transport.close()

    logging.debug(f"UPnP: {len(protocol.locations)} device(s) answered for {search_target}")
    return list(protocol.locations)
