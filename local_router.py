import http.server
import socketserver
import threading
import sys

import defusedxml.ElementTree as ET

WANIP = "urn:schemas-upnp-org:service:WANIPConnection:1"
WANPPP = "urn:schemas-upnp-org:service:WANPPPConnection:1"
SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"

CONTROL_PATHS = {
    WANIP: "/ctl/IPConn",
    WANPPP: "/ctl/PPPConn",
}

DESCRIPTION_TEMPLATE = """<?xml version="1.0"?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
<specVersion><major>1</major><minor>0</minor></specVersion>
<URLBase>{url_base}</URLBase>
<device>
<deviceType>urn:schemas-upnp-org:device:InternetGatewayDevice:1</deviceType>
<friendlyName>Simulated Router</friendlyName>
<UDN>uuid:sim-igd</UDN>
<serviceList>
<service>
<serviceType>urn:schemas-upnp-org:service:Layer3Forwarding:1</serviceType>
<serviceId>urn:upnp-org:serviceId:L3Forwarding1</serviceId>
<controlURL>/ctl/L3F</controlURL>
<eventSubURL>/evt/L3F</eventSubURL>
<SCPDURL>/L3F.xml</SCPDURL>
</service>
</serviceList>
<deviceList>
<device>
<deviceType>urn:schemas-upnp-org:device:WANDevice:1</deviceType>
<friendlyName>WANDevice</friendlyName>
<UDN>uuid:sim-wan</UDN>
<deviceList>
<device>
<deviceType>urn:schemas-upnp-org:device:WANConnectionDevice:1</deviceType>
<friendlyName>WANConnectionDevice</friendlyName>
<UDN>uuid:sim-wanconn</UDN>
<serviceList>{services}</serviceList>
</device>
</deviceList>
</device>
</deviceList>
</device>
</root>"""

SERVICE_TEMPLATE = """
<service>
<serviceType>{service_type}</serviceType>
<serviceId>urn:upnp-org:serviceId:{service_id}</serviceId>
<controlURL>{control_url}</controlURL>
<eventSubURL>/evt/{service_id}</eventSubURL>
<SCPDURL>/{service_id}.xml</SCPDURL>
</service>"""

RESPONSE_TEMPLATE = (
    '<?xml version="1.0"?>'
    f'<s:Envelope xmlns:s="{SOAP_ENV_NS}" s:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
    '<s:Body><u:{action}Response xmlns:u="{service_type}">{params}</u:{action}Response></s:Body>'
    '</s:Envelope>'
)

FAULT_TEMPLATE = (
    '<?xml version="1.0"?>'
    f'<s:Envelope xmlns:s="{SOAP_ENV_NS}" s:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
    '<s:Body><s:Fault><faultcode>s:Client</faultcode><faultstring>UPnPError</faultstring>'
    '<detail><UPnPError xmlns="urn:schemas-upnp-org:control-1-0">'
    '<errorCode>{code}</errorCode><errorDescription>{description}</errorDescription>'
    '</UPnPError></detail></s:Fault></s:Body></s:Envelope>'
)

class RouterHandler(http.server.BaseHTTPRequestHandler):
    def do_GET(self):
        router = self.server.router
        if self.path != "/rootDesc.xml":
            self.send_error(404)
            return
        self._reply(200, router.description().encode())

    def do_POST(self):
        router = self.server.router
        service_type = None
        for st, path in CONTROL_PATHS.items():
            if self.path == path and st in router.service_types:
                service_type = st
        if service_type is None:
            self.send_error(404)
            return

        length = int(self.headers.get('Content-Length', 0))
        body = self.rfile.read(length)
        soap_action = self.headers.get('SOAPAction', '').strip('"')
        action_ns, _, action = soap_action.partition('#')

        if action_ns != service_type:
            self._fault(401, "Invalid Action")
            return

        try:
            args = self._parse_args(body, action)
        except Exception:
            self._fault(402, "Invalid Args")
            return

        status, payload = router.handle_action(action, args)
        if status != 200:
            self._fault(*payload)
            return

        params = "".join(f"<{k}>{v}</{k}>" for k, v in payload)
        xml = RESPONSE_TEMPLATE.format(action=action, service_type=service_type, params=params)
        self._reply(200, xml.encode())

    def _parse_args(self, body, action):
        root = ET.fromstring(body)
        body_elem = root.find(f"{{{SOAP_ENV_NS}}}Body")
        for elem in body_elem:
            if elem.tag.rsplit('}', 1)[-1] == action:
                return {child.tag.rsplit('}', 1)[-1]: (child.text or "") for child in elem}
        raise ValueError("no action element")

    def _fault(self, code, description):
        xml = FAULT_TEMPLATE.format(code=code, description=description)
        self._reply(500, xml.encode())

    def _reply(self, status, data):
        self.send_response(status)
        self.send_header("Content-Type", 'text/xml; charset="utf-8"')
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format, *args):
        return # Silence standard logs

class SsdpHandler(socketserver.BaseRequestHandler):
    def handle(self):
        data, sock = self.request
        router = self.server.router
        text = data.decode('utf-8', errors='ignore')
        if not text.startswith("M-SEARCH"):
            return

        st = None
        for line in text.split("\r\n")[1:]:
            if line.lower().startswith("st:"):
                st = line.split(":", 1)[1].strip()

        with router.lock:
            router.searches += 1

        if st not in router.service_types and st != "ssdp:all":
            return

        for service_type in router.service_types:
            if st != "ssdp:all" and st != service_type:
                continue
            reply = (
                "HTTP/1.1 200 OK\r\n"
                "CACHE-CONTROL: max-age=120\r\n"
                "EXT:\r\n"
                f"LOCATION: {router.location}\r\n"
                "SERVER: Simulated/1.0 UPnP/1.0 IGD/1.0\r\n"
                f"ST: {service_type}\r\n"
                f"USN: uuid:sim-wanconn::{service_type}\r\n"
                "\r\n"
            )
            sock.sendto(reply.encode(), self.client_address)

class ThreadingUDPServer(socketserver.ThreadingMixIn, socketserver.UDPServer):
    daemon_threads = True

class SimulatedRouter:
    """
    In-process Internet Gateway Device on loopback: description + SOAP control over
    HTTP and an SSDP responder over unicast UDP.
    Port mappings live in self.mappings keyed by (external_port, protocol).
    """
    def __init__(self, service_types=(WANIP,), external_ip="203.0.113.7", url_base=None,
                 host="127.0.0.1"):
        self.service_types = tuple(service_types)
        self.external_ip = external_ip
        self.host = host
        self._url_base = url_base
        self.mappings = {}
        self.faults = {} # (action, protocol) -> (code, description)
        self.raw_description = None # served verbatim instead of the generated document
        self.calls = []
        self.searches = 0
        self.lock = threading.Lock()

        self.http = http.server.ThreadingHTTPServer((host, 0), RouterHandler)
        self.http.router = self
        self.ssdp = ThreadingUDPServer((host, 0), SsdpHandler)
        self.ssdp.router = self
        self._threads = []

    @property
    def http_port(self):
        return self.http.server_address[1]

    @property
    def ssdp_port(self):
        return self.ssdp.server_address[1]

    @property
    def location(self):
        return f"http://{self.host}:{self.http_port}/rootDesc.xml"

    @property
    def url_base(self):
        return self._url_base or f"http://{self.host}:{self.http_port}/"

    def description(self):
        if self.raw_description is not None:
            return self.raw_description
        services = "".join(
            SERVICE_TEMPLATE.format(
                service_type=st,
                service_id="WANIPConn1" if st == WANIP else "WANPPPConn1",
                # Absolute so control still reaches loopback when URLBase points elsewhere
                control_url=f"http://{self.host}:{self.http_port}{CONTROL_PATHS[st]}",
            )
            for st in self.service_types
        )
        return DESCRIPTION_TEMPLATE.format(url_base=self.url_base, services=services)

    def handle_action(self, action, args):
        protocol = args.get('NewProtocol')
        with self.lock:
            self.calls.append((action, protocol))
            fault = self.faults.get((action, protocol)) or self.faults.get((action, None))
            if fault:
                return 500, fault

            if action == 'GetExternalIPAddress':
                return 200, [('NewExternalIPAddress', self.external_ip)]

            if action == 'AddPortMapping':
                key = (int(args['NewExternalPort']), protocol)
                entry = {
                    'internal_client': args['NewInternalClient'],
                    'internal_port': int(args['NewInternalPort']),
                    'description': args['NewPortMappingDescription'],
                    'enabled': args['NewEnabled'] == '1',
                    'lease': int(args['NewLeaseDuration']),
                }
                existing = self.mappings.get(key)
                if existing and existing['internal_client'] != entry['internal_client']:
                    return 500, (718, "ConflictInMappingEntry")
                self.mappings[key] = entry
                return 200, []

            if action == 'DeletePortMapping':
                key = (int(args['NewExternalPort']), protocol)
                if key not in self.mappings:
                    return 500, (714, "NoSuchEntryInArray")
                del self.mappings[key]
                return 200, []

        return 500, (401, "Invalid Action")

    def start(self):
        for server in (self.http, self.ssdp):
            t = threading.Thread(target=server.serve_forever, daemon=True)
            t.start()
            self._threads.append(t)

    def stop(self):
        for server in (self.http, self.ssdp):
            server.shutdown()
            server.server_close()
        for t in self._threads:
            t.join()
        self._threads = []

if __name__ == "__main__":
    router = SimulatedRouter(service_types=sys.argv[1:] or (WANIP,))
    router.start()
    print(f"Simulated router at {router.location} (SSDP on udp/{router.ssdp_port})")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        router.stop()
