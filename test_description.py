import unittest

from description import parse_description, fetch_root_device
from errors import DescriptionError
from local_router import SimulatedRouter, WANIP, WANPPP

LOCATION = "http://192.168.1.1:5000/rootDesc.xml"

# Typical miniupnpd layout, relative control urls and no URLBase
MINIUPNPD = b"""<?xml version="1.0"?>
<root xmlns="urn:schemas-upnp-org:device-1-0">
<specVersion><major>1</major><minor>0</minor></specVersion>
<device>
<deviceType>urn:schemas-upnp-org:device:InternetGatewayDevice:1</deviceType>
<friendlyName>OpenWRT router</friendlyName>
<UDN>uuid:root</UDN>
<deviceList>
<device>
<deviceType>urn:schemas-upnp-org:device:WANDevice:1</deviceType>
<UDN>uuid:wan</UDN>
<serviceList>
<service>
<serviceType>urn:schemas-upnp-org:service:WANCommonInterfaceConfig:1</serviceType>
<serviceId>urn:upnp-org:serviceId:WANCommonIFC1</serviceId>
<controlURL>/ctl/CmnIfCfg</controlURL>
<eventSubURL>/evt/CmnIfCfg</eventSubURL>
<SCPDURL>/WANCfg.xml</SCPDURL>
</service>
</serviceList>
<deviceList>
<device>
<deviceType>urn:schemas-upnp-org:device:WANConnectionDevice:1</deviceType>
<UDN>uuid:wanconn</UDN>
<serviceList>
<service>
<serviceType>urn:schemas-upnp-org:service:WANIPConnection:1</serviceType>
<serviceId>urn:upnp-org:serviceId:WANIPConn1</serviceId>
<controlURL>/ctl/IPConn</controlURL>
<eventSubURL>/evt/IPConn</eventSubURL>
<SCPDURL>/WANIPCn.xml</SCPDURL>
</service>
</serviceList>
</device>
</deviceList>
</device>
</deviceList>
</device>
</root>"""

NO_NAMESPACE = b"""<?xml version="1.0"?>
<root>
<URLBase>http://10.0.0.138:80</URLBase>
<device>
<deviceType>urn:schemas-upnp-org:device:InternetGatewayDevice:1</deviceType>
<serviceList>
<service>
<serviceType>urn:schemas-upnp-org:service:WANPPPConnection:1</serviceType>
<serviceId>urn:upnp-org:serviceId:WANPPPConn1</serviceId>
<controlURL>upnp/control/WANPPPConn1</controlURL>
</service>
<service>
<serviceType>urn:schemas-upnp-org:service:WANIPConnection:1</serviceType>
<serviceId>urn:upnp-org:serviceId:WANIPConn1</serviceId>
</service>
</serviceList>
</device>
</root>"""

# defusedxml refuses documents that declare entities
ENTITY_DOC = b"""<?xml version="1.0"?>
<!DOCTYPE root [<!ENTITY name "Router">]>
<root xmlns="urn:schemas-upnp-org:device-1-0">
<device><friendlyName>&name;</friendlyName></device>
</root>"""

class TestParseDescription(unittest.TestCase):
    def test_nested_service(self):
        root = parse_description(MINIUPNPD, LOCATION)
        self.assertEqual(root.location, LOCATION)
        self.assertEqual(root.url_base, LOCATION)
        self.assertEqual(root.base_host, "192.168.1.1")

        services = root.find_services(WANIP)
        self.assertEqual(len(services), 1)
        self.assertEqual(services[0].control_url, "http://192.168.1.1:5000/ctl/IPConn")
        self.assertEqual(services[0].scpd_url, "http://192.168.1.1:5000/WANIPCn.xml")
        self.assertEqual(services[0].device.udn, "uuid:wanconn")
        self.assertEqual(root.find_services(WANPPP), [])

    def test_device_order(self):
        root = parse_description(MINIUPNPD, LOCATION)
        self.assertEqual([d.udn for d in root.devices], ["uuid:root", "uuid:wan", "uuid:wanconn"])

    def test_url_base_and_missing_namespace(self):
        root = parse_description(NO_NAMESPACE, LOCATION)
        self.assertEqual(root.url_base, "http://10.0.0.138:80")
        self.assertEqual(root.base_host, "10.0.0.138")

        ppp = root.find_services(WANPPP)
        self.assertEqual([s.control_url for s in ppp], ["http://10.0.0.138:80/upnp/control/WANPPPConn1"])
        # Service without a controlURL is unusable
        self.assertEqual(root.find_services(WANIP), [])

    def test_ipv6_base_host(self):
        xml = MINIUPNPD.replace(b"<specVersion>", b"<URLBase>http://[fe80::1]:5000/</URLBase><specVersion>")
        root = parse_description(xml, LOCATION)
        self.assertEqual(root.base_host, "fe80::1")

    def test_entity_declaration_rejected(self):
        with self.assertRaises(DescriptionError):
            parse_description(ENTITY_DOC, LOCATION)

    def test_malformed(self):
        for xml in (b"<root><device>", b"not xml", b'<?xml version="1.0"?><root/>'):
            with self.subTest(xml=xml):
                with self.assertRaises(DescriptionError):
                    parse_description(xml, LOCATION)

class TestFetchRootDevice(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.router = SimulatedRouter(service_types=(WANIP, WANPPP))
        self.router.start()
        self.addCleanup(self.router.stop)

    async def test_fetch(self):
        root = await fetch_root_device(self.router.location)
        self.assertEqual(root.base_host, "127.0.0.1")
        self.assertEqual(len(root.find_services(WANIP)), 1)
        self.assertEqual(len(root.find_services(WANPPP)), 1)

    async def test_not_found(self):
        with self.assertRaises(DescriptionError):
            await fetch_root_device(self.router.location.replace("rootDesc", "missing"))

    async def test_connection_refused(self):
        with self.assertRaises(DescriptionError):
            await fetch_root_device("http://127.0.0.1:1/rootDesc.xml")

if __name__ == '__main__':
    unittest.main()
