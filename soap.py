import asyncio
import logging
from collections import OrderedDict
from xml.sax.saxutils import escape

import aiohttp
import defusedxml
import defusedxml.ElementTree as ET

from errors import RemoteActionFailed, SOAPFault

SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"
UPNP_CONTROL_NS = "urn:schemas-upnp-org:control-1-0"
HTTP_TIMEOUT = 5

def _format_value(value):
    if isinstance(value, bool):
        return "1" if value else "0"
    return escape(str(value))

def build_envelope(service_type, action, arguments):
    """
    arguments is an ordered sequence of (name, value); routers care about the order.
    """
    params = "".join(
        f"<{name}>{_format_value(value)}</{name}>" for name, value in arguments
    )
    return (
        '<?xml version="1.0"?>\r\n'
        f'<s:Envelope xmlns:s="{SOAP_ENV_NS}" s:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
        "<s:Body>"
        f'<u:{action} xmlns:u="{service_type}">{params}</u:{action}>'
        "</s:Body>"
        "</s:Envelope>"
    ).encode('utf-8')

def _find_local(elem, name):
    for node in elem.iter():
        if node.tag.rsplit('}', 1)[-1] == name:
            return node
    return None

def _raise_fault(fault, action):
    code = None
    desc = None
    code_elem = _find_local(fault, 'errorCode')
    if code_elem is not None and code_elem.text:
        try:
            code = int(code_elem.text.strip())
        except ValueError:
            desc = code_elem.text.strip()
    desc_elem = _find_local(fault, 'errorDescription')
    if desc_elem is not None and desc_elem.text:
        desc = desc_elem.text.strip()
    if desc is None:
        string_elem = _find_local(fault, 'faultstring')
        if string_elem is not None:
            desc = string_elem.text
    raise SOAPFault(action, code, desc)

def parse_response(xml_content, action):
    """
    Returns the out-arguments of an action response, in document order.
    Raises SOAPFault when the body carries a Fault instead.
    """
    try:
        root = ET.fromstring(xml_content)
    except (ET.ParseError, defusedxml.DefusedXmlException) as e:
        raise RemoteActionFailed(f"{action}: unparseable response: {e}") from e

    body = root.find(f"{{{SOAP_ENV_NS}}}Body")
    if body is None:
        raise RemoteActionFailed(f"{action}: response has no SOAP Body")

    fault = body.find(f"{{{SOAP_ENV_NS}}}Fault")
    if fault is not None:
        _raise_fault(fault, action)

    for elem in body:
        if elem.tag.rsplit('}', 1)[-1] == f"{action}Response":
            results = OrderedDict()
            for child in elem:
                results[child.tag.rsplit('}', 1)[-1]] = child.text or ""
            return results

    raise RemoteActionFailed(f"{action}: no {action}Response element in reply")

async def perform_action(control_url, service_type, action, arguments, timeout=HTTP_TIMEOUT):
    """
    Invokes a remote action on control_url and returns its out-arguments.
    """
    soap_body = build_envelope(service_type, action, arguments)
    headers = {
        'Content-Type': 'text/xml; charset="utf-8"',
        'SOAPAction': f'"{service_type}#{action}"'
    }

    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(control_url, data=soap_body, headers=headers,
                                    timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
                status = resp.status
                text = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise RemoteActionFailed(f"{action}: could not reach {control_url}: {e!r}") from e

    # Faults arrive with HTTP 500 and a SOAP body, so parse before looking at the status.
    if status not in (200, 500):
        logging.debug(f"UPnP: {action} returned HTTP {status}: {text[:500]!r}")
        raise RemoteActionFailed(f"{action}: HTTP {status}")

    try:
        return parse_response(text, action)
    except SOAPFault:
        logging.debug(f"UPnP: {action} fault body: {text[:500]!r}")
        raise
    except RemoteActionFailed:
        if status != 200:
            raise RemoteActionFailed(f"{action}: HTTP {status}")
        raise
