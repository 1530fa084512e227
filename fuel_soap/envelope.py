"""Envelope Builder - Wraps a request element and OAuth token in a SOAP envelope."""

from __future__ import annotations

from typing import Any

from fuel_soap.xml_body import dict_to_xml

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
FUEL_OAUTH_NS = "http://exacttarget.com"
PARTNER_API_NS = "http://exacttarget.com/wsdl/partnerAPI"


def envelope_structure(request: Any, token: str | None) -> dict[str, Any]:
    """Build the envelope as a dict, with *request* placed in Body as is."""
    return {
        "Envelope": {
            "@xmlns": SOAP_ENVELOPE_NS,
            "@xmlns:xsi": XSI_NS,
            "Header": {
                "fueloauth": {
                    "@xmlns": FUEL_OAUTH_NS,
                    "#text": token,
                },
            },
            "Body": request,
        }
    }


def build_envelope(request: Any, token: str | None) -> str:
    """Serialize *request* and *token* into a headless SOAP envelope string.

    ``<Body/>`` is always present, also when *request* is None.
    """
    return dict_to_xml(envelope_structure(request, token), xml_declaration=False).decode("utf-8")
