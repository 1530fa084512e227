"""Response Normalizer - Turns a SOAP response body into a result or an error.

Order of checks for one response:
1. XML well-formedness and Envelope/Body presence (XmlParseError)
2. soap:Fault (SoapFaultError) - always wins over any status field
3. Verb-specific status handling (SoapResponseError on failure)

Responses are parsed with attributes ignored, so ``xsi:type`` annotations do
not appear in the result and single children stay scalars except for
``Results``, which is parsed with force_list and always returned as a list.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any

from fuel_soap.errors import SoapFaultError, SoapResponseError, XmlParseError
from fuel_soap.xml_body import xml_to_dict

DEFINITION_RESPONSE_KEY = "DefinitionResponseMsg"
RETRIEVE_RESPONSE_KEY = "RetrieveResponseMsg"

RETRIEVE_SUCCESS_STATUSES = frozenset({"OK", "MoreDataAvailable"})
ERROR_STATUSES = frozenset({"Error", "Has Errors"})
RESULT_TAGS = {"Results"}


def parse_response(key: str, body: bytes | str) -> dict[str, Any]:
    """Parse and normalize the response for one verb.

    Args:
        key: Name of the response element, e.g. ``RetrieveResponseMsg``.
        body: Raw response body.

    Returns:
        The response element as a dict. ``Results`` is always a list
        (except for Describe, which returns ``ObjectDefinition`` instead).

    Raises:
        XmlParseError: Body is not well-formed XML or not a SOAP envelope.
        SoapFaultError: Body contains a soap:Fault.
        SoapResponseError: Response element missing or status reports failure.
    """
    try:
        document = xml_to_dict(
            body, force_list=RESULT_TAGS, ignore_attrs=True, normalize=True
        )
    except ET.ParseError as e:
        raise XmlParseError(f"Invalid XML in SOAP response: {e}") from e

    envelope = document.get("Envelope")
    soap_body = envelope.get("Body") if isinstance(envelope, dict) else None
    if not isinstance(soap_body, dict):
        raise XmlParseError("SOAP response has no Envelope/Body element")

    fault = soap_body.get("Fault")
    if fault is not None:
        raise _fault_error(fault)

    if key not in soap_body:
        raise SoapResponseError(
            f"SOAP response does not contain {key}",
            error_propagated_from=key,
        )
    parsed = soap_body[key]
    if not isinstance(parsed, dict):
        parsed = {}

    if key == DEFINITION_RESPONSE_KEY:
        parsed["ObjectDefinition"] = parsed.get("ObjectDefinition") or {}
        return parsed

    # Empty <Results/> elements parse to None and carry nothing
    parsed["Results"] = [r for r in parsed.get("Results") or [] if r is not None]
    status = parsed.get("OverallStatus")

    if key == RETRIEVE_RESPONSE_KEY:
        if status in RETRIEVE_SUCCESS_STATUSES:
            return parsed
        raise SoapResponseError(
            _status_message(status),
            request_id=parsed.get("RequestID"),
            error_propagated_from="Retrieve Response",
        )

    if status in ERROR_STATUSES:
        raise SoapResponseError(
            "Soap Error",
            request_id=parsed.get("RequestID"),
            results=parsed["Results"],
            error_propagated_from=key,
        )

    return parsed


def _status_message(status: Any) -> str:
    """Text after the first colon of a failed status, e.g. ``Error: Bad`` → ``Bad``."""
    text = "" if status is None else str(status)
    if ":" in text:
        return text.split(":", 1)[1].strip()
    return text.strip() or "Retrieve failed"


def _fault_error(fault: Any) -> SoapFaultError:
    if not isinstance(fault, dict):
        return SoapFaultError(str(fault))
    return SoapFaultError(
        fault.get("faultstring"),
        fault_code=fault.get("faultcode"),
        detail=fault.get("detail"),
    )
