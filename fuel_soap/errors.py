"""Errors delivered by the SOAP client.

Every error produced inside the request pipeline carries
``error_propagated_from``, naming the stage that produced it, so a failure
seen in a callback can be traced back through token acquisition, transport,
XML parsing and response normalization.
"""

from __future__ import annotations

from typing import Any


class FuelSoapError(Exception):
    """Base class for SOAP client errors."""

    def __init__(self, message: str, error_propagated_from: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_propagated_from = error_propagated_from


class InvalidArgumentError(FuelSoapError, TypeError):
    """Raised synchronously when a client method is called incorrectly."""


class AuthError(FuelSoapError):
    """Token acquisition failed or returned no access token."""

    def __init__(
        self,
        message: str,
        response: Any = None,
        error_propagated_from: str | None = "FuelAuth",
    ) -> None:
        super().__init__(message, error_propagated_from)
        self.response = response


class TransportError(FuelSoapError):
    """The HTTP request failed before a response body was received."""


class EnvelopeError(FuelSoapError):
    """The request body could not be serialized into a SOAP envelope."""

    def __init__(
        self, message: str, error_propagated_from: str | None = "SOAP envelope serialization"
    ) -> None:
        super().__init__(message, error_propagated_from)


class XmlParseError(FuelSoapError):
    """The response body is not a well-formed SOAP envelope."""

    def __init__(self, message: str, error_propagated_from: str | None = "XML parse error") -> None:
        super().__init__(message, error_propagated_from)


class SoapFaultError(FuelSoapError):
    """The service answered with a ``soap:Fault`` element."""

    def __init__(
        self,
        faultstring: str | None,
        fault_code: str | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(faultstring or "SOAP Fault", "SOAP Fault")
        self.faultstring = faultstring
        self.fault_code = fault_code
        self.detail = detail


class SoapResponseError(FuelSoapError):
    """The response is well formed but its status reports a failure.

    ``results`` holds whatever per-object results came back, so partial
    failures of a batch Create/Update/Delete can be inspected.
    """

    def __init__(
        self,
        message: str,
        request_id: str | None = None,
        results: list[Any] | None = None,
        error_propagated_from: str | None = None,
    ) -> None:
        super().__init__(message, error_propagated_from)
        self.request_id = request_id
        self.results = results


def is_expired_token(error: BaseException | None) -> bool:
    """True if *error* is a fault reporting that the OAuth token expired."""
    return getattr(error, "faultstring", None) == "Token Expired"
