"""FuelSoap - SOAP client for the Marketing Cloud partner API.

soap_request is the single dispatch path for every verb:

    acquire token -> build envelope -> send -> parse response
        -> (token expired and retry enabled) -> run everything once more
        -> callback(error, response)

The callback is invoked exactly once per soap_request call, with either
``(error, None)`` or ``(None, SoapResponse)``. Only argument validation raises
directly; every failure after that is delivered through the callback.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from fuel_soap.auth import FuelAuth, TokenProvider
from fuel_soap.config_loader import load_client_config
from fuel_soap.envelope import build_envelope
from fuel_soap.errors import (
    AuthError,
    EnvelopeError,
    FuelSoapError,
    InvalidArgumentError,
    TransportError,
    is_expired_token,
)
from fuel_soap.models import (
    ClientConfig,
    RequestDescriptor,
    SoapResponse,
    TokenResponse,
    TransportOverrides,
    TransportRequest,
    TransportResponse,
)
from fuel_soap.response_parser import parse_response
from fuel_soap.transport import TRANSPORT_STAGE, HttpxTransport, Transport
from fuel_soap.verbs import (
    build_create,
    build_delete,
    build_describe,
    build_execute,
    build_extract,
    build_perform,
    build_retrieve,
    build_schedule,
    build_update,
    normalize_retrieve_args,
    shift_callback,
)

logger = logging.getLogger(__name__)

CLIENT_VERSION = "1.0.0"
AUTH_STAGE = "FuelAuth"
SOAP_SERVICE_PATH = "Service.asmx"

Callback = Callable[[FuelSoapError | None, SoapResponse | None], Any]


class FuelSoap:
    """Client for the partner API SOAP verbs.

    Usage:
        client = FuelSoap({"auth": {"clientId": "...", "clientSecret": "..."}})

        def on_done(err, response):
            if err:
                ...
            else:
                response.body["Results"]

        client.retrieve("Email", ["ID", "Name"], on_done)

    The stored defaults (endpoint, headers, transport overrides) are never
    modified by a call; each call merges them into a fresh request.
    """

    def __init__(
        self,
        options: ClientConfig | dict[str, Any],
        transport: Transport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            options: ClientConfig or a mapping of its fields. ``auth`` may be
                     auth options (``clientId``/``clientSecret``...) or a
                     ready token provider.
            transport: Transport for HTTP requests. An HttpxTransport is
                       created (and owned) when omitted.

        Raises:
            InvalidArgumentError: If options or auth options are invalid.
        """
        if isinstance(options, ClientConfig):
            self.config = options
        else:
            try:
                self.config = ClientConfig.model_validate(options or {})
            except ValidationError as e:
                raise InvalidArgumentError(f"Invalid client options: {e}") from e

        self._owns_auth = isinstance(self.config.auth, Mapping)
        if self._owns_auth:
            self.auth_client: TokenProvider = FuelAuth(self.config.auth)
        else:
            self.auth_client = self.config.auth

        self._owns_transport = transport is None
        self.transport: Transport = transport or HttpxTransport()

        self.version = CLIENT_VERSION
        defaults = self.config.request_options
        self._defaults = TransportOverrides(
            uri=defaults.uri or self.config.soap_endpoint,
            headers={
                "User-Agent": f"fuel-soap/{self.version}",
                "Content-Type": "text/xml",
                **defaults.headers,
                **self.config.headers,
            },
            proxy=defaults.proxy or self.config.proxy,
            timeout=defaults.timeout,
        )

    @classmethod
    def from_config(cls, config_path: Path, transport: Transport | None = None) -> "FuelSoap":
        """Create a client from a YAML config file (see config_loader)."""
        return cls(load_client_config(config_path), transport=transport)

    def __enter__(self) -> "FuelSoap":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the transport and auth client if this client created them."""
        try:
            if self._owns_transport and hasattr(self.transport, "close"):
                self.transport.close()
        finally:
            if self._owns_auth and hasattr(self.auth_client, "close"):
                self.auth_client.close()

    @property
    def soap_endpoint(self) -> str:
        return self._defaults.uri or ""

    @property
    def default_headers(self) -> dict[str, str]:
        """Copy of the headers sent with every request."""
        return dict(self._defaults.headers)

    # =========================================================================
    # Request orchestration
    # =========================================================================

    def soap_request(
        self,
        descriptor: RequestDescriptor | Mapping[str, Any],
        callback: Callback,
    ) -> None:
        """Run one SOAP call and deliver its outcome to *callback*.

        A SoapFaultError reporting an expired token re-runs the whole call
        once (new token included) when ``descriptor.retry`` is set. A second
        expiry is delivered as an error.

        Raises:
            InvalidArgumentError: If callback is not callable or descriptor
                                  is not a RequestDescriptor/mapping.
        """
        if not callable(callback):
            raise InvalidArgumentError("callback argument is required")
        descriptor = self._coerce_descriptor(descriptor)

        error, result = self._run(descriptor)
        callback(error, result)

    def _run(
        self, descriptor: RequestDescriptor
    ) -> tuple[FuelSoapError | None, SoapResponse | None]:
        """Run attempts until success, a terminal error, or the single retry is used."""
        attempt = 1
        while True:
            try:
                return None, self._attempt(descriptor, attempt)
            except FuelSoapError as e:
                if attempt == 1 and descriptor.retry and is_expired_token(e):
                    logger.warning(
                        "Token expired during %s request, retrying once", descriptor.action
                    )
                    attempt += 1
                    continue
                return e, None

    def _coerce_descriptor(self, descriptor: Any) -> RequestDescriptor:
        if isinstance(descriptor, RequestDescriptor):
            return descriptor
        if not isinstance(descriptor, Mapping):
            raise InvalidArgumentError("options argument is required")
        try:
            return RequestDescriptor.model_validate(dict(descriptor))
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid request options: {e}") from e

    def _attempt(self, descriptor: RequestDescriptor, attempt: int) -> SoapResponse:
        """One pass through token -> envelope -> transport -> parse."""
        # Fresh copy per attempt; a retry starts from the caller's auth options
        auth_options = dict(descriptor.auth or {})
        if attempt > 1:
            auth_options["force"] = True

        token = self._acquire_token(auth_options)
        request = self._build_transport_request(descriptor, token)

        logger.debug(
            "Sending %s request to %s (attempt %d)", descriptor.action, request.uri, attempt
        )
        response = self._dispatch(request)
        body = parse_response(descriptor.response_key or "", response.body)
        return SoapResponse(body=body, res=response)

    def _acquire_token(self, auth_options: dict[str, Any]) -> TokenResponse:
        try:
            token = self.auth_client.get_access_token(auth_options)
        except AuthError as e:
            e.error_propagated_from = AUTH_STAGE
            raise
        except Exception as e:
            raise AuthError(f"Token provider failed: {e}") from e

        if token is not None and not isinstance(token, TokenResponse):
            try:
                token = TokenResponse.model_validate(token)
            except ValidationError as e:
                raise AuthError(f"Invalid token response: {e}", response=token) from e

        if token is None or not token.access_token:
            raise AuthError("No access token", response=token)
        return token

    def _build_transport_request(
        self, descriptor: RequestDescriptor, token: TokenResponse
    ) -> TransportRequest:
        """Merge defaults, instance headers and per-call overrides into a new request."""
        overrides = descriptor.req_options or TransportOverrides()

        uri = self._defaults.uri or ""
        if token.soap_instance_url:
            uri = token.soap_instance_url.rstrip("/") + "/" + SOAP_SERVICE_PATH
            logger.debug("Using tenant SOAP endpoint %s", uri)
        if overrides.uri:
            uri = overrides.uri

        headers = {**self._defaults.headers, **overrides.headers}
        headers["SOAPAction"] = descriptor.action or ""

        try:
            envelope = build_envelope(descriptor.body, token.access_token)
        except Exception as e:
            raise EnvelopeError(
                f"Cannot serialize {descriptor.action} request body: {e}"
            ) from e

        return TransportRequest(
            uri=uri,
            method="POST",
            headers=headers,
            body=envelope,
            proxy=overrides.proxy or self._defaults.proxy,
            timeout=overrides.timeout if overrides.timeout is not None else self._defaults.timeout,
        )

    def _dispatch(self, request: TransportRequest) -> TransportResponse:
        try:
            return self.transport.execute(request)
        except TransportError as e:
            e.error_propagated_from = e.error_propagated_from or TRANSPORT_STAGE
            raise
        except Exception as e:
            raise TransportError(f"SOAP transport failed: {e}", TRANSPORT_STAGE) from e

    # =========================================================================
    # Verbs
    # =========================================================================

    def create(
        self,
        object_type: str,
        props: Any,
        options: Any = None,
        callback: Callback | None = None,
    ) -> None:
        options, callback = shift_callback(options, callback)
        self.soap_request(build_create(object_type, props, options), callback)

    def retrieve(
        self,
        object_type: str,
        props: Any = None,
        options: Any = None,
        callback: Callback | None = None,
    ) -> None:
        """Retrieve objects of *object_type*.

        Accepted shapes: ``retrieve(type, callback)``,
        ``retrieve(type, props, callback)`` and
        ``retrieve(type, props, options, callback)``.

        A ``MoreDataAvailable`` status is delivered as success; pass its
        ``RequestID`` back as ``options["continueRequest"]`` for the next page.
        """
        args = normalize_retrieve_args(props, options, callback)
        self.soap_request(build_retrieve(object_type, args.props, args.options), args.callback)

    def update(
        self,
        object_type: str,
        props: Any,
        options: Any = None,
        callback: Callback | None = None,
    ) -> None:
        options, callback = shift_callback(options, callback)
        self.soap_request(build_update(object_type, props, options), callback)

    def delete(
        self,
        object_type: str,
        props: Any,
        options: Any = None,
        callback: Callback | None = None,
    ) -> None:
        options, callback = shift_callback(options, callback)
        self.soap_request(build_delete(object_type, props, options), callback)

    def describe(self, object_type: str, callback: Callback) -> None:
        self.soap_request(build_describe(object_type), callback)

    def execute(self, object_type: str, parameters: Any, callback: Callback) -> None:
        self.soap_request(build_execute(object_type, parameters), callback)

    def perform(self, object_type: str, definition: Any, callback: Callback) -> None:
        self.soap_request(build_perform(object_type, definition), callback)

    def schedule(
        self,
        object_type: str,
        schedule: Any,
        interactions: Any,
        action: str,
        options: Any = None,
        callback: Callback | None = None,
    ) -> None:
        options, callback = shift_callback(options, callback)
        self.soap_request(
            build_schedule(object_type, schedule, interactions, action, options), callback
        )

    def extract(self, definition: Any, callback: Callback) -> None:
        self.soap_request(build_extract(definition), callback)
