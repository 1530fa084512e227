"""Transport - Sends serialized envelopes over HTTP.

The orchestrator only depends on the Transport protocol; HttpxTransport is
the default implementation. HTTP status codes are not interpreted here: the
partner API reports faults as XML with status 500, and those are handled by
the response normalizer.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Protocol

import httpx

from fuel_soap.errors import TransportError
from fuel_soap.models import TransportRequest, TransportResponse

logger = logging.getLogger(__name__)

TRANSPORT_STAGE = "HTTP transport inside soap_request"


class Transport(Protocol):
    """Executes one HTTP request. Raises TransportError on network failure."""

    def execute(self, request: TransportRequest) -> TransportResponse:
        ...


class HttpxTransport:
    """Transport backed by httpx, with one client per distinct proxy.

    Usage:
        with HttpxTransport(default_timeout=30.0) as transport:
            response = transport.execute(request)
    """

    def __init__(
        self,
        default_timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            default_timeout: Timeout in seconds when a request sets none.
            client: Client used for requests without a proxy. Created (and
                    owned) by the transport when omitted.
        """
        self._default_timeout = default_timeout
        self._owns_default = client is None
        self._default_client = client or httpx.Client(timeout=default_timeout)
        self._proxy_clients: dict[str, httpx.Client] = {}
        self._lock = Lock()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close every client this transport created."""
        try:
            for proxy_client in self._proxy_clients.values():
                proxy_client.close()
            self._proxy_clients.clear()
        finally:
            if self._owns_default:
                self._default_client.close()

    def _client_for(self, proxy: str | None) -> httpx.Client:
        if not proxy:
            return self._default_client
        with self._lock:
            proxy_client = self._proxy_clients.get(proxy)
            if proxy_client is None:
                proxy_client = httpx.Client(proxy=proxy, timeout=self._default_timeout)
                self._proxy_clients[proxy] = proxy_client
            return proxy_client

    def execute(self, request: TransportRequest) -> TransportResponse:
        """Send *request* and return the raw response.

        Raises:
            TransportError: On timeouts, connection errors or other
                            request-level failures.
        """
        client = self._client_for(request.proxy)
        timeout = request.timeout if request.timeout is not None else self._default_timeout

        try:
            http_response = client.request(
                method=request.method,
                url=request.uri,
                headers=request.headers,
                content=request.body.encode("utf-8"),
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"SOAP request timeout: {e}", TRANSPORT_STAGE) from e
        except httpx.ConnectError as e:
            raise TransportError(f"SOAP connection error: {e}", TRANSPORT_STAGE) from e
        except httpx.RequestError as e:
            raise TransportError(f"SOAP request error: {e}", TRANSPORT_STAGE) from e

        logger.debug(
            "%s %s -> HTTP %s", request.method, request.uri, http_response.status_code
        )
        return TransportResponse(
            status_code=http_response.status_code,
            headers={k.lower(): v for k, v in http_response.headers.items()},
            body=http_response.text,
            request_headers={
                k.lower(): v for k, v in http_response.request.headers.items()
            },
        )
