"""Pytest configuration and fixtures for fuel-soap tests.

This file provides:
- Response builders: SOAP envelopes and TransportResponse objects
- Fakes: token provider, transport and callback recorder for unit tests
- PortReservation: Race-free port allocation for test servers
- MockServer: Subprocess management for the mock partner API
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Generator

import pytest

from fuel_soap.client import FuelSoap
from fuel_soap.errors import FuelSoapError
from fuel_soap.models import SoapResponse, TokenResponse, TransportRequest, TransportResponse

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
MOCK_SERVER_MODULE = "tests.integration.mock_server"


# =============================================================================
# Response Builders
# =============================================================================


def soap_envelope(body_xml: str) -> str:
    """Wrap *body_xml* in a SOAP response envelope as the partner API sends it."""
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/" '
        'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">'
        "<soap:Header/>"
        f"<soap:Body>{body_xml}</soap:Body>"
        "</soap:Envelope>"
    )


def fault_envelope(faultstring: str, faultcode: str = "soap:Client") -> str:
    return soap_envelope(
        "<soap:Fault>"
        f"<faultcode>{faultcode}</faultcode>"
        f"<faultstring>{faultstring}</faultstring>"
        "</soap:Fault>"
    )


def response_envelope(key: str, status: str = "OK", results: str = "", request_id: str = "req-1") -> str:
    """Envelope holding ``<key>`` with OverallStatus, RequestID and raw Results XML."""
    return soap_envelope(
        f'<{key} xmlns="http://exacttarget.com/wsdl/partnerAPI">'
        f"<OverallStatus>{status}</OverallStatus>"
        f"<RequestID>{request_id}</RequestID>"
        f"{results}"
        f"</{key}>"
    )


def make_transport_response(body: str, status_code: int = 200) -> TransportResponse:
    """Create a TransportResponse for testing.

    Prefer this over constructing TransportResponse directly - it provides
    the content type the partner API uses.
    """
    return TransportResponse(
        status_code=status_code,
        headers={"content-type": "text/xml; charset=utf-8"},
        body=body,
    )


# =============================================================================
# Fakes
# =============================================================================


class FakeTokenProvider:
    """Token provider returning a fixed sequence of tokens.

    Each call pops the next token; the last one repeats. Every options dict
    received is recorded in ``calls``.
    """

    def __init__(
        self,
        tokens: list[str | None] | None = None,
        soap_instance_url: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.tokens = list(tokens if tokens is not None else ["token-1"])
        self.soap_instance_url = soap_instance_url
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def get_access_token(self, options: dict[str, Any] | None = None) -> TokenResponse:
        self.calls.append(dict(options or {}))
        if self.error is not None:
            raise self.error
        token = self.tokens.pop(0) if len(self.tokens) > 1 else self.tokens[0]
        return TokenResponse(access_token=token, soap_instance_url=self.soap_instance_url)


class FakeTransport:
    """Transport returning queued responses and recording every request.

    Queue items are TransportResponse objects, response body strings, or
    exceptions to raise. The last item repeats once the queue is drained.
    """

    def __init__(self, *responses: TransportResponse | str | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[TransportRequest] = []

    def execute(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            item = make_transport_response(item)
        return item.model_copy(update={"request_headers": dict(request.headers)})


class CallbackRecorder:
    """Callable recording each (error, response) delivery."""

    def __init__(self) -> None:
        self.calls: list[tuple[FuelSoapError | None, SoapResponse | None]] = []

    def __call__(self, error: FuelSoapError | None, response: SoapResponse | None) -> None:
        self.calls.append((error, response))

    @property
    def error(self) -> FuelSoapError | None:
        assert len(self.calls) == 1, f"expected one callback, got {len(self.calls)}"
        return self.calls[0][0]

    @property
    def response(self) -> SoapResponse | None:
        assert len(self.calls) == 1, f"expected one callback, got {len(self.calls)}"
        return self.calls[0][1]


def make_client(
    transport: FakeTransport,
    provider: FakeTokenProvider | None = None,
    **options: Any,
) -> FuelSoap:
    """Create a FuelSoap wired to fakes."""
    return FuelSoap({"auth": provider or FakeTokenProvider(), **options}, transport=transport)


# =============================================================================
# Server Management
# =============================================================================


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    Usage:
        reservation = PortReservation()
        server = MockServer(reservation)
        server.start()  # calls release() internally, then binds
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class MockServer:
    """Manages the mock partner API subprocess for integration tests.

    Runs tests/integration/mock_server.py, which serves both the token
    endpoint and Service.asmx.
    """

    def __init__(self, port: int | PortReservation, variant: str = "standard") -> None:
        """Initialize mock server configuration.

        Args:
            port: Either a port number or PortReservation.
            variant: "standard", or "expiring" to reject the first token
                     issued with a Token Expired fault.
        """
        if isinstance(port, PortReservation):
            self._reservation = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.variant = variant
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    @property
    def soap_endpoint(self) -> str:
        return f"{self.base_url}/Service.asmx"

    @property
    def auth_url(self) -> str:
        return f"{self.base_url}/v1/requestToken"

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
                "--variant", self.variant,
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer(variant={self.variant}) failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess, escalating to SIGKILL after 5s."""
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait(timeout=5)
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def soap_fixtures_dir() -> Path:
    """Directory of recorded partner API responses (tests/fixtures/soap)."""
    return FIXTURES_DIR / "soap"


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Standard mock partner API, started once per session."""
    with MockServer(PortReservation()) as server:
        yield server


@pytest.fixture
def expiring_mock_server() -> Generator[MockServer, None, None]:
    """Mock partner API that rejects the first token it issued as expired.

    Function-scoped: the expiry applies to the first token only.
    """
    with MockServer(PortReservation(), variant="expiring") as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
