"""Auth Provider - Fetches and caches OAuth access tokens for SOAP calls.

FuelSoap only needs something with ``get_access_token``; FuelAuth is the
default implementation against the Marketing Cloud token endpoint. Any object
satisfying TokenProvider can be passed as ``auth`` instead.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from fuel_soap.errors import AuthError, InvalidArgumentError
from fuel_soap.models import AuthConfig, TokenResponse

logger = logging.getLogger(__name__)

# Refresh this many seconds before the server-side expiry
EXPIRY_WINDOW_SECONDS = 300


class TokenProvider(Protocol):
    """Anything that can hand out an access token."""

    def get_access_token(self, options: dict[str, Any] | None = None) -> TokenResponse:
        ...


class FuelAuth:
    """OAuth token client with an in-memory token cache.

    Usage:
        auth = FuelAuth({"clientId": "...", "clientSecret": "..."})
        token = auth.get_access_token()
        token.access_token
    """

    def __init__(
        self,
        config: AuthConfig | dict[str, Any] | None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the auth client.

        Args:
            config: AuthConfig or a mapping of its fields.
            http_client: Client used for token requests. Created (and owned)
                         by FuelAuth when omitted.

        Raises:
            InvalidArgumentError: If client id or secret is missing.
        """
        if isinstance(config, AuthConfig):
            self.config = config
        else:
            try:
                self.config = AuthConfig.model_validate(config or {})
            except ValidationError as e:
                raise InvalidArgumentError(
                    "clientId or clientSecret is missing or invalid"
                ) from e

        self.access_token: str | None = None
        self.expiration: float | None = None
        self.refresh_token: str | None = self.config.refresh_token
        self.soap_instance_url: str | None = None

        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=self.config.timeout)

    def __enter__(self) -> "FuelAuth":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def is_expired(self) -> bool:
        """True if there is no usable cached token."""
        if not self.access_token or self.expiration is None:
            return True
        return time.time() + EXPIRY_WINDOW_SECONDS >= self.expiration

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a new one."""
        self.access_token = None
        self.expiration = None

    def get_access_token(self, options: dict[str, Any] | None = None) -> TokenResponse:
        """Return a valid token, requesting a new one when needed.

        Args:
            options: ``force`` (bool) skips the cache. Any other keys are
                     sent to the token endpoint along with the credentials.

        Raises:
            AuthError: If the token request fails.
        """
        options = dict(options or {})
        force = bool(options.pop("force", False))

        if not force and not self.is_expired():
            return self._cached()

        payload: dict[str, Any] = {
            "clientId": self.config.client_id,
            "clientSecret": self.config.client_secret,
        }
        if self.refresh_token:
            payload["refreshToken"] = self.refresh_token
        if self.config.access_type:
            payload["accessType"] = self.config.access_type
        payload.update(options)

        logger.debug("Requesting access token from %s", self.config.auth_url)
        try:
            response = self._client.post(self.config.auth_url, json=payload)
        except httpx.TimeoutException as e:
            raise AuthError(f"Token request timeout: {e}") from e
        except httpx.RequestError as e:
            raise AuthError(f"Token request error: {e}") from e

        if response.status_code >= 400:
            raise AuthError(
                f"Token request failed with HTTP {response.status_code}",
                response=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthError("Token response is not valid JSON", response=response.text) from e
        if not isinstance(data, dict):
            raise AuthError("Token response is not a JSON object", response=data)

        self.access_token = data.get("accessToken") or data.get("access_token")
        expires_in = data.get("expiresIn") or data.get("expires_in")
        self.expiration = time.time() + float(expires_in) if expires_in else None
        self.refresh_token = data.get("refreshToken") or self.refresh_token
        self.soap_instance_url = data.get("soap_instance_url") or self.soap_instance_url

        return self._cached()

    def _cached(self) -> TokenResponse:
        return TokenResponse(
            access_token=self.access_token,
            expiration=self.expiration,
            refresh_token=self.refresh_token,
            soap_instance_url=self.soap_instance_url,
        )
