"""Internal data models for fuel-soap.

All models use Pydantic v2. Request bodies are typed ``Any`` so the caller's
structure is stored by identity rather than copied during validation.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

DEFAULT_SOAP_ENDPOINT = "https://webservice.exacttarget.com/Service.asmx"
DEFAULT_AUTH_URL = "https://auth.exacttargetapis.com/v1/requestToken"


# =============================================================================
# Request Models
# =============================================================================


class TransportOverrides(BaseModel):
    """Per-call (or per-client) overrides merged into the HTTP request."""

    model_config = ConfigDict(extra="forbid")

    uri: str | None = Field(default=None, description="Replaces the SOAP endpoint")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers")
    proxy: str | None = Field(default=None, description="Proxy URL, e.g. http://127.0.0.1:8888")
    timeout: float | None = Field(default=None, description="Request timeout in seconds")


class RequestDescriptor(BaseModel):
    """One SOAP call, built by a verb builder and consumed by soap_request.

    ``body`` is the verb-specific element placed inside ``soap:Body``;
    ``response_key`` names the element expected inside the response body.
    """

    model_config = ConfigDict(extra="forbid")

    action: str | None = Field(default=None, description="Verb name, sent as SOAPAction")
    body: Any = Field(default=None, description="Request element placed in soap:Body")
    response_key: str | None = Field(default=None, description="Expected response element")
    retry: bool = Field(default=False, description="Retry once on an expired token")
    req_options: TransportOverrides | None = Field(
        default=None, description="Per-call transport overrides"
    )
    auth: dict[str, Any] | None = Field(
        default=None, description="Per-call options passed to the token provider"
    )


class TransportRequest(BaseModel):
    """A fully merged HTTP request handed to the transport."""

    model_config = ConfigDict(extra="forbid")

    uri: str = Field(description="Target URI")
    method: str = Field(default="POST", description="HTTP method")
    headers: dict[str, str] = Field(default_factory=dict, description="HTTP headers")
    body: str = Field(default="", description="Serialized envelope")
    proxy: str | None = Field(default=None, description="Proxy URL")
    timeout: float | None = Field(default=None, description="Timeout in seconds")


class TransportResponse(BaseModel):
    """Raw HTTP response returned by the transport.

    Header keys are lowercase. ``request_headers`` echoes what was actually
    sent, which makes per-call header scoping observable.
    """

    model_config = ConfigDict(extra="forbid")

    status_code: int = Field(description="HTTP status code")
    headers: dict[str, str] = Field(default_factory=dict, description="Response headers")
    body: str = Field(default="", description="Response body text")
    request_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with the request"
    )


class SoapResponse(BaseModel):
    """Successful outcome delivered to callbacks."""

    model_config = ConfigDict(extra="forbid")

    body: dict[str, Any] = Field(description="Normalized response element")
    res: TransportResponse | None = Field(default=None, description="Raw HTTP response")


# =============================================================================
# Auth Models
# =============================================================================


class TokenResponse(BaseModel):
    """What a token provider returns for one acquisition.

    Providers may also return a plain mapping; it is validated into this
    model, accepting the camelCase names (``accessToken``,
    ``alternateServiceBaseUrl``...). Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    access_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("access_token", "accessToken"),
        description="OAuth bearer token",
    )
    expiration: float | None = Field(default=None, description="Expiry as epoch seconds")
    refresh_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("refresh_token", "refreshToken"),
        description="Refresh token, if issued",
    )
    soap_instance_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "soap_instance_url", "soapInstanceUrl", "alternateServiceBaseUrl"
        ),
        description="Tenant-specific SOAP base URL, if the auth server sent one",
    )


class AuthConfig(BaseModel):
    """Credentials and endpoint for the OAuth token service.

    Accepts both ``client_id`` and the ``clientId`` spelling used by the
    Marketing Cloud documentation.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    client_id: str = Field(alias="clientId", min_length=1, description="Installed package client id")
    client_secret: str = Field(
        alias="clientSecret", min_length=1, description="Installed package client secret"
    )
    auth_url: str = Field(default=DEFAULT_AUTH_URL, alias="authUrl", description="Token endpoint")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    access_type: str | None = Field(default=None, alias="accessType")
    timeout: float = Field(default=30.0, description="Token request timeout in seconds")


# =============================================================================
# Client Configuration
# =============================================================================


class ClientConfig(BaseModel):
    """Construction-time configuration for FuelSoap.

    ``auth`` is either a mapping of AuthConfig fields or an object that
    already implements ``get_access_token``.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True, populate_by_name=True)

    auth: Any = Field(description="Auth options or a token provider")
    soap_endpoint: str = Field(
        default=DEFAULT_SOAP_ENDPOINT, alias="soapEndpoint", description="SOAP service URI"
    )
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers added to every request"
    )
    request_options: TransportOverrides = Field(
        default_factory=TransportOverrides, description="Default transport overrides"
    )
    proxy: str | None = Field(default=None, description="Proxy URL for every request")

    @field_validator("auth")
    @classmethod
    def validate_auth(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("auth options or a token provider are required")
        if isinstance(v, dict) or hasattr(v, "get_access_token"):
            return v
        raise ValueError("auth must be a mapping or provide get_access_token()")
