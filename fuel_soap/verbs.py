"""Verb Request Builders - Build the request descriptor for each SOAP verb.

Builders are pure: caller structures are copied before a type discriminator
or option is added, and nothing is sent. FuelSoap's verb methods normalize
the legacy argument shapes, call a builder and hand the descriptor to
soap_request.

Options accepted by Create/Update/Delete/Schedule/Retrieve:
- ``queryAllAccounts``: sent as ``QueryAllAccounts=true``.
- ``reqOptions``: per-call transport overrides (headers, proxy, uri, timeout).
- Retrieve only: ``filter``, ``clientIDs``, ``continueRequest``.
- Anything else (Create/Update/Delete/Schedule) is sent as the ``Options``
  element.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, NamedTuple

from pydantic import ValidationError

from fuel_soap.envelope import PARTNER_API_NS
from fuel_soap.errors import InvalidArgumentError
from fuel_soap.filters import encode_filter, is_structured
from fuel_soap.models import RequestDescriptor, TransportOverrides

DEFAULT_RETRIEVE_PROPERTIES = ("Client", "ID", "ObjectID")
PERFORM_ACTION = "start"


class RetrieveArgs(NamedTuple):
    """Canonical retrieve arguments after legacy shape normalization."""

    props: Any
    options: Any
    callback: Callable[..., Any] | None


class _SplitOptions(NamedTuple):
    wire_options: dict[str, Any] | None
    query_all_accounts: bool
    req_options: TransportOverrides | None


# =============================================================================
# Argument normalization
# =============================================================================


def shift_callback(
    options: Any, callback: Callable[..., Any] | None
) -> tuple[Any, Callable[..., Any] | None]:
    """Support ``verb(..., callback)`` with options omitted.

    A callable in the options position is the callback when no explicit
    callback was given.
    """
    if callback is None and callable(options):
        return None, options
    return options, callback


def normalize_retrieve_args(
    props: Any, options: Any, callback: Callable[..., Any] | None
) -> RetrieveArgs:
    """Map the three retrieve call shapes onto (props, options, callback).

    - ``retrieve(type, callback)``: default properties, no options.
    - ``retrieve(type, props, callback)``: no options, except the case below.
    - ``retrieve(type, props, options, callback)``: used as given.

    When the middle argument of the three-argument form is a mapping, the
    properties are reset to the defaults and the *callback object* is used
    as the options, so ``filter``/``clientIDs`` attributes set on the
    callback are honoured. Existing integrations depend on this, so it is
    kept as is.
    """
    if callback is None:
        if callable(props):
            return RetrieveArgs(list(DEFAULT_RETRIEVE_PROPERTIES), None, props)
        if callable(options):
            if is_structured(props):
                return RetrieveArgs(list(DEFAULT_RETRIEVE_PROPERTIES), options, options)
            return RetrieveArgs(props, None, options)

    if props is None:
        props = list(DEFAULT_RETRIEVE_PROPERTIES)
    return RetrieveArgs(props, options, callback)


def _split_options(options: Any) -> _SplitOptions:
    """Separate client-side keys from the options sent on the wire.

    Returns a fresh dict; an options mapping left empty becomes None so the
    request carries an empty ``<Options/>`` element.
    """
    if not isinstance(options, Mapping):
        return _SplitOptions(None, False, None)

    wire_options = dict(options)
    query_all_accounts = bool(wire_options.pop("queryAllAccounts", False))
    raw_req_options = wire_options.pop("reqOptions", None)

    req_options: TransportOverrides | None = None
    if raw_req_options is not None:
        try:
            req_options = TransportOverrides.model_validate(raw_req_options)
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid reqOptions: {e}") from e

    return _SplitOptions(wire_options or None, query_all_accounts, req_options)


def _read_option(options: Any, name: str) -> Any:
    """Read an option from a mapping, or from attributes of any other object."""
    if options is None:
        return None
    if isinstance(options, Mapping):
        return options.get(name)
    return getattr(options, name, None)


# =============================================================================
# Payload helpers
# =============================================================================


def _with_type(obj: Any, object_type: str, what: str) -> dict[str, Any]:
    if not isinstance(obj, Mapping):
        raise InvalidArgumentError(f"{what} must be a mapping, got {type(obj).__name__}")
    return {**obj, "@xsi:type": object_type}


def _typed_objects(props: Any, object_type: str) -> dict[str, Any] | list[dict[str, Any]]:
    """Attach the type discriminator to one object or to each of a list."""
    if isinstance(props, (list, tuple)):
        return [_with_type(item, object_type, "each object") for item in props]
    return _with_type(props, object_type, "props")


def _typed_interaction(item: Any, object_type: str) -> dict[str, Any]:
    """Type one interaction, either bare or wrapped as ``{"Interaction": {...}}``."""
    if isinstance(item, Mapping) and isinstance(item.get("Interaction"), Mapping):
        return {**item, "Interaction": _with_type(item["Interaction"], object_type, "Interaction")}
    return _with_type(item, object_type, "each interaction")


def _with_query_all_accounts(element: Any) -> dict[str, Any]:
    return {**(element or {}), "QueryAllAccounts": True}


def _objects_request(
    action: str,
    request_element: str,
    response_key: str,
    object_type: str,
    props: Any,
    options: Any,
) -> RequestDescriptor:
    split = _split_options(options)
    request: dict[str, Any] = {
        "@xmlns": PARTNER_API_NS,
        "Options": split.wire_options,
        "Objects": _typed_objects(props, object_type),
    }
    if split.query_all_accounts:
        request["Options"] = _with_query_all_accounts(request["Options"])

    return RequestDescriptor(
        action=action,
        body={request_element: request},
        response_key=response_key,
        retry=True,
        req_options=split.req_options,
    )


# =============================================================================
# Builders
# =============================================================================


def build_create(object_type: str, props: Any, options: Any = None) -> RequestDescriptor:
    return _objects_request("Create", "CreateRequest", "CreateResponse", object_type, props, options)


def build_update(object_type: str, props: Any, options: Any = None) -> RequestDescriptor:
    return _objects_request("Update", "UpdateRequest", "UpdateResponse", object_type, props, options)


def build_delete(object_type: str, props: Any, options: Any = None) -> RequestDescriptor:
    return _objects_request("Delete", "DeleteRequest", "DeleteResponse", object_type, props, options)


def build_retrieve(object_type: str, props: Any = None, options: Any = None) -> RequestDescriptor:
    """Build a RetrieveRequestMsg.

    ``options`` may be a mapping or, for the legacy call shape, the callback
    object itself (see normalize_retrieve_args).
    """
    if props is None:
        props = list(DEFAULT_RETRIEVE_PROPERTIES)

    filter_expr = _read_option(options, "filter")
    client_ids = _read_option(options, "clientIDs")
    continue_request = _read_option(options, "continueRequest")
    split = _split_options(options)

    # Element order follows the RetrieveRequest schema sequence
    request: dict[str, Any] = {}
    if client_ids:
        request["ClientIDs"] = client_ids
    request["ObjectType"] = object_type
    request["Properties"] = props
    if filter_expr:
        request["Filter"] = encode_filter(filter_expr)
    if continue_request:
        request["ContinueRequest"] = continue_request
    if split.query_all_accounts:
        request["QueryAllAccounts"] = True

    return RequestDescriptor(
        action="Retrieve",
        body={"RetrieveRequestMsg": {"@xmlns": PARTNER_API_NS, "RetrieveRequest": request}},
        response_key="RetrieveResponseMsg",
        retry=True,
        req_options=split.req_options,
    )


def build_describe(object_type: str) -> RequestDescriptor:
    return RequestDescriptor(
        action="Describe",
        body={
            "DefinitionRequestMsg": {
                "@xmlns": PARTNER_API_NS,
                "DescribeRequests": {"ObjectDefinitionRequest": {"ObjectType": object_type}},
            }
        },
        response_key="DefinitionResponseMsg",
        retry=True,
    )


def build_execute(object_type: str, parameters: Any) -> RequestDescriptor:
    return RequestDescriptor(
        action="Execute",
        body={
            "ExecuteRequestMsg": {
                "@xmlns": PARTNER_API_NS,
                "Requests": {"Name": object_type, "Parameters": parameters},
            }
        },
        response_key="ExecuteResponseMsg",
        retry=True,
    )


def build_perform(object_type: str, definition: Any) -> RequestDescriptor:
    """Build a PerformRequestMsg that starts one definition."""
    return RequestDescriptor(
        action="Perform",
        body={
            "PerformRequestMsg": {
                "@xmlns": PARTNER_API_NS,
                "Action": PERFORM_ACTION,
                "Definitions": [
                    {"Definition": _with_type(definition, object_type, "definition")}
                ],
            }
        },
        response_key="PerformResponseMsg",
        retry=True,
    )


def build_schedule(
    object_type: str,
    schedule: Any,
    interactions: Any,
    action: str,
    options: Any = None,
) -> RequestDescriptor:
    """Build a ScheduleRequestMsg.

    Args:
        object_type: xsi:type of every interaction, e.g. ``Email``.
        schedule: ScheduleDefinition (Recurrence, StartDateTime, ...).
        interactions: One interaction mapping or a list of them.
        action: Schedule action, e.g. ``start``.
        options: See module docstring.

    Raises:
        InvalidArgumentError: If interactions is neither a mapping nor a list.
    """
    if isinstance(interactions, Mapping):
        typed_interactions: Any = _typed_interaction(interactions, object_type)
    elif isinstance(interactions, (list, tuple)):
        typed_interactions = [_typed_interaction(item, object_type) for item in interactions]
    else:
        raise InvalidArgumentError(
            f"interactions must be a mapping or a list, got {type(interactions).__name__}"
        )

    split = _split_options(options)
    # ScheduleRequestMsg sequence: Options comes after Interactions
    request: dict[str, Any] = {
        "@xmlns": PARTNER_API_NS,
        "Action": action,
        "Schedule": schedule,
        "Interactions": typed_interactions,
        "Options": split.wire_options,
    }
    if split.query_all_accounts:
        request["Options"] = _with_query_all_accounts(request["Options"])

    return RequestDescriptor(
        action="Schedule",
        body={"ScheduleRequestMsg": request},
        response_key="ScheduleResponseMsg",
        retry=True,
        req_options=split.req_options,
    )


def build_extract(definition: Any) -> RequestDescriptor:
    """Build an ExtractRequestMsg; *definition* is sent unchanged as Requests."""
    return RequestDescriptor(
        action="Extract",
        body={"ExtractRequestMsg": {"@xmlns": PARTNER_API_NS, "Requests": definition}},
        response_key="ExtractResponseMsg",
        retry=True,
    )
