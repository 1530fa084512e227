"""XML-to-dict and dict-to-XML conversion for SOAP envelopes.

Converts request structures into XML text for the partner API and parses
response envelopes back into plain dicts so the response normalizer can work
with ordinary mappings.

Dict conventions (shared by both directions):
- ``"@name"`` keys are XML attributes (``"@xmlns"``, ``"@xsi:type"``).
- ``"#text"`` is the text content of an element that also has attributes
  or children.
- A list value is a run of repeated sibling elements with the same tag.
- ``None`` is an empty element.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from datetime import date, datetime
from typing import Any

_WHITESPACE_RUN = re.compile(r"\s{2,}")


# ---------------------------------------------------------------------------
# XML text → Python dict  (response parsing)
# ---------------------------------------------------------------------------


def xml_to_dict(
    xml: bytes | str,
    force_list: set[str] | None = None,
    ignore_attrs: bool = False,
    normalize: bool = False,
) -> dict[str, Any]:
    """Convert an XML document into a dict.

    Strips namespace URIs from tag names so that
    ``{http://schemas.xmlsoap.org/soap/envelope/}Body`` (written as
    ``soap:Body`` on the wire) becomes ``Body``.

    Args:
        xml: Raw XML document. Strings are encoded as UTF-8 before parsing
            so documents carrying an encoding declaration are accepted.
        force_list: Tag names that must always be wrapped in a list, even
            when only a single child element exists.
        ignore_attrs: Drop all attributes (``xsi:type``, ``xsi:nil``...).
        normalize: Collapse runs of whitespace inside text to one space.

    Returns:
        Dict with the root element tag as the single top-level key.

    Raises:
        ET.ParseError: If *xml* is not well-formed.
    """
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    force_list = force_list or set()
    root = ET.fromstring(xml)
    return {
        _strip_ns(root.tag): _element_to_dict(root, force_list, ignore_attrs, normalize)
    }


def _strip_ns(tag: str) -> str:
    """Remove namespace URI prefix: ``{http://...}Name`` → ``Name``."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _element_to_dict(
    element: ET.Element,
    force_list: set[str],
    ignore_attrs: bool,
    normalize: bool,
) -> dict[str, Any] | str | None:
    """Recursively convert a single XML element to a dict, string, or None.

    Conversion rules:
    - Attributes → ``@attr_name`` keys (xmlns declarations are skipped),
      unless *ignore_attrs* is set.
    - Child elements → grouped by tag name.  If a tag appears more than once
      OR is in *force_list*, the value is a list.  Otherwise it is a scalar.
    - Text-only leaf elements → plain string.
    - Empty elements (``<OverallStatusMessage/>``) → None.
    - Elements with both attributes/children AND text → ``#text`` key.
    """
    result: dict[str, Any] = {}

    if not ignore_attrs:
        for attr_name, attr_value in element.attrib.items():
            if attr_name.startswith("xmlns"):
                continue
            result[f"@{_strip_ns(attr_name)}"] = attr_value

    children_by_tag: dict[str, list[Any]] = {}
    for child in element:
        tag = _strip_ns(child.tag)
        children_by_tag.setdefault(tag, []).append(
            _element_to_dict(child, force_list, ignore_attrs, normalize)
        )

    for tag, values in children_by_tag.items():
        if tag in force_list or len(values) > 1:
            result[tag] = values
        else:
            result[tag] = values[0]

    text = (element.text or "").strip()
    if normalize:
        text = _WHITESPACE_RUN.sub(" ", text)
    if text:
        if result:
            result["#text"] = text
        else:
            return text

    if not result:
        return None

    return result


# ---------------------------------------------------------------------------
# Python dict → XML text  (request serialization)
# ---------------------------------------------------------------------------


def dict_to_xml(data: dict[str, Any], xml_declaration: bool = True) -> bytes:
    """Convert a dict to XML bytes for use as an HTTP request body.

    The dict must have exactly one top-level key, which becomes the root
    element name.  Attribute names are written as given, so prefixed names
    such as ``xsi:type`` rely on a matching ``@xmlns:xsi`` declaration
    somewhere up the tree.

    Args:
        data: Dict with exactly one top-level key (the root element name).
        xml_declaration: Emit a leading ``<?xml ...?>`` declaration.

    Returns:
        UTF-8 encoded XML bytes.

    Raises:
        ValueError: If *data* does not have exactly one top-level key.
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(
            f"dict_to_xml expects a dict with exactly one top-level key "
            f"(the root element), got {type(data).__name__} with "
            f"{len(data) if isinstance(data, dict) else 'N/A'} keys"
        )

    root_tag = next(iter(data))
    root_element = _dict_to_element(root_tag, data[root_tag])

    return ET.tostring(root_element, encoding="utf-8", xml_declaration=xml_declaration)


def _dict_to_element(tag: str, value: Any) -> ET.Element:
    """Recursively convert a tag + value pair into an XML Element.

    Lists are expanded by the caller into repeated siblings; a list reaching
    this function directly (top-level) has each item wrapped as ``item``.
    """
    element = ET.Element(tag)

    if value is None:
        pass
    elif isinstance(value, dict):
        for key, child_value in value.items():
            if key.startswith("@"):
                if child_value is not None:
                    element.set(key[1:], _scalar_text(child_value))
                continue
            if key == "#text":
                if child_value is not None:
                    element.text = _scalar_text(child_value)
                continue
            if isinstance(child_value, (list, tuple)):
                for item in child_value:
                    element.append(_dict_to_element(key, item))
            else:
                element.append(_dict_to_element(key, child_value))
    elif isinstance(value, (list, tuple)):
        for item in value:
            element.append(_dict_to_element("item", item))
    else:
        element.text = _scalar_text(value)

    return element


def _scalar_text(value: Any) -> str:
    """Render a scalar the way the partner API schema expects it."""
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)
