"""Message payload handling.

Archived payloads are stored as serialized XML. A stored blob may hold
several top-level elements; each one is surfaced as its own fragment.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET

# Wrapper so a blob with several top-level elements parses as one document.
_WRAPPER = "archived"


def serialize(payload: ET.Element | str) -> str:
    """Serialize a payload for storage."""
    if isinstance(payload, ET.Element):
        return ET.tostring(payload, encoding="unicode")
    return payload


def parse_fragments(payload: str) -> list[ET.Element]:
    """Parse every top-level element of a stored payload.

    Raises:
        xml.etree.ElementTree.ParseError: If the payload is not well-formed.
    """
    root = ET.fromstring(f"<{_WRAPPER}>{payload}</{_WRAPPER}>")
    return list(root)


def message_type(payload: ET.Element | str) -> str | None:
    """The `type` attribute of the (first) message element."""
    if isinstance(payload, ET.Element):
        return payload.get("type")
    fragments = parse_fragments(payload)
    return fragments[0].get("type") if fragments else None
