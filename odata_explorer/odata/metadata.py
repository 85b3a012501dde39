"""
odata_explorer.odata.metadata - OData $metadata parsing
=======================================================

Lightweight $metadata walk for resource discovery. Only the names of
entity sets, entity types and function imports are read; no schema
validation is attempted.
"""

from __future__ import annotations

from typing import Iterator, List, Optional, Tuple
import xml.etree.ElementTree as ET


def _strip_ns(tag: str) -> str:
    """Strip XML namespace from a tag name."""
    return tag.split("}", 1)[-1] if "}" in tag else tag


def _named(root: ET.Element, local_name: str) -> Iterator[str]:
    for node in root.iter():
        if isinstance(node.tag, str) and _strip_ns(node.tag) == local_name:
            name = (node.attrib.get("Name") or "").strip()
            if name:
                yield name


def parse_metadata_names(xml_text: Optional[str]) -> List[Tuple[str, str]]:
    """
    Walk a $metadata document and list discoverable names.

    EntitySets come first, then EntityTypes whose name is not already
    present, then FunctionImports.

    Parameters
    ----------
    xml_text : str or None
        Raw $metadata body

    Returns
    -------
    list of (name, kind)
        Kind is one of "EntitySet", "EntityType", "FunctionImport".
        Empty when the body is missing or not well-formed XML.
    """
    if not xml_text or not xml_text.strip():
        return []
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError:
        return []

    out: List[Tuple[str, str]] = []
    seen = set()

    for name in _named(root, "EntitySet"):
        out.append((name, "EntitySet"))
        seen.add(name)

    for name in _named(root, "EntityType"):
        if name in seen:
            continue
        out.append((name, "EntityType"))
        seen.add(name)

    for name in _named(root, "FunctionImport"):
        out.append((name, "FunctionImport"))

    return out
