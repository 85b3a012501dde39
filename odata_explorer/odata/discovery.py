"""
odata_explorer.odata.discovery - Resource discovery
===================================================

Turns a service document or $metadata body into a sorted list of
resource descriptors, and fetches those bodies from a live service.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, TYPE_CHECKING
import json
import logging
import unicodedata
import xml.etree.ElementTree as ET

import requests

if TYPE_CHECKING:
    from odata_explorer.core.session import ODataSession

from odata_explorer.core.session import DiscoveryError, ODataUpstreamError
from odata_explorer.odata.metadata import _strip_ns, parse_metadata_names

logger = logging.getLogger("odata_explorer.discovery")

ATOM_NS = "http://www.w3.org/2005/Atom"

SERVICE_DOCUMENT_ACCEPT = "application/xml,application/json;q=0.9,*/*;q=0.8"


class ResourceKind(str, Enum):
    ENTITY_SET = "EntitySet"
    ENTITY_TYPE = "EntityType"
    FUNCTION_IMPORT = "FunctionImport"
    RESOURCE = "Resource"

    @classmethod
    def parse(cls, value: Any) -> "ResourceKind":
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.RESOURCE


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    A named handle to a queryable collection or callable operation.

    Attributes
    ----------
    name : str
        Resource name, unique within a connection
    kind : ResourceKind
        What the service says this resource is
    url : str
        Location of the resource
    """
    name: str
    kind: ResourceKind
    url: str


def sort_key(name: str) -> Tuple[str, str]:
    """Case and accent insensitive ordering, original name as tie-breaker."""
    decomposed = unicodedata.normalize("NFKD", name)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    return (base.casefold(), name)


def sort_resources(resources: Sequence[ResourceDescriptor]) -> List[ResourceDescriptor]:
    return sorted(resources, key=lambda r: sort_key(r.name))


def _join(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


# ---------------- service document ----------------

def _parse_json_service_document(body: str, base_url: str) -> Optional[List[ResourceDescriptor]]:
    """None when the body is not JSON at all."""
    try:
        payload = json.loads(body)
    except ValueError:
        return None

    entries = payload.get("value") if isinstance(payload, dict) else None
    if not isinstance(entries, list):
        return []

    out: List[ResourceDescriptor] = []
    for item in entries:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        name = str(item["name"])
        out.append(ResourceDescriptor(
            name=name,
            kind=ResourceKind.parse(item.get("kind") or "Resource"),
            url=str(item.get("url") or _join(base_url, name)),
        ))
    return out


def _first_text(node: ET.Element, *, namespaced: bool) -> str:
    for child in node.iter():
        if child is node or not isinstance(child.tag, str):
            continue
        if namespaced:
            hit = child.tag == f"{{{ATOM_NS}}}title"
        else:
            hit = _strip_ns(child.tag) == "title"
        if hit:
            text = (child.text or "").strip()
            if text:
                return text
    return ""


def _parse_xml_service_document(body: str, base_url: str) -> List[ResourceDescriptor]:
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return []

    out: List[ResourceDescriptor] = []
    for node in root.iter():
        if not isinstance(node.tag, str):
            continue
        tag = _strip_ns(node.tag)

        if tag == "collection":
            href = node.attrib.get("href") or ""
            title = (
                _first_text(node, namespaced=True)
                or _first_text(node, namespaced=False)
                or href
            )
            if not title:
                continue
            normalized = href.lstrip("/")
            out.append(ResourceDescriptor(
                name=title,
                kind=ResourceKind.ENTITY_SET,
                url=_join(base_url, normalized or title),
            ))

        elif tag == "function-import":
            name = node.attrib.get("name") or node.attrib.get("Title")
            if not name:
                continue
            href = node.attrib.get("href") or name
            out.append(ResourceDescriptor(
                name=name,
                kind=ResourceKind.FUNCTION_IMPORT,
                url=_join(base_url, href.lstrip("/")),
            ))
    return out


def parse_service_document(body: Optional[str], base_url: str) -> List[ResourceDescriptor]:
    """
    Parse a JSON or AtomPub service document.

    Parameters
    ----------
    body : str or None
        Raw service document
    base_url : str
        Connection root used to build resource URLs

    Returns
    -------
    list of ResourceDescriptor
        Sorted descriptors; empty when nothing usable was found
    """
    if not body or not body.strip():
        return []

    resources = _parse_json_service_document(body, base_url)
    if not resources:
        # empty JSON payloads and non-JSON bodies both get the XML pass
        resources = _parse_xml_service_document(body, base_url)
    return sort_resources(resources)


def parse_metadata(body: Optional[str], base_url: str) -> List[ResourceDescriptor]:
    """Build sorted descriptors from a $metadata document."""
    return sort_resources([
        ResourceDescriptor(name=name, kind=ResourceKind(kind), url=_join(base_url, name))
        for name, kind in parse_metadata_names(body)
    ])


def discover(
    service_document: Optional[str],
    metadata: Optional[str],
    base_url: str,
) -> List[ResourceDescriptor]:
    """
    Resolve the resource list from a service document, falling back to $metadata.

    Parameters
    ----------
    service_document : str or None
        Service document body, None if it could not be fetched
    metadata : str or None
        $metadata body, None if it could not be fetched
    base_url : str
        Connection root

    Returns
    -------
    list of ResourceDescriptor
        Sorted ascending by name

    Raises
    ------
    DiscoveryError
        If neither source yields a usable entry

    Examples
    --------
    >>> discover('{"value": [{"name": "Products"}]}', None, "https://host/svc")
    [ResourceDescriptor(name='Products', kind=<ResourceKind.RESOURCE: 'Resource'>, url='https://host/svc/Products')]
    """
    resources = parse_service_document(service_document, base_url)
    if resources:
        return resources

    resources = parse_metadata(metadata, base_url)
    if resources:
        return resources

    raise DiscoveryError("No resources found in service document or $metadata")


def filter_resources(resources: Sequence[ResourceDescriptor], term: Optional[str]) -> List[ResourceDescriptor]:
    """
    Case-insensitive search over name, kind and url.

    An empty term returns every resource.
    """
    needle = (term or "").strip().lower()
    if not needle:
        return list(resources)
    return [
        r for r in resources
        if needle in r.name.lower()
        or needle in r.kind.value.lower()
        or needle in r.url.lower()
    ]


class ResourceDiscovery:
    """
    Fetches and parses the resource list of a live service.

    Performs at most two sequential requests: the service document, and
    $metadata only when the former fails or lists nothing.

    Parameters
    ----------
    sess : ODataSession
        Active OData session

    Examples
    --------
    >>> with ODataSession(cfg) as sess:
    ...     resources = ResourceDiscovery(sess).discover()
    """

    def __init__(self, sess: "ODataSession") -> None:
        self.sess = sess

    def _fetch(self, path: str, accept: str) -> Tuple[Optional[str], Optional[Exception]]:
        try:
            return self.sess.get_text(path, extra_headers={"Accept": accept}), None
        except (ODataUpstreamError, requests.RequestException) as e:
            logger.warning("discovery: GET %r failed: %s", path or "/", e)
            return None, e

    def discover(self) -> List[ResourceDescriptor]:
        base_url = self.sess.base
        service_doc, error = self._fetch("", SERVICE_DOCUMENT_ACCEPT)

        resources = parse_service_document(service_doc, base_url)
        if resources:
            logger.info("discovery: %d resources from service document", len(resources))
            return resources

        logger.info("discovery: service document listed nothing, trying $metadata")
        metadata, meta_error = self._fetch("$metadata", "application/xml")
        try:
            resources = discover(None, metadata, base_url)
        except DiscoveryError as e:
            raise e from (meta_error or error)
        logger.info("discovery: %d resources from $metadata", len(resources))
        return resources
