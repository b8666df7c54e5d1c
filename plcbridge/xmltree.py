"""
XML document model and generic tree search.

Vendor XML is converted into plain objects the way most XML-to-object
converters do it: attributes and child elements become keys of one object,
and a key holds either a single child or several same-named siblings. To keep
that ambiguity explicit, every value stored under a key is one of two variants:

- ``Scalar(value)`` - exactly one occurrence (an object, or a text string)
- ``Many(items)``   - two or more same-named siblings, in document order

Element text that sits next to attributes or children is stored under ``"_"``.
An element with neither attributes nor children collapses to its text.

:func:`find_nodes` walks such a document depth-first and returns every value
stored under a given key, regardless of depth or of the Scalar/Many shape.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import defusedxml.ElementTree as DefusedET
from defusedxml.common import DefusedXmlException

from .errors import MalformedDocumentError


TEXT_KEY = "_"


@dataclass(frozen=True)
class Scalar:
    """A key that occurred once."""
    value: Any


@dataclass(frozen=True)
class Many:
    """A key that occurred several times."""
    items: Tuple[Any, ...]


Node = Union[Scalar, Many]
XMLObject = Dict[str, Node]


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` or ``prefix:`` qualifier from a tag or attribute name."""
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    if ":" in tag:
        tag = tag.rsplit(":", 1)[1]
    return tag


def _element_text(elem: ET.Element) -> str:
    text = elem.text or ""
    if not text.strip():
        return ""
    return text.strip("\r\n")


def element_to_value(elem: ET.Element) -> Union[str, XMLObject]:
    """Convert one element (recursively) into a text string or an object of Nodes."""
    children = list(elem)
    text = _element_text(elem)
    if not children and not elem.attrib:
        return text

    obj: XMLObject = {}
    for key, value in elem.attrib.items():
        obj[local_name(key)] = Scalar(value)

    grouped: Dict[str, List[Any]] = {}
    for child in children:
        if not isinstance(child.tag, str):
            continue
        grouped.setdefault(local_name(child.tag), []).append(element_to_value(child))

    for key, values in grouped.items():
        if key in obj:
            # attribute and child element share a name; keep both
            values = [obj[key].value] + values
        obj[key] = Scalar(values[0]) if len(values) == 1 else Many(tuple(values))

    if text:
        obj[TEXT_KEY] = Scalar(text)
    return obj


def parse_xml(content: Union[str, bytes], source: str = "<xml>") -> XMLObject:
    """
    Parse XML text into a document object ``{root_name: Scalar(root)}``.

    Raises:
        MalformedDocumentError: if the content is not well-formed XML or uses
            forbidden constructs (entity expansion, external references)
    """
    try:
        root = DefusedET.fromstring(content)
    except (ET.ParseError, DefusedXmlException, ValueError) as e:
        raise MalformedDocumentError(source, f"XML parse failed: {e}", cause=e) from e
    return {local_name(root.tag): Scalar(element_to_value(root))}


def as_list(value: Any) -> List[Any]:
    """Unwrap a Node (or a bare value) into a list of plain values."""
    if value is None:
        return []
    if isinstance(value, Scalar):
        return [value.value]
    if isinstance(value, Many):
        return list(value.items)
    return [value]


def first(value: Any) -> Any:
    """First plain value of a Node, or the value itself."""
    items = as_list(value)
    return items[0] if items else None


def text_of(value: Any) -> str:
    """Text content of a plain value or Node: strings as-is, objects via their ``"_"`` key."""
    value = first(value)
    if value is None:
        return ""
    if isinstance(value, dict):
        return text_of(value.get(TEXT_KEY))
    return str(value)


def _children(obj: XMLObject) -> List[Tuple[str, Any]]:
    return [(key, item) for key, node in obj.items() for item in as_list(node)]


def iter_nodes(document: Any, name: str, nested: bool = True) -> Iterator[Any]:
    """
    Yield every value stored under key ``name``, depth-first in document order.

    Matches are yielded before their own descendants, so nested same-named
    nodes are returned too unless ``nested`` is false, in which case the
    search does not descend into a match. Traversal uses an explicit stack and
    does not mutate the document.
    """
    stack: List[Tuple[Optional[str], Any]] = [(None, item) for item in reversed(as_list(document))]
    while stack:
        key, item = stack.pop()
        if key == name:
            yield item
            if not nested:
                continue
        if isinstance(item, dict):
            stack.extend(reversed(_children(item)))


def find_nodes(document: Any, name: str, nested: bool = True) -> List[Any]:
    """Return all values stored under key ``name`` as a flat, ordered list."""
    return list(iter_nodes(document, name, nested))


def find_first(document: Any, name: str) -> Any:
    return next(iter_nodes(document, name), None)


def get_field(obj: Any, path: str) -> str:
    """
    Read a text field from an object.

    ``path`` names a key, or several keys separated by ``/`` to descend
    (``AttributeList/Name``). Missing keys yield an empty string.
    """
    current = first(obj)
    for part in path.split("/"):
        if not isinstance(current, dict):
            return ""
        current = first(current.get(part))
    return text_of(current).strip()


def first_field(obj: Any, paths: Sequence[str], default: str = "") -> str:
    """Return the first non-empty field among candidate paths."""
    for path in paths:
        value = get_field(obj, path)
        if value:
            return value
    return default
