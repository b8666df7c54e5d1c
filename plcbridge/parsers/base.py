"""
Declarative project parser.

Each vendor parser is the same machine driven by a different mapping table:

- :class:`TagMapping` names a node path (successive tree-search steps, e.g.
  ``("SW.Blocks.FB", "Interface", "Section", "Member")``), the candidate keys
  for each canonical field, and how Scope and Direction are derived.
- :class:`RoutineMapping` does the same for routines and names a code
  extractor.

A parse never raises: malformed documents and unexpected failures are logged
and the partially filled :class:`StandardPLCOutput` is returned.
"""

import logging
import zipfile
import zlib
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePath
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from ..dialects import VendorDialect, derive_direction, get_dialect
from ..errors import MalformedDocumentError
from ..models import Direction, PLCRoutine, PLCTag, ProjectMetadata, StandardPLCOutput, Vendor
from ..xmltree import XMLObject, find_first, find_nodes, first_field, get_field, parse_xml, text_of

logger = logging.getLogger(__name__)

# Section name -> direction, for interface sections (Siemens) and VAR sections (ST)
SECTION_DIRECTIONS: Mapping[str, Direction] = {
    "INPUT": Direction.INPUT,
    "OUTPUT": Direction.OUTPUT,
    "INOUT": Direction.INTERNAL,
    "STAT": Direction.INTERNAL,
    "STATIC": Direction.INTERNAL,
    "TEMP": Direction.INTERNAL,
    "CONSTANT": Direction.INTERNAL,
    "RETURN": Direction.INTERNAL,
    "GLOBAL": Direction.INTERNAL,
    "LOCAL": Direction.INTERNAL,
}


def section_direction(section: str) -> Direction:
    return SECTION_DIRECTIONS.get(section.strip().upper().replace("_", ""), Direction.INTERNAL)


def usage_direction(usage: str) -> Direction:
    """Rockwell parameter Usage: ``Input`` -> Input, ``Output`` -> Output, anything else Internal."""
    value = usage.strip().upper()
    if value == "INPUT":
        return Direction.INPUT
    if value == "OUTPUT":
        return Direction.OUTPUT
    return Direction.INTERNAL


# Direction rules a TagMapping may name
DIRECTION_FROM_ADDRESS = "address"
DIRECTION_FROM_SECTION = "section"
DIRECTION_FROM_USAGE = "usage"


@dataclass(frozen=True)
class TagMapping:
    """Where to find tags in a document and how to fill a :class:`PLCTag`."""
    path: Tuple[str, ...]
    name: Tuple[str, ...] = ("Name",)
    data_type: Tuple[str, ...] = ("DataType",)
    address: Tuple[str, ...] = ("Address",)
    description: Tuple[str, ...] = ("Comment", "Description")
    scope: str = ""
    scope_keys: Tuple[str, ...] = ()
    scope_from: Optional[Tuple[str, str]] = None
    direction: str = DIRECTION_FROM_ADDRESS
    usage: Tuple[str, ...] = ("Usage",)
    nested: bool = True


@dataclass(frozen=True)
class RoutineMapping:
    """Where to find routines in a document and how to fill a :class:`PLCRoutine`."""
    path: Tuple[str, ...]
    code: str
    routine_type: str = ""
    type_keys: Tuple[str, ...] = ()
    name: Tuple[str, ...] = ("Name",)
    program_from: Optional[Tuple[str, str]] = None
    program_keys: Tuple[str, ...] = ()


# -- code extractors ---------------------------------------------------------------

def extract_st_code(node: Any) -> str:
    """Raw ST source from an ``STSource`` node, else from ``Implementation/ST``."""
    source = find_first(node, "STSource")
    if source is not None:
        return text_of(source)
    return extract_implementation_st(node)


def extract_implementation_st(node: Any) -> str:
    implementation = find_first(node, "Implementation")
    if implementation is None:
        return ""
    st = find_first(implementation, "ST")
    return text_of(st) if st is not None else ""


def extract_rockwell_code(node: Any) -> str:
    """ST content lines joined by newlines, else ladder rung texts in document order."""
    st_content = find_first(node, "STContent")
    if st_content is not None:
        return "\n".join(text_of(line) for line in find_nodes(st_content, "Line"))
    rll_content = find_first(node, "RLLContent")
    if rll_content is not None:
        return "\n".join(get_field(rung, "Text") for rung in find_nodes(rll_content, "Rung"))
    return ""


CODE_EXTRACTORS: Dict[str, Callable[[Any], str]] = {
    "st_source": extract_st_code,
    "implementation_st": extract_implementation_st,
    "rockwell": extract_rockwell_code,
}


def walk_path(document: Any, path: Tuple[str, ...],
              nested: bool = True) -> Iterator[Tuple[Any, Dict[str, Any]]]:
    """
    Yield ``(node, ancestors)`` for every node reached through ``path``.

    Each step is a tree search inside the nodes found by the previous step.
    With ``nested`` false a step does not look inside its own matches, so
    members of a struct member are not reported as members of its section.
    ``ancestors`` maps each earlier step name to the node it matched.
    """
    def _walk(current: Any, depth: int, ancestors: Dict[str, Any]):
        for match in find_nodes(current, path[depth], nested):
            if depth == len(path) - 1:
                yield match, ancestors
            else:
                yield from _walk(match, depth + 1, {**ancestors, path[depth]: match})

    if path:
        yield from _walk(document, 0, {})


@dataclass
class ParseContext:
    """Per-call state handed to the mapping hooks."""
    filename: str
    output: StandardPLCOutput
    member: str = ""


class MappingProjectParser:
    """
    Generic vendor project parser.

    Subclasses set ``vendor``, ``tag_mappings``, ``routine_mappings`` and the
    metadata labels; they may override :meth:`extract_extra` for structure a
    flat mapping cannot express.
    """

    vendor: Vendor = Vendor.UNKNOWN
    dialect_name: Optional[str] = None
    tag_mappings: Tuple[TagMapping, ...] = ()
    routine_mappings: Tuple[RoutineMapping, ...] = ()
    plc_type: Optional[str] = None
    software_version: Optional[str] = None

    def __init__(self, dialect: Optional[VendorDialect] = None):
        if dialect is None and self.dialect_name:
            dialect = get_dialect(self.dialect_name)
        self.dialect = dialect

    def parse(self, filename: str, buffer: bytes) -> StandardPLCOutput:
        """
        Parse a project file into the canonical model.

        Args:
            filename: Original file name
            buffer: Raw file content

        Returns:
            StandardPLCOutput, possibly partial if parts of the file could not be read
        """
        logger.info(f"Parsing {self.vendor.value} project: {filename}")
        output = StandardPLCOutput(vendor=self.vendor.value, project_name=PurePath(filename).name)
        context = ParseContext(filename=PurePath(filename).name, output=output)
        file_count = 1
        try:
            documents = list(self.load_documents(filename, buffer))
            file_count = max(len(documents), 1)
            for member, content in documents:
                context.member = member
                self._parse_document(content, context)
        except MalformedDocumentError as e:
            logger.warning(f"{self.vendor.value} parsing failed: {e}")
        except Exception as e:
            logger.error(f"{self.vendor.value} parsing failed for {filename}: {e}", exc_info=True)

        output.metadata = self.build_metadata(buffer, file_count)
        logger.info(f"Parsed {self.vendor.value} project {filename}: "
                    f"{len(output.tags)} tags, {len(output.routines)} routines")
        return output

    def load_documents(self, filename: str, buffer: bytes) -> Iterator[Tuple[str, bytes]]:
        """Yield ``(member_name, xml_bytes)`` pairs; a plain XML file is one document."""
        yield PurePath(filename).name, buffer

    def build_metadata(self, buffer: bytes, file_count: int) -> ProjectMetadata:
        return ProjectMetadata(
            file_count=file_count,
            total_size=len(buffer),
            plc_type=self.plc_type,
            software_version=self.software_version,
        )

    def _parse_document(self, content: bytes, context: ParseContext) -> None:
        try:
            document = parse_xml(content, source=context.member)
        except MalformedDocumentError as e:
            logger.warning(f"Skipping {context.member}: {e}")
            return

        for mapping in self.tag_mappings:
            for node, ancestors in walk_path(document, mapping.path, mapping.nested):
                context.output.tags.append(self.build_tag(node, ancestors, mapping))
        for mapping in self.routine_mappings:
            for node, ancestors in walk_path(document, mapping.path):
                context.output.routines.append(self.build_routine(node, ancestors, mapping, context))
        self.extract_extra(document, context)

    def build_tag(self, node: Any, ancestors: Dict[str, Any], mapping: TagMapping) -> PLCTag:
        address = first_field(node, mapping.address)
        scope = first_field(node, mapping.scope_keys, default=mapping.scope)
        if mapping.scope_from is not None:
            step, key = mapping.scope_from
            scope = get_field(ancestors.get(step), key) or scope

        if mapping.direction == DIRECTION_FROM_SECTION:
            direction = section_direction(scope)
        elif mapping.direction == DIRECTION_FROM_USAGE:
            direction = usage_direction(first_field(node, mapping.usage))
        else:
            direction = derive_direction(address, self.dialect)

        return PLCTag(
            TagName=first_field(node, mapping.name),
            DataType=first_field(node, mapping.data_type),
            Scope=scope,
            Address=address,
            Direction=direction.value,
            Description=first_field(node, mapping.description),
        )

    def build_routine(self, node: Any, ancestors: Dict[str, Any], mapping: RoutineMapping,
                      context: ParseContext) -> PLCRoutine:
        program = first_field(node, mapping.program_keys)
        if mapping.program_from is not None:
            step, key = mapping.program_from
            program = get_field(ancestors.get(step), key) or program
        return PLCRoutine(
            Name=first_field(node, mapping.name),
            Type=first_field(node, mapping.type_keys, default=mapping.routine_type),
            Code=CODE_EXTRACTORS[mapping.code](node),
            Program=program,
            File=context.member if context.member != context.filename else "",
        )

    def extract_extra(self, document: XMLObject, context: ParseContext) -> None:
        """Hook for vendor structure that the mapping tables do not cover."""
        pass


class ArchiveMixin:
    """Treat ZIP-based project archives as a set of XML members."""

    archive_extensions: Tuple[str, ...] = ()

    def load_documents(self, filename: str, buffer: bytes) -> Iterator[Tuple[str, bytes]]:
        if PurePath(filename).suffix.lower() not in self.archive_extensions:
            yield PurePath(filename).name, buffer
            return
        try:
            archive = zipfile.ZipFile(BytesIO(buffer))
        except zipfile.BadZipFile as e:
            raise MalformedDocumentError(filename, f"not a readable archive: {e}", cause=e) from e
        with archive:
            for info in archive.infolist():
                if info.is_dir() or not info.filename.lower().endswith(".xml"):
                    continue
                logger.debug(f"Reading archive member {info.filename}")
                try:
                    content = archive.read(info)
                except (zipfile.BadZipFile, zlib.error, NotImplementedError) as e:
                    logger.warning(f"Skipping unreadable archive member {info.filename}: {e}")
                    continue
                yield info.filename, content
