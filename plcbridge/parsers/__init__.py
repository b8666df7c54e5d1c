"""
Project parsers.

:func:`parse_project` detects the vendor of a file and hands it to the matching
parser. No parser raises; unknown inputs yield an empty ``Unknown`` result.
"""

import logging
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional, Tuple

from .base import MappingProjectParser, RoutineMapping, TagMapping
from .beckhoff_parser import BeckhoffProjectParser
from .rockwell_parser import RockwellProjectParser
from .siemens_parser import SiemensProjectParser
from .st_project_parser import STProjectParser
from ..detector import detect_vendor
from ..dialects import VendorDialect
from ..models import ProjectMetadata, StandardPLCOutput, Vendor

logger = logging.getLogger(__name__)

PARSERS = {
    Vendor.SIEMENS: SiemensProjectParser,
    Vendor.ROCKWELL: RockwellProjectParser,
    Vendor.BECKHOFF: BeckhoffProjectParser,
}


def get_parser(vendor: Vendor, dialect: Optional[VendorDialect] = None):
    """Instantiate the parser for a vendor, or None when there is none."""
    if vendor == Vendor.GENERIC:
        return STProjectParser()
    parser_class = PARSERS.get(vendor)
    if parser_class is None:
        return None
    return parser_class(dialect=dialect)


def parse_project(filename: str, buffer: bytes,
                  dialects: Optional[Dict[Vendor, VendorDialect]] = None) -> StandardPLCOutput:
    """
    Detect the vendor of a project file and parse it.

    Args:
        filename: Original file name, used for detection and as project name
        buffer: Raw file content
        dialects: Optional per-vendor dialect overrides

    Returns:
        StandardPLCOutput; vendor ``Unknown`` with no tags or routines when the
        file is not recognised
    """
    vendor = detect_vendor(filename, buffer)
    dialect = (dialects or {}).get(vendor)
    parser = get_parser(vendor, dialect)
    if parser is None:
        logger.warning(f"Unknown vendor for file: {filename}")
        return StandardPLCOutput(
            vendor=Vendor.UNKNOWN.value,
            project_name=PurePath(filename).name,
            metadata=ProjectMetadata(file_count=1, total_size=len(buffer)),
        )
    return parser.parse(filename, buffer)


def parse_multiple_projects(files: Iterable[Tuple[str, bytes]],
                            dialects: Optional[Dict[Vendor, VendorDialect]] = None) -> List[StandardPLCOutput]:
    """Parse several ``(filename, buffer)`` pairs, returning results in input order."""
    return [parse_project(filename, buffer, dialects) for filename, buffer in files]


__all__ = [
    "BeckhoffProjectParser",
    "MappingProjectParser",
    "RockwellProjectParser",
    "RoutineMapping",
    "STProjectParser",
    "SiemensProjectParser",
    "TagMapping",
    "get_parser",
    "parse_multiple_projects",
    "parse_project",
]
