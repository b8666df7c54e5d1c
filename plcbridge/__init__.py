"""
plcbridge: multi-vendor PLC project and tag interchange.

Supports:
- Vendor detection for Siemens TIA Portal, Rockwell L5X, Beckhoff TwinCAT and Structured Text files
- Project parsing into one vendor-agnostic tag/routine model
- Tag table import (CSV, L5X, XML, XLSX) with per-row validation
- Tag export back to vendor CSV/XML/XLSX and single-tag vendor formatting
"""

from .detector import detect_vendor
from .dialects import VendorDialect, get_dialect, load_dialect_file
from .formatters import format_tag, generate_placeholder_address, validate_address_for_vendor
from .models import PLCRoutine, PLCTag, StandardPLCOutput, Tag, Vendor
from .parsers import parse_multiple_projects, parse_project
from .st_parser import STVariableParser, parse_st_variables
from .store import TagStore
from .tag_export import ExportOptions, export_csv, export_tags
from .tag_import import ImportResult, import_tags

__version__ = "1.0.0"
__all__ = [
    "detect_vendor",
    "VendorDialect",
    "get_dialect",
    "load_dialect_file",
    "format_tag",
    "generate_placeholder_address",
    "validate_address_for_vendor",
    "PLCRoutine",
    "PLCTag",
    "StandardPLCOutput",
    "Tag",
    "Vendor",
    "parse_multiple_projects",
    "parse_project",
    "STVariableParser",
    "parse_st_variables",
    "TagStore",
    "ExportOptions",
    "export_csv",
    "export_tags",
    "ImportResult",
    "import_tags",
]
