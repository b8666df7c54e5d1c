"""
Vendor dialect descriptors.

A dialect bundles everything that differs between vendors as data rather than
code: CSV header synonyms, the allowed data-type set and its mapping onto the
standard tag types, the address grammar, the physical-address markers used to
classify inputs and outputs, placeholder addresses for the formatters and the
export column set.

The three built-in dialects ship as YAML files under ``plcbridge/data/dialects``.
Callers may load their own file with :func:`load_dialect_file` and pass the
resulting :class:`VendorDialect` to any parser, importer, exporter or formatter.
"""

import re
import logging
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Pattern, Tuple, Union

import yaml
from ordered_set import OrderedSet

from .errors import DialectError
from .models import Direction, TagType

logger = logging.getLogger(__name__)

_DIALECT_PACKAGE = "plcbridge.data.dialects"
BUILTIN_DIALECTS = ("rockwell", "siemens", "beckhoff")

# Markers shared by every vendor: IEC located addresses and spelled-out tokens.
_SHARED_INPUT_MARKERS = ("%I", "INPUT")
_SHARED_OUTPUT_MARKERS = ("%Q", "OUTPUT")


def normalize_header(raw: Any) -> str:
    """Lower-case a header cell and collapse whitespace/underscores to single spaces."""
    if raw is None:
        return ""
    return re.sub(r"[\s_]+", " ", str(raw).strip().lower())


def normalize_type_name(raw: Any) -> str:
    """Upper-case a data type name; inner whitespace becomes an underscore (``time of day``)."""
    if raw is None:
        return ""
    return re.sub(r"\s+", "_", str(raw).strip().upper())


@dataclass(frozen=True, eq=False)
class FormatterProfile:
    """How a dialect renders a single tag for ad-hoc conversion."""
    vendor_label: str
    name_key: str
    include_description: bool
    allowed_types: OrderedSet
    default_type: str
    default_scope: str


@dataclass(frozen=True, eq=False)
class VendorDialect:
    """Immutable description of one vendor's tag conventions."""
    name: str
    display_name: str
    header_synonyms: Mapping[str, str]
    allowed_types: OrderedSet
    standard_types: Mapping[str, str]
    unknown_standard_type: str
    address_patterns: Tuple[Pattern, ...]
    input_markers: Tuple[Pattern, ...]
    output_markers: Tuple[Pattern, ...]
    placeholder_addresses: Mapping[str, str]
    export_columns: Tuple[Tuple[str, Optional[str]], ...]
    formatter: FormatterProfile
    name_pattern: Optional[Pattern] = None
    preserve_type_case: bool = False
    infer_missing_type: bool = False
    detect_delimiter: bool = False

    def canonical_header(self, raw: Any) -> Optional[str]:
        """Map a raw column header onto a canonical field name, or None to drop the column."""
        return self.header_synonyms.get(normalize_header(raw))

    def normalize_type(self, raw: Any) -> Optional[str]:
        """Return the normalized type key if it is in the allowed set, else None."""
        key = normalize_type_name(raw)
        if key and key in self.allowed_types:
            return key
        return None

    def standard_type(self, type_key: str) -> str:
        return self.standard_types.get(normalize_type_name(type_key), self.unknown_standard_type)

    def is_valid_name(self, name: str) -> bool:
        if self.name_pattern is None:
            return True
        return bool(self.name_pattern.match(name))

    def is_valid_address(self, address: str) -> bool:
        address = address.strip()
        return any(pattern.match(address) for pattern in self.address_patterns)

    def is_input_address(self, address: str) -> bool:
        return any(pattern.search(address.strip()) for pattern in self.input_markers)

    def is_output_address(self, address: str) -> bool:
        return any(pattern.search(address.strip()) for pattern in self.output_markers)

    def address_direction(self, address: Optional[str]) -> Direction:
        """Classify an address as Input, Output or Internal."""
        return derive_direction(address, self)

    def tag_type_for_address(self, address: Optional[str]) -> str:
        """Input marker -> ``input``, output marker -> ``output``, anything else -> ``memory``."""
        if not address:
            return TagType.MEMORY.value
        if self.is_input_address(address):
            return TagType.INPUT.value
        if self.is_output_address(address):
            return TagType.OUTPUT.value
        return TagType.MEMORY.value

    def placeholder_address(self, scope: Optional[str]) -> Optional[str]:
        if not scope:
            return None
        return self.placeholder_addresses.get(scope.strip().lower())


def derive_direction(address: Optional[str], dialect: Optional[VendorDialect] = None) -> Direction:
    """
    Derive the I/O direction of an address.

    The shared rule (``%I``/``INPUT`` -> Input, ``%Q``/``OUTPUT`` -> Output) applies
    to every vendor; a dialect adds its own physical-address markers such as
    ``I0.0`` (Siemens) or ``I:0/0`` (Rockwell).
    """
    if not address:
        return Direction.INTERNAL
    upper = address.strip().upper()
    if any(marker in upper for marker in _SHARED_INPUT_MARKERS):
        return Direction.INPUT
    if dialect is not None and dialect.is_input_address(upper):
        return Direction.INPUT
    if any(marker in upper for marker in _SHARED_OUTPUT_MARKERS):
        return Direction.OUTPUT
    if dialect is not None and dialect.is_output_address(upper):
        return Direction.OUTPUT
    return Direction.INTERNAL


def _compile_all(patterns: Any, field_name: str, dialect_name: str) -> Tuple[Pattern, ...]:
    compiled = []
    for pattern in patterns or []:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            raise DialectError(f"Dialect '{dialect_name}': invalid {field_name} pattern {pattern!r}: {e}")
    return tuple(compiled)


def dialect_from_dict(data: Dict[str, Any]) -> VendorDialect:
    """Build a :class:`VendorDialect` from a decoded YAML/JSON mapping."""
    if not isinstance(data, dict):
        raise DialectError("Dialect descriptor must be a mapping")
    name = str(data.get("name") or "").strip().lower()
    if not name:
        raise DialectError("Dialect descriptor is missing 'name'")

    allowed = OrderedSet(normalize_type_name(t) for t in data.get("allowed_types") or [])
    if not allowed:
        raise DialectError(f"Dialect '{name}' declares no allowed_types")

    standard_types = {normalize_type_name(k): str(v).upper() for k, v in (data.get("standard_types") or {}).items()}
    synonyms = {normalize_header(k): str(v) for k, v in (data.get("header_synonyms") or {}).items()}

    columns = []
    for entry in data.get("export_columns") or []:
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            raise DialectError(f"Dialect '{name}': export column must be [header, field], got {entry!r}")
        columns.append((str(entry[0]), entry[1]))

    fmt = data.get("formatter") or {}
    formatter = FormatterProfile(
        vendor_label=str(fmt.get("vendor_label") or data.get("display_name") or name.title()),
        name_key=str(fmt.get("name_key") or "Name"),
        include_description=bool(fmt.get("include_description", True)),
        allowed_types=OrderedSet(normalize_type_name(t) for t in fmt.get("allowed_types") or allowed),
        default_type=normalize_type_name(fmt.get("default_type") or "DINT"),
        default_scope=str(fmt.get("default_scope") or "Internal"),
    )

    name_pattern = data.get("name_pattern")
    return VendorDialect(
        name=name,
        display_name=str(data.get("display_name") or name.title()),
        header_synonyms=MappingProxyType(synonyms),
        allowed_types=allowed,
        standard_types=MappingProxyType(standard_types),
        unknown_standard_type=str(data.get("unknown_standard_type") or "DINT").upper(),
        address_patterns=_compile_all(data.get("address_patterns"), "address", name),
        input_markers=_compile_all(data.get("input_markers"), "input marker", name),
        output_markers=_compile_all(data.get("output_markers"), "output marker", name),
        placeholder_addresses=MappingProxyType(
            {str(k).lower(): str(v) for k, v in (data.get("placeholder_addresses") or {}).items()}
        ),
        export_columns=tuple(columns),
        formatter=formatter,
        name_pattern=re.compile(name_pattern) if name_pattern else None,
        preserve_type_case=bool(data.get("preserve_type_case", False)),
        infer_missing_type=bool(data.get("infer_missing_type", False)),
        detect_delimiter=bool(data.get("detect_delimiter", False)),
    )


def load_dialect_file(path: Union[str, Path]) -> VendorDialect:
    """Load a dialect descriptor from a YAML file on disk."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise DialectError(f"Could not load dialect from {path}: {e}") from e
    dialect = dialect_from_dict(data)
    logger.debug(f"Loaded dialect '{dialect.name}' from {path}")
    return dialect


@lru_cache(maxsize=None)
def load_dialect(name: str) -> VendorDialect:
    """Load one of the packaged dialects by vendor name."""
    key = str(name).strip().lower()
    if key not in BUILTIN_DIALECTS:
        raise DialectError(f"Unknown dialect: {name!r}")
    try:
        text = resources.files(_DIALECT_PACKAGE).joinpath(f"{key}.yaml").read_text(encoding="utf-8")
    except FileNotFoundError:
        raise DialectError(f"Dialect resource not found: {_DIALECT_PACKAGE}/{key}.yaml") from None
    return dialect_from_dict(yaml.safe_load(text))


def get_dialect(vendor: Union[str, "VendorDialect", Any]) -> VendorDialect:
    """Resolve a vendor name, enum member or dialect instance to a dialect."""
    if isinstance(vendor, VendorDialect):
        return vendor
    value = getattr(vendor, "value", vendor)
    return load_dialect(str(value).strip().lower())
