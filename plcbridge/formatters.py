"""
Vendor formatters.

Turn one canonical tag into the vendor-native tag object used for export and
for ad-hoc single-tag conversion. Data types are clamped to the formatter's
allowed set and missing addresses are replaced by a per-scope placeholder
(``I:0.0``, ``DB1.DBD0``, ``%Q0.0``, ...). Placeholders are generic stand-ins,
not hardware allocations.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Union

from .dialects import VendorDialect, get_dialect, normalize_type_name
from .errors import DialectError, UnsupportedFormatError
from .models import CreateTagData, Tag

logger = logging.getLogger(__name__)

TagLike = Union[Tag, CreateTagData, Mapping[str, Any]]


def _resolve_dialect(vendor: Any, dialect: Optional[VendorDialect] = None) -> VendorDialect:
    if dialect is not None:
        return dialect
    try:
        return get_dialect(vendor)
    except DialectError as e:
        raise UnsupportedFormatError(str(getattr(vendor, "value", vendor)), f"Unsupported vendor: {vendor}") from e


def _field(tag: TagLike, name: str) -> Any:
    if isinstance(tag, Mapping):
        return tag.get(name)
    return getattr(tag, name, None)


def generate_placeholder_address(scope: Optional[str], vendor: Any,
                                 dialect: Optional[VendorDialect] = None) -> Optional[str]:
    """Placeholder address for a scope (``input``, ``output``, ``global``, ``local``), or None."""
    return _resolve_dialect(vendor, dialect).placeholder_address(scope)


def validate_address_for_vendor(address: str, vendor: Any, dialect: Optional[VendorDialect] = None) -> bool:
    """Check an address against a vendor's address grammar. Unknown vendors never validate."""
    try:
        resolved = _resolve_dialect(vendor, dialect)
    except UnsupportedFormatError:
        return False
    return resolved.is_valid_address(address or "")


def format_tag(tag: TagLike, vendor: Any, dialect: Optional[VendorDialect] = None) -> Dict[str, Any]:
    """
    Format a canonical tag for a vendor.

    Args:
        tag: A persisted Tag, a CreateTagData or a mapping with the same field names
        vendor: Vendor name or enum (``rockwell``, ``siemens``, ``beckhoff``)
        dialect: Optional dialect to use instead of the packaged one

    Returns:
        Vendor-native tag dictionary

    Raises:
        UnsupportedFormatError: if there is no dialect for the vendor
    """
    resolved = _resolve_dialect(vendor, dialect)
    profile = resolved.formatter

    data_type = normalize_type_name(_field(tag, "data_type"))
    if data_type not in profile.allowed_types:
        data_type = profile.default_type

    scope = _field(tag, "scope") or ""
    address = _field(tag, "address")
    if not address:
        address = resolved.placeholder_address(scope)
        logger.debug(f"No address for {_field(tag, 'name')!r}; using placeholder {address!r}")

    formatted: Dict[str, Any] = {
        profile.name_key: _field(tag, "name") or "",
        "DataType": data_type,
        "Address": address,
    }
    if profile.include_description:
        formatted["Description"] = _field(tag, "description") or ""
    formatted["Scope"] = scope or profile.default_scope
    formatted["DefaultValue"] = _field(tag, "default_value") or None
    formatted["Vendor"] = profile.vendor_label
    return formatted
