"""
Tag import pipelines.

Every vendor format goes through the same three steps:

1. decode the file into rows of canonical fields (``name``, ``data_type``,
   ``address``, ``description``, ``default_value``, ``scope``, ...), mapping
   headers through the dialect's synonym table and dropping unknown columns;
2. validate and map each row into a :class:`~plcbridge.models.CreateTagData`,
   collecting per-row failures keyed by 1-based row number;
3. if any row failed, return ``success=False`` with every error and persist
   nothing; otherwise upsert all rows into the :class:`~plcbridge.store.TagStore`.

Data problems are returned, never raised. Store failures raise
:class:`~plcbridge.errors.PersistenceError`.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import load_workbook

from .dialects import VendorDialect, get_dialect
from .errors import MalformedDocumentError, RowValidationError, UnsupportedFormatError
from .models import CreateTagData, TagScope, TagType, TagVendor
from .store import TagStore
from .xmltree import find_first, find_nodes, first_field, parse_xml

logger = logging.getLogger(__name__)

Row = Dict[str, str]

_SCOPE_ALIASES = {
    "global": TagScope.GLOBAL.value,
    "controller": TagScope.GLOBAL.value,
    "local": TagScope.LOCAL.value,
    "program": TagScope.LOCAL.value,
    "input": TagScope.INPUT.value,
    "output": TagScope.OUTPUT.value,
}

_TRUE_FALSE = ("true", "false")


@dataclass
class ImportResult:
    """Outcome of one import call."""
    success: bool
    inserted: Optional[int] = None
    errors: List[RowValidationError] = field(default_factory=list)
    processed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.inserted is not None:
            result["inserted"] = self.inserted
        if self.errors:
            result["errors"] = [error.to_dict() for error in self.errors]
        if self.processed is not None:
            result["processed"] = self.processed
        return result


def _file_error(message: str) -> ImportResult:
    return ImportResult(success=False, errors=[RowValidationError(0, [message])], processed=0)


# -- row decoding ------------------------------------------------------------------

def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _canonical_rows(table: Sequence[Sequence[Any]], dialect: VendorDialect) -> List[Row]:
    """Map a header row plus data rows onto canonical field names."""
    if not table:
        return []
    columns = [dialect.canonical_header(header) for header in table[0]]
    dropped = [str(h) for h, c in zip(table[0], columns) if c is None and _cell_text(h)]
    if dropped:
        logger.debug(f"Ignoring unrecognised {dialect.display_name} columns: {dropped}")

    rows = []
    for record in table[1:]:
        cells = [_cell_text(value) for value in record]
        if not any(cells):
            continue
        row: Row = {}
        for column, value in zip(columns, cells):
            # several headers may map to one field; first non-empty cell wins
            if column is not None and not row.get(column):
                row[column] = value
        rows.append(row)
    return rows


def detect_csv_delimiter(text: str) -> str:
    """``;`` if the first line contains one, else ``,``."""
    first_line = text.split("\n", 1)[0]
    return ";" if ";" in first_line else ","


def read_csv_rows(buffer: bytes, dialect: VendorDialect, delimiter: Optional[str] = None) -> List[Row]:
    """
    Decode a CSV tag table into canonical rows.

    Raises:
        MalformedDocumentError: if the content is not UTF-8 or not parseable CSV
    """
    try:
        text = buffer.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedDocumentError("csv", f"not UTF-8 text: {e}", cause=e) from e

    if delimiter is None:
        delimiter = detect_csv_delimiter(text) if dialect.detect_delimiter else ","
    try:
        table = [record for record in csv.reader(io.StringIO(text), delimiter=delimiter) if record]
    except csv.Error as e:
        raise MalformedDocumentError("csv", f"CSV parse failed: {e}", cause=e) from e
    return _canonical_rows(table, dialect)


def read_xlsx_rows(buffer: bytes, dialect: VendorDialect) -> List[Row]:
    """Decode the first worksheet of an XLSX workbook into canonical rows."""
    try:
        workbook = load_workbook(io.BytesIO(buffer), read_only=True, data_only=True)
    except Exception as e:
        raise MalformedDocumentError("xlsx", f"could not open workbook: {e}", cause=e) from e
    try:
        sheet = workbook.worksheets[0]
        table = [row for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()
    return _canonical_rows(table, dialect)


def read_xml_rows(buffer: bytes, container: str, item_names: Sequence[str],
                  fields: Dict[str, Sequence[str]], source: str) -> List[Row]:
    """
    Collect ``item_names`` nodes under the first ``container`` node as canonical rows.

    Raises:
        MalformedDocumentError: if the XML is malformed or has no such container
    """
    document = parse_xml(buffer, source=source)
    root = find_first(document, container)
    if root is None:
        raise MalformedDocumentError(source, f"no {container} element found")
    rows = []
    for item_name in item_names:
        for node in find_nodes(root, item_name):
            rows.append({key: first_field(node, candidates) for key, candidates in fields.items()})
    if not rows:
        raise MalformedDocumentError(source, f"no {'/'.join(item_names)} entries in {container}")
    return rows


# -- validation --------------------------------------------------------------------

def infer_type_from_initial_value(initial_value: Optional[str], address: str, dialect: VendorDialect) -> str:
    """Guess a type for a row without one: boolean literals, integers, decimals, else by address."""
    value = (initial_value or "").strip()
    if value.lower() in _TRUE_FALSE or value in ("0", "1"):
        return "BOOL"
    try:
        float(value)
    except ValueError:
        pass
    else:
        return "REAL" if "." in value else "DINT"
    if address and (dialect.is_input_address(address) or dialect.is_output_address(address)):
        return "BOOL"
    return "DINT"


def resolve_scope(raw_scope: Optional[str], address: str, dialect: VendorDialect) -> str:
    """Map a Scope cell onto global/local/input/output, falling back to the address markers."""
    scope = _SCOPE_ALIASES.get((raw_scope or "").strip().lower())
    if scope:
        return scope
    if address:
        if dialect.is_input_address(address):
            return TagScope.INPUT.value
        if dialect.is_output_address(address):
            return TagScope.OUTPUT.value
    return TagScope.GLOBAL.value


def validate_row(row: Row, dialect: VendorDialect, project_id: int, user_id: str,
                 tag_type: Optional[str] = None) -> Tuple[Optional[CreateTagData], List[str]]:
    """
    Validate one canonical row and map it to a CreateTagData.

    Returns:
        ``(mapped, [])`` on success, ``(None, reasons)`` otherwise
    """
    errors: List[str] = []
    label = dialect.display_name

    name = (row.get("name") or "").strip()
    if not name:
        errors.append("Missing tag name")
    elif not dialect.is_valid_name(name):
        errors.append(f"Invalid tag name format for {label}: {name}. Must start with a letter "
                      f"or underscore, followed by letters, numbers or underscores")

    address = (row.get("address") or "").strip()
    default_value = (row.get("default_value") or "").strip() or None

    raw_type = (row.get("data_type") or "").strip()
    type_key = None
    if raw_type:
        type_key = dialect.normalize_type(raw_type)
        if type_key is None:
            errors.append(f"Unsupported {label} data type: {raw_type}")
    elif dialect.infer_missing_type:
        type_key = infer_type_from_initial_value(default_value, address, dialect)
        raw_type = type_key
    else:
        errors.append("Missing data type")

    if address and not dialect.is_valid_address(address):
        errors.append(f"Invalid {label} address format: {address}")

    if errors:
        return None, errors

    return CreateTagData(
        project_id=project_id,
        user_id=user_id,
        name=name,
        type=dialect.standard_type(type_key),
        data_type=raw_type if dialect.preserve_type_case else type_key,
        vendor=dialect.name,
        description=(row.get("description") or "").strip(),
        address=address,
        default_value=default_value,
        scope=resolve_scope(row.get("scope"), address, dialect),
        tag_type=tag_type or dialect.tag_type_for_address(address),
    ), []


def run_import(rows: List[Row], store: TagStore, project_id: int, user_id: str,
               dialect: VendorDialect, tag_type: Optional[str] = None) -> ImportResult:
    """Validate every row, then upsert all of them or none."""
    if not rows:
        return _file_error(f"No rows found in {dialect.display_name} tag file")

    valid: List[CreateTagData] = []
    errors: List[RowValidationError] = []
    for index, row in enumerate(rows, start=1):
        mapped, reasons = validate_row(row, dialect, project_id, user_id, tag_type)
        if reasons:
            errors.append(RowValidationError(index, reasons, row))
        else:
            valid.append(mapped)

    logger.info(f"{dialect.display_name} import: {len(rows)} rows, {len(errors)} invalid")
    if errors:
        for error in errors:
            logger.debug(str(error))
        return ImportResult(success=False, errors=errors, processed=len(valid))

    # a name repeated within the batch updates one tag
    written = {tag.name for tag in store.upsert_tags(valid)}
    logger.info(f"{dialect.display_name} import: upserted {len(written)} tags into project {project_id}")
    return ImportResult(success=True, inserted=len(written), processed=len(valid))


def _import(read_rows, store: TagStore, project_id: int, user_id: str,
            dialect: VendorDialect, tag_type: Optional[str] = None) -> ImportResult:
    try:
        rows = read_rows()
    except MalformedDocumentError as e:
        logger.warning(f"{dialect.display_name} import failed: {e}")
        return _file_error(str(e))
    return run_import(rows, store, project_id, user_id, dialect, tag_type)


# -- Rockwell ----------------------------------------------------------------------

_L5X_FIELDS = {
    "name": ("Name",),
    "data_type": ("DataType",),
    "description": ("Description", "Comment"),
    "scope": ("Scope",),
}


def import_rockwell_csv(buffer: bytes, project_id: int, user_id: str, store: TagStore,
                        dialect: Optional[VendorDialect] = None, delimiter: Optional[str] = None) -> ImportResult:
    """Import a Studio 5000 tag database CSV."""
    dialect = dialect or get_dialect(TagVendor.ROCKWELL)
    return _import(lambda: read_csv_rows(buffer, dialect, delimiter), store, project_id, user_id, dialect)


def import_rockwell_l5x(buffer: bytes, project_id: int, user_id: str, store: TagStore,
                        dialect: Optional[VendorDialect] = None) -> ImportResult:
    """Import ``ControllerTags/Tag`` entries of an L5X file. L5X carries no physical addresses."""
    dialect = dialect or get_dialect(TagVendor.ROCKWELL)
    return _import(
        lambda: read_xml_rows(buffer, "ControllerTags", ("Tag",), _L5X_FIELDS, "L5X"),
        store, project_id, user_id, dialect, tag_type=TagType.MEMORY.value,
    )


# -- Siemens -----------------------------------------------------------------------

_SIEMENS_XML_FIELDS = {
    "name": ("Name", "AttributeList/Name"),
    "data_type": ("DataType", "DataTypeName", "AttributeList/DataTypeName"),
    "address": ("Address", "LogicalAddress", "AttributeList/LogicalAddress"),
    "description": ("Comment/MultiLanguageText", "Comment", "Description"),
    "default_value": ("InitialValue",),
    "scope": ("Scope",),
}


def import_siemens_csv(buffer: bytes, project_id: int, user_id: str, store: TagStore,
                       dialect: Optional[VendorDialect] = None, delimiter: Optional[str] = None) -> ImportResult:
    """Import a TIA Portal tag table CSV; the delimiter is detected from the first line."""
    dialect = dialect or get_dialect(TagVendor.SIEMENS)
    return _import(lambda: read_csv_rows(buffer, dialect, delimiter), store, project_id, user_id, dialect)


def import_siemens_xml(buffer: bytes, project_id: int, user_id: str, store: TagStore,
                       dialect: Optional[VendorDialect] = None) -> ImportResult:
    """Import a ``Siemens.TIA.Portal.TagTable`` document or an Openness ``SW.Tags.PlcTagTable``."""
    dialect = dialect or get_dialect(TagVendor.SIEMENS)

    def read_rows():
        document = parse_xml(buffer, source="Siemens XML")
        if find_first(document, "Tags") is not None:
            return read_xml_rows(buffer, "Tags", ("Tag",), _SIEMENS_XML_FIELDS, "Siemens XML")
        return read_xml_rows(buffer, "SW.Tags.PlcTagTable", ("SW.Tags.PlcTag",),
                             _SIEMENS_XML_FIELDS, "Siemens XML")

    return _import(read_rows, store, project_id, user_id, dialect)


def import_siemens_xlsx(buffer: bytes, project_id: int, user_id: str, store: TagStore,
                        dialect: Optional[VendorDialect] = None) -> ImportResult:
    """Import the first worksheet of a Siemens tag table workbook."""
    dialect = dialect or get_dialect(TagVendor.SIEMENS)
    return _import(lambda: read_xlsx_rows(buffer, dialect), store, project_id, user_id, dialect)


# -- Beckhoff ----------------------------------------------------------------------

_BECKHOFF_XML_FIELDS = {
    "name": ("Name",),
    "data_type": ("DataType", "Type"),
    "address": ("PhysicalAddress", "Address"),
    "description": ("Comment", "Description"),
    "default_value": ("InitialValue", "DefaultValue"),
    "scope": ("Scope",),
}


def import_beckhoff_csv(buffer: bytes, project_id: int, user_id: str, store: TagStore,
                        dialect: Optional[VendorDialect] = None, delimiter: Optional[str] = None) -> ImportResult:
    """Import a TwinCAT variable list CSV."""
    dialect = dialect or get_dialect(TagVendor.BECKHOFF)
    return _import(lambda: read_csv_rows(buffer, dialect, delimiter), store, project_id, user_id, dialect)


def import_beckhoff_xml(buffer: bytes, project_id: int, user_id: str, store: TagStore,
                        dialect: Optional[VendorDialect] = None) -> ImportResult:
    """Import ``Variables/Variable`` entries of a TwinCAT XML export."""
    dialect = dialect or get_dialect(TagVendor.BECKHOFF)
    return _import(
        lambda: read_xml_rows(buffer, "Variables", ("Variable",), _BECKHOFF_XML_FIELDS, "Beckhoff XML"),
        store, project_id, user_id, dialect,
    )


IMPORTERS = {
    ("rockwell", "csv"): import_rockwell_csv,
    ("rockwell", "l5x"): import_rockwell_l5x,
    ("siemens", "csv"): import_siemens_csv,
    ("siemens", "xml"): import_siemens_xml,
    ("siemens", "xlsx"): import_siemens_xlsx,
    ("beckhoff", "csv"): import_beckhoff_csv,
    ("beckhoff", "xml"): import_beckhoff_xml,
}


def import_tags(vendor: str, file_format: str, buffer: bytes, project_id: int, user_id: str,
                store: TagStore, dialect: Optional[VendorDialect] = None,
                delimiter: Optional[str] = None) -> ImportResult:
    """
    Dispatch to the importer for a vendor and file format.

    ``delimiter`` applies to CSV formats only; when omitted each CSV importer
    uses its dialect default.

    Raises:
        UnsupportedFormatError: if there is no importer for the combination
    """
    key = (str(getattr(vendor, "value", vendor)).lower(), file_format.lower().lstrip("."))
    importer = IMPORTERS.get(key)
    if importer is None:
        raise UnsupportedFormatError(key[0], f"No {key[0]} importer for format {key[1]!r}")
    if key[1] == "csv":
        return importer(buffer, project_id, user_id, store, dialect=dialect, delimiter=delimiter)
    return importer(buffer, project_id, user_id, store, dialect=dialect)
