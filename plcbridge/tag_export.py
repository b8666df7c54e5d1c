"""
Tag export pipelines.

Read the persisted tags of a project for one vendor and write them in that
vendor's native CSV, XML or XLSX layout. Writing is incremental: a header
first, then one record per tag. The stream is closed at the end unless
``ExportOptions.close_stream`` is false, so callers holding the stream treat
the close as the completion signal.

Stored addresses are written verbatim; no placeholder is synthesized on export.
"""

import csv
import logging
import sqlite3
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import IO, Any, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill

from .dialects import VendorDialect, get_dialect
from .errors import ExportError, PersistenceError, UnsupportedFormatError
from .models import Tag, TagVendor
from .store import TagStore

logger = logging.getLogger(__name__)

XLSX_HEADERS = ("Name", "Data Type", "Address", "Initial Value", "Comment", "Scope")
XLSX_FIELDS = ("name", "data_type", "address", "default_value", "description", "scope")
XLSX_WIDTHS = (25, 15, 20, 15, 30, 10)


@dataclass
class ExportOptions:
    delimiter: str = ","
    close_stream: bool = True


def _load_tags(store: TagStore, project_id: int, dialect: VendorDialect) -> List[Tag]:
    tags = store.get_tags(project_id, vendor=dialect.name)
    logger.info(f"Exporting {len(tags)} {dialect.display_name} tags for project {project_id}")
    return tags


def _value(tag: Tag, field_name: Optional[str]) -> str:
    if not field_name:
        return ""
    value = getattr(tag, field_name, None)
    return "" if value is None else str(value)


def _finish(stream: IO, options: ExportOptions) -> None:
    if options.close_stream:
        stream.close()
    else:
        stream.flush()


def export_csv(store: TagStore, project_id: int, vendor: Any, stream: IO[str],
               options: Optional[ExportOptions] = None, dialect: Optional[VendorDialect] = None) -> bool:
    """
    Write a vendor CSV of all the project's tags for that vendor.

    Args:
        store: Tag store to read from
        project_id: Project whose tags are exported
        vendor: Vendor name or enum
        stream: Text stream (open files with ``newline=""``)
        options: Delimiter and stream handling
        dialect: Optional dialect supplying the column set

    Returns:
        True once every row has been written

    Raises:
        ExportError: if the store cannot be read or the stream cannot be written
    """
    options = options or ExportOptions()
    dialect = dialect or get_dialect(vendor)
    try:
        tags = _load_tags(store, project_id, dialect)
        writer = csv.writer(stream, delimiter=options.delimiter, lineterminator="\n")
        writer.writerow([header for header, _ in dialect.export_columns])
        for tag in tags:
            writer.writerow([_value(tag, field_name) for _, field_name in dialect.export_columns])
        _finish(stream, options)
    except (OSError, ValueError, csv.Error, sqlite3.Error, PersistenceError) as e:
        raise ExportError(dialect.display_name, str(e), cause=e) from e
    return True


def export_rockwell_csv(store: TagStore, project_id: int, stream: IO[str],
                        options: Optional[ExportOptions] = None) -> bool:
    return export_csv(store, project_id, TagVendor.ROCKWELL, stream, options)


def export_siemens_csv(store: TagStore, project_id: int, stream: IO[str],
                       options: Optional[ExportOptions] = None) -> bool:
    return export_csv(store, project_id, TagVendor.SIEMENS, stream, options)


def export_beckhoff_csv(store: TagStore, project_id: int, stream: IO[str],
                        options: Optional[ExportOptions] = None) -> bool:
    return export_csv(store, project_id, TagVendor.BECKHOFF, stream, options)


def _sub(parent: ET.Element, name: str, text: str) -> ET.Element:
    elem = ET.SubElement(parent, name)
    elem.text = text
    return elem


def _write_xml(root: ET.Element, stream: IO[str], options: ExportOptions, label: str) -> None:
    ET.indent(root, space="  ")
    try:
        stream.write('<?xml version="1.0" encoding="UTF-8"?>\n')
        stream.write(ET.tostring(root, encoding="unicode"))
        stream.write("\n")
        _finish(stream, options)
    except (OSError, ValueError) as e:
        raise ExportError(label, str(e), cause=e) from e


def export_rockwell_l5x(store: TagStore, project_id: int, stream: IO[str],
                        options: Optional[ExportOptions] = None) -> bool:
    """Write the project's Rockwell tags as an L5X ``ControllerTags`` document."""
    options = options or ExportOptions()
    dialect = get_dialect(TagVendor.ROCKWELL)
    try:
        tags = _load_tags(store, project_id, dialect)
    except PersistenceError as e:
        raise ExportError(dialect.display_name, str(e), cause=e) from e

    root = ET.Element("ControllerTags")
    for tag in tags:
        node = ET.SubElement(root, "Tag")
        _sub(node, "Name", tag.name)
        _sub(node, "DataType", tag.data_type or "DINT")
        if tag.description:
            _sub(node, "Comment", tag.description)
        _sub(node, "Scope", tag.scope or "global")
    _write_xml(root, stream, options, dialect.display_name)
    return True


def export_siemens_xml(store: TagStore, project_id: int, stream: IO[str],
                       options: Optional[ExportOptions] = None) -> bool:
    """Write the project's Siemens tags as a ``Siemens.TIA.Portal.TagTable`` document."""
    options = options or ExportOptions()
    dialect = get_dialect(TagVendor.SIEMENS)
    try:
        tags = _load_tags(store, project_id, dialect)
    except PersistenceError as e:
        raise ExportError(dialect.display_name, str(e), cause=e) from e

    root = ET.Element("Siemens.TIA.Portal.TagTable", {"Version": "1.0"})
    table = ET.SubElement(root, "TagTable")
    _sub(table, "Name", f"Project_{project_id}_Tags")
    tags_elem = ET.SubElement(table, "Tags")
    for tag in tags:
        node = ET.SubElement(tags_elem, "Tag")
        _sub(node, "Name", tag.name)
        _sub(node, "DataType", tag.data_type)
        if tag.address:
            _sub(node, "Address", tag.address)
        if tag.description:
            _sub(node, "Comment", tag.description)
        if tag.default_value:
            _sub(node, "InitialValue", tag.default_value)
        if tag.scope:
            _sub(node, "Scope", tag.scope)
    _write_xml(root, stream, options, dialect.display_name)
    return True


def export_siemens_xlsx(store: TagStore, project_id: int, stream: IO[bytes],
                        options: Optional[ExportOptions] = None) -> bool:
    """Write the project's Siemens tags to a single-sheet workbook on a binary stream."""
    options = options or ExportOptions()
    dialect = get_dialect(TagVendor.SIEMENS)
    try:
        tags = _load_tags(store, project_id, dialect)
    except PersistenceError as e:
        raise ExportError(dialect.display_name, str(e), cause=e) from e

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Siemens Tags"
    sheet.append(list(XLSX_HEADERS))
    header_fill = PatternFill(start_color="E6E6E6", end_color="E6E6E6", fill_type="solid")
    for cell in sheet[1]:
        cell.font = Font(bold=True)
        cell.fill = header_fill
    for tag in tags:
        row = [_value(tag, field_name) for field_name in XLSX_FIELDS]
        row[-1] = row[-1] or "global"
        sheet.append(row)
    for index, width in enumerate(XLSX_WIDTHS):
        sheet.column_dimensions[chr(ord("A") + index)].width = width

    try:
        workbook.save(stream)
        _finish(stream, options)
    except (OSError, ValueError) as e:
        raise ExportError(dialect.display_name, str(e), cause=e) from e
    return True


def export_beckhoff_xml(store: TagStore, project_id: int, stream: IO[str],
                        options: Optional[ExportOptions] = None) -> bool:
    """Write the project's Beckhoff tags as a ``Variables/Variable`` document."""
    options = options or ExportOptions()
    dialect = get_dialect(TagVendor.BECKHOFF)
    try:
        tags = _load_tags(store, project_id, dialect)
    except PersistenceError as e:
        raise ExportError(dialect.display_name, str(e), cause=e) from e

    root = ET.Element("Variables")
    for tag in tags:
        node = ET.SubElement(root, "Variable")
        _sub(node, "Name", tag.name)
        _sub(node, "DataType", tag.data_type or "DINT")
        if tag.address:
            _sub(node, "PhysicalAddress", tag.address)
        if tag.description:
            _sub(node, "Comment", tag.description)
        if tag.default_value:
            _sub(node, "InitialValue", tag.default_value)
        _sub(node, "Scope", tag.scope or "global")
    _write_xml(root, stream, options, dialect.display_name)
    return True


EXPORTERS = {
    ("rockwell", "csv"): export_rockwell_csv,
    ("rockwell", "l5x"): export_rockwell_l5x,
    ("siemens", "csv"): export_siemens_csv,
    ("siemens", "xml"): export_siemens_xml,
    ("siemens", "xlsx"): export_siemens_xlsx,
    ("beckhoff", "csv"): export_beckhoff_csv,
    ("beckhoff", "xml"): export_beckhoff_xml,
}

BINARY_FORMATS = ("xlsx",)


def export_tags(vendor: Any, file_format: str, store: TagStore, project_id: int, stream: IO,
                options: Optional[ExportOptions] = None) -> bool:
    """
    Dispatch to the exporter for a vendor and file format.

    Raises:
        UnsupportedFormatError: if there is no exporter for the combination
    """
    key = (str(getattr(vendor, "value", vendor)).lower(), file_format.lower().lstrip("."))
    exporter = EXPORTERS.get(key)
    if exporter is None:
        raise UnsupportedFormatError(key[0], f"No {key[0]} exporter for format {key[1]!r}")
    return exporter(store, project_id, stream, options)
