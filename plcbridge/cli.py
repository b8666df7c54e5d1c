"""Command-line interface for plcbridge."""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .config import BridgeConfig, load_config
from .detector import detect_vendor
from .errors import PLCBridgeError
from .formatters import format_tag
from .models import TagVendor, Vendor
from .parsers import parse_multiple_projects
from .store import TagStore
from .tag_export import BINARY_FORMATS, EXPORTERS, ExportOptions, export_tags
from .tag_import import IMPORTERS, import_tags

VENDOR_CHOICES = [v.value for v in TagVendor]
IMPORT_FORMATS = sorted({fmt for _, fmt in IMPORTERS})
EXPORT_FORMATS = sorted({fmt for _, fmt in EXPORTERS})


def _setup_logging(config: BridgeConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _open_store(config: BridgeConfig, db_path: Optional[str]) -> TagStore:
    return TagStore(db_path or config.database_path)


@click.group()
@click.option('--config', '-c', 'config_path', type=click.Path(dir_okay=False), help='YAML configuration file')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool):
    """Parse, import and export PLC projects and tag tables across vendors."""
    config = load_config(config_path)
    _setup_logging(config, verbose)
    ctx.obj = config


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
def detect(input_file: str):
    """Print the vendor a project file belongs to."""
    buffer = Path(input_file).read_bytes()
    click.echo(detect_vendor(input_file, buffer).value)


@main.command()
@click.argument('input_files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', 'output_file', type=click.Path(dir_okay=False), help='Output JSON file')
@click.pass_obj
def parse(config: BridgeConfig, input_files, output_file: Optional[str]):
    """Parse project files into the vendor-agnostic JSON model."""
    try:
        dialects = {Vendor(v.value.title()): config.dialect_for(v.value) for v in TagVendor
                    if v.value in config.dialect_overrides}
        results = parse_multiple_projects(
            [(path, Path(path).read_bytes()) for path in input_files], dialects=dialects
        )
    except (OSError, PLCBridgeError) as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)

    payload = [result.to_dict() for result in results]
    data = payload[0] if len(payload) == 1 else payload
    text = json.dumps(data, indent=2, default=str)
    if output_file:
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(text)
        click.echo(f"✅ Parsed {len(results)} file(s) to {output_file}")
    else:
        click.echo(text)


@main.command('import-tags')
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--vendor', type=click.Choice(VENDOR_CHOICES, case_sensitive=False), required=True)
@click.option('--format', 'file_format', type=click.Choice(IMPORT_FORMATS, case_sensitive=False),
              help='File format (default: from the file extension)')
@click.option('--project-id', type=int, required=True)
@click.option('--user-id', default='cli', show_default=True)
@click.option('--delimiter', help='CSV delimiter (default: from config; Siemens files are sniffed)')
@click.option('--db', 'db_path', help='Tag database (default: from config)')
@click.pass_obj
def import_tags_command(config: BridgeConfig, input_file: str, vendor: str, file_format: Optional[str],
                        project_id: int, user_id: str, delimiter: Optional[str], db_path: Optional[str]):
    """Validate a tag table and upsert it into the tag database."""
    file_format = file_format or Path(input_file).suffix.lstrip('.').lower()
    store = None
    try:
        dialect = config.dialect_for(vendor)
        if delimiter is None and not dialect.detect_delimiter:
            delimiter = config.csv_delimiter
        store = _open_store(config, db_path)
        result = import_tags(vendor, file_format, Path(input_file).read_bytes(), project_id, user_id,
                             store, dialect=dialect, delimiter=delimiter)
    except (OSError, PLCBridgeError) as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)
    finally:
        if store is not None:
            store.close()

    click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    if not result.success:
        click.echo(f"❌ Import rejected: {len(result.errors)} invalid row(s)", err=True)
        sys.exit(1)


@main.command('export-tags')
@click.option('--vendor', type=click.Choice(VENDOR_CHOICES, case_sensitive=False), required=True)
@click.option('--format', 'file_format', type=click.Choice(EXPORT_FORMATS, case_sensitive=False),
              default='csv', show_default=True)
@click.option('--project-id', type=int, required=True)
@click.option('--output', '-o', 'output_file', type=click.Path(dir_okay=False), required=True)
@click.option('--delimiter', help='CSV delimiter (default: from config)')
@click.option('--db', 'db_path', help='Tag database (default: from config)')
@click.pass_obj
def export_tags_command(config: BridgeConfig, vendor: str, file_format: str, project_id: int,
                        output_file: str, delimiter: Optional[str], db_path: Optional[str]):
    """Write a project's tags in a vendor's native format."""
    options = ExportOptions(delimiter=delimiter or config.csv_delimiter)
    store = None
    try:
        store = _open_store(config, db_path)
        if file_format.lower() in BINARY_FORMATS:
            stream = open(output_file, 'wb')
        else:
            stream = open(output_file, 'w', encoding='utf-8', newline='')
        try:
            export_tags(vendor, file_format, store, project_id, stream, options)
        finally:
            if not stream.closed:
                stream.close()
    except (OSError, PLCBridgeError) as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)
    finally:
        if store is not None:
            store.close()
    click.echo(f"✅ Exported {vendor} tags for project {project_id} to {output_file}")


@main.command('format-tag')
@click.option('--vendor', type=click.Choice(VENDOR_CHOICES, case_sensitive=False), required=True)
@click.option('--name', required=True)
@click.option('--data-type', default='', help='Vendor data type')
@click.option('--address', default='')
@click.option('--scope', default='', help='input, output, global or local')
@click.option('--description', default='')
@click.option('--default-value', default=None)
@click.pass_obj
def format_tag_command(config: BridgeConfig, vendor: str, name: str, data_type: str, address: str,
                       scope: str, description: str, default_value: Optional[str]):
    """Print one tag converted to a vendor's native shape."""
    tag = {
        'name': name,
        'data_type': data_type,
        'address': address,
        'scope': scope,
        'description': description,
        'default_value': default_value,
    }
    try:
        formatted = format_tag(tag, vendor, dialect=config.dialect_for(vendor))
    except PLCBridgeError as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)
    click.echo(json.dumps(formatted, indent=2))


if __name__ == '__main__':
    main()
