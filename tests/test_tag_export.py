"""
Tests for the tag export pipelines, including export-then-import round trips.
"""

import io

import pytest

from plcbridge.errors import UnsupportedFormatError
from plcbridge.store import TagStore
from plcbridge.tag_export import ExportOptions, export_csv, export_tags
from plcbridge.tag_import import import_tags

ROCKWELL_CSV = b"""Tag Name,Data Type,Scope,Description,External Access,Default Value,Address
StartPB,BOOL,Controller,Start button,Read/Write,0,I:0/0
Motor,BOOL,,Motor run,,,O:2/0
Speed,REAL,Program,,,1.5,
"""

SIEMENS_CSV = b"""Name;DataType;Address;Comment;InitialValue;Scope
Start;Bool;I0.0;Start button;FALSE;
Valve;Bool;Q0.1;;;output
Level;Real;DB1.DBD0;Tank level;0.0;global
Counter;;MW10;;;
"""

BECKHOFF_CSV = b"""Name,Type,Address,Comment,Initial Value,Scope
bStart,BOOL,%IX0.0,Start button,FALSE,
bLamp,BOOL,%QX1.0,,,
nCount,INT,,Parts,0,local
"""

FIELDS = ("name", "data_type", "address", "description", "default_value", "scope")


def _snapshot(store, project_id, fields=FIELDS):
    return [tuple(getattr(tag, f) for f in fields) for tag in store.get_tags(project_id)]


def _keep_open():
    return ExportOptions(close_stream=False)


class TestCSVExport:
    """Test vendor CSV layouts."""

    def setup_method(self):
        self.store = TagStore(":memory:")

    def teardown_method(self):
        self.store.close()

    def test_rockwell_columns(self):
        import_tags("rockwell", "csv", ROCKWELL_CSV, 1, "alice", self.store)
        stream = io.StringIO()
        export_tags("rockwell", "csv", self.store, 1, stream, _keep_open())
        lines = stream.getvalue().splitlines()

        assert lines[0] == "Tag Name,Data Type,Scope,Description,External Access,Default Value,Address"
        assert lines[1] == "Motor,BOOL,output,Motor run,,,O:2/0"
        assert len(lines) == 4

    def test_siemens_keeps_type_case(self):
        import_tags("siemens", "csv", SIEMENS_CSV, 1, "alice", self.store)
        stream = io.StringIO()
        export_tags("siemens", "csv", self.store, 1, stream, _keep_open())
        lines = stream.getvalue().splitlines()

        assert lines[0] == "Name,DataType,Address,Comment,InitialValue,Scope"
        assert "Start,Bool,I0.0,Start button,FALSE,input" in lines

    def test_custom_delimiter(self):
        import_tags("beckhoff", "csv", BECKHOFF_CSV, 1, "alice", self.store)
        stream = io.StringIO()
        export_csv(self.store, 1, "beckhoff", stream, ExportOptions(delimiter=";", close_stream=False))
        assert stream.getvalue().splitlines()[0] == "Name;DataType;Address;Comment;InitialValue;Scope;AccessMode"

    def test_only_requested_vendor_is_exported(self):
        import_tags("rockwell", "csv", ROCKWELL_CSV, 1, "alice", self.store)
        import_tags("beckhoff", "csv", BECKHOFF_CSV, 1, "alice", self.store)
        stream = io.StringIO()
        export_tags("beckhoff", "csv", self.store, 1, stream, _keep_open())
        names = [line.split(",")[0] for line in stream.getvalue().splitlines()[1:]]
        assert names == ["bLamp", "bStart", "nCount"]

    def test_empty_project_writes_header_only(self):
        stream = io.StringIO()
        assert export_tags("siemens", "csv", self.store, 42, stream, _keep_open()) is True
        assert stream.getvalue() == "Name,DataType,Address,Comment,InitialValue,Scope\n"

    def test_stream_is_closed_by_default(self):
        stream = io.StringIO()
        export_tags("rockwell", "csv", self.store, 1, stream)
        assert stream.closed

    def test_unknown_format(self):
        with pytest.raises(UnsupportedFormatError):
            export_tags("rockwell", "xlsx", self.store, 1, io.BytesIO())


class TestXMLExport:
    """Test vendor XML layouts."""

    def setup_method(self):
        self.store = TagStore(":memory:")

    def teardown_method(self):
        self.store.close()

    def test_siemens_document_layout(self):
        import_tags("siemens", "csv", SIEMENS_CSV, 7, "alice", self.store)
        stream = io.StringIO()
        export_tags("siemens", "xml", self.store, 7, stream, _keep_open())
        text = stream.getvalue()

        assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert '<Siemens.TIA.Portal.TagTable Version="1.0">' in text
        assert "<Name>Project_7_Tags</Name>" in text
        assert "<Address>I0.0</Address>" in text

    def test_rockwell_l5x_layout(self):
        import_tags("rockwell", "csv", ROCKWELL_CSV, 1, "alice", self.store)
        stream = io.StringIO()
        export_tags("rockwell", "l5x", self.store, 1, stream, _keep_open())
        text = stream.getvalue()

        assert "<ControllerTags>" in text
        assert "<Comment>Start button</Comment>" in text
        assert "<Address>" not in text

    def test_beckhoff_layout(self):
        import_tags("beckhoff", "csv", BECKHOFF_CSV, 1, "alice", self.store)
        stream = io.StringIO()
        export_tags("beckhoff", "xml", self.store, 1, stream, _keep_open())
        text = stream.getvalue()

        assert "<Variables>" in text
        assert "<PhysicalAddress>%IX0.0</PhysicalAddress>" in text
        assert "<InitialValue>FALSE</InitialValue>" in text


class TestRoundTrip:
    """Importing an export reproduces the stored tags."""

    def setup_method(self):
        self.store = TagStore(":memory:")

    def teardown_method(self):
        self.store.close()

    def _round_trip_text(self, vendor, source, export_format, import_format=None, fields=FIELDS):
        assert import_tags(vendor, "csv", source, 1, "alice", self.store).success
        stream = io.StringIO()
        export_tags(vendor, export_format, self.store, 1, stream, _keep_open())

        result = import_tags(vendor, import_format or export_format,
                             stream.getvalue().encode("utf-8"), 2, "alice", self.store)
        assert result.success, result.to_dict()
        assert _snapshot(self.store, 2, fields) == _snapshot(self.store, 1, fields)

    def test_rockwell_csv(self):
        self._round_trip_text("rockwell", ROCKWELL_CSV, "csv")

    def test_rockwell_l5x(self):
        self._round_trip_text("rockwell", ROCKWELL_CSV, "l5x",
                              fields=("name", "data_type", "description", "scope"))

    def test_siemens_csv(self):
        self._round_trip_text("siemens", SIEMENS_CSV, "csv")

    def test_siemens_xml(self):
        self._round_trip_text("siemens", SIEMENS_CSV, "xml")

    def test_beckhoff_csv(self):
        self._round_trip_text("beckhoff", BECKHOFF_CSV, "csv")

    def test_beckhoff_xml(self):
        self._round_trip_text("beckhoff", BECKHOFF_CSV, "xml")

    def test_siemens_xlsx(self):
        assert import_tags("siemens", "csv", SIEMENS_CSV, 1, "alice", self.store).success
        stream = io.BytesIO()
        export_tags("siemens", "xlsx", self.store, 1, stream, _keep_open())

        result = import_tags("siemens", "xlsx", stream.getvalue(), 2, "alice", self.store)
        assert result.success, result.to_dict()
        assert _snapshot(self.store, 2) == _snapshot(self.store, 1)
