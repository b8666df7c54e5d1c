"""
Tests for the vendor project parsers and the parse_project dispatcher.
"""

import zipfile
from io import BytesIO

from plcbridge.dialects import derive_direction, get_dialect
from plcbridge.models import Direction, Vendor
from plcbridge.parsers import (
    BeckhoffProjectParser,
    RockwellProjectParser,
    SiemensProjectParser,
    STProjectParser,
    parse_multiple_projects,
    parse_project,
)

SIEMENS_FB_XML = b"""<?xml version="1.0" encoding="utf-8"?>
<Document>
  <Engineering version="V17" />
  <SW.Blocks.FB ID="0">
    <AttributeList>
      <Interface>
        <Sections xmlns="http://www.siemens.com/automation/Openness/SW/Interface/v5">
          <Section Name="Input">
            <Member Name="Start" Datatype="Bool" />
          </Section>
          <Section Name="Output">
            <Member Name="Running" Datatype="Bool">
              <Comment><MultiLanguageText Lang="en-US">Motor is running</MultiLanguageText></Comment>
            </Member>
          </Section>
          <Section Name="Static">
            <Member Name="Counter" Datatype="Int" />
          </Section>
        </Sections>
      </Interface>
      <Name>Motor_FB</Name>
      <ProgrammingLanguage>SCL</ProgrammingLanguage>
    </AttributeList>
  </SW.Blocks.FB>
</Document>
"""

SIEMENS_FB_UDT_XML = b"""<Document>
  <SW.Blocks.FB ID="0">
    <AttributeList>
      <Interface>
        <Sections>
          <Section Name="Input">
            <Member Name="Start" Datatype="Bool" />
            <Member Name="Cfg" Datatype="&quot;MotorCfg&quot;">
              <Sections>
                <Section Name="None">
                  <Member Name="Speed" Datatype="Real" />
                </Section>
              </Sections>
            </Member>
          </Section>
          <Section Name="Static">
            <Member Name="Limits" Datatype="Struct">
              <Member Name="High" Datatype="Int" />
            </Member>
          </Section>
        </Sections>
      </Interface>
      <Name>Motor_FB</Name>
    </AttributeList>
  </SW.Blocks.FB>
</Document>
"""

SIEMENS_GLOBAL_DB_XML = b"""<Document>
  <SW.Blocks.GlobalDB Name="Data">
    <SW.Blocks.GlobalDB.Var Name="Level" DataType="Real" Address="DB1.DBD0" Comment="Tank level" />
    <SW.Blocks.GlobalDB.Var Name="StartPB" DataType="Bool" Address="I0.0" />
    <SW.Blocks.GlobalDB.Var Name="Pump" DataType="Bool" Address="Q0.0" />
  </SW.Blocks.GlobalDB>
</Document>
"""

ROCKWELL_L5X = b"""<?xml version="1.0" encoding="UTF-8"?>
<RSLogix5000Content SchemaRevision="1.0" SoftwareRevision="32.00">
  <Controller Name="PLC1">
    <AddOnInstructionDefinitions>
      <AddOnInstruction Name="Valve">
        <Parameters>
          <Parameter Name="Open" DataType="BOOL" Usage="Input" />
          <Parameter Name="IsOpen" DataType="BOOL" Usage="Output" />
          <Parameter Name="Cfg" DataType="DINT" Usage="InOut" />
        </Parameters>
        <Routines>
          <Routine Name="Logic" Type="ST">
            <STContent><Line Number="0">IsOpen := Open;</Line></STContent>
          </Routine>
        </Routines>
      </AddOnInstruction>
    </AddOnInstructionDefinitions>
    <ControllerTags>
      <Tag Name="StartPB" DataType="BOOL" Address="I:0/0">
        <Description>Start push button</Description>
      </Tag>
      <Tag Name="Motor" DataType="BOOL" Address="O:2/0" />
      <Tag Name="Count" DataType="DINT" />
    </ControllerTags>
    <Programs>
      <Program Name="MainProgram">
        <Tags>
          <Tag Name="Step" DataType="DINT" />
        </Tags>
        <Routines>
          <Routine Name="MainRoutine" Type="RLL">
            <RLLContent>
              <Rung Number="0" Type="N"><Text>XIC(StartPB)OTE(Motor);</Text></Rung>
              <Rung Number="1" Type="N"><Text>NOP();</Text></Rung>
            </RLLContent>
          </Routine>
          <Routine Name="Calc" Type="ST">
            <STContent>
              <Line Number="0">Count := Count + 1;</Line>
              <Line Number="1">Step := 2;</Line>
            </STContent>
          </Routine>
        </Routines>
      </Program>
    </Programs>
  </Controller>
</RSLogix5000Content>
"""

BECKHOFF_POU_XML = b"""<?xml version="1.0" encoding="utf-8"?>
<TcPlcObject Version="1.1.0.1">
  <POU Name="MAIN" Id="{6f1c2a50-0000-0000-0000-000000000000}">
    <Declaration><![CDATA[PROGRAM MAIN
VAR_INPUT
    bStart : BOOL;
END_VAR
VAR_OUTPUT
    bMotor AT %QX0.0 : BOOL; // Motor contactor
END_VAR
VAR
    nCount : INT := 0;
END_VAR]]></Declaration>
    <Implementation>
      <ST><![CDATA[nCount := nCount + 1;]]></ST>
    </Implementation>
  </POU>
</TcPlcObject>
"""

BECKHOFF_VARIABLES_XML = b"""<TcSmProject>
  <Variables>
    <Variable Name="Sensor" Type="BOOL" Address="%I0.0" Comment="Door sensor" />
    <Variable Name="Lamp" Type="BOOL" Address="%Q2" />
    <Variable Name="Temp" Type="REAL" Scope="Local" />
  </Variables>
</TcSmProject>
"""

ST_SOURCE = b"""PROGRAM Main
VAR_INPUT
    Start : BOOL;
END_VAR
VAR_OUTPUT
    Motor : BOOL;
END_VAR
VAR
    Count : INT := 0;
END_VAR
Count := Count + 1;
END_PROGRAM

FUNCTION_BLOCK Timer1
VAR
    Elapsed : TIME;
END_VAR
END_FUNCTION_BLOCK
"""


def _tags_by_name(output):
    return {tag.TagName: tag for tag in output.tags}


class TestSiemensParser:
    """Test Siemens TIA Portal block exports and archives."""

    def setup_method(self):
        self.parser = SiemensProjectParser()

    def test_fb_interface_members(self):
        output = self.parser.parse("Motor_FB.xml", SIEMENS_FB_XML)
        tags = _tags_by_name(output)

        assert output.vendor == "Siemens"
        assert output.project_name == "Motor_FB.xml"
        start = tags["Start"]
        assert start.DataType == "Bool"
        assert start.Scope == "Input"
        assert start.Direction == "Input"
        assert tags["Running"].Direction == "Output"
        assert tags["Running"].Description == "Motor is running"
        assert tags["Counter"].Scope == "Static"
        assert tags["Counter"].Direction == "Internal"

    def test_udt_and_struct_members_stay_inside_their_parent(self):
        output = self.parser.parse("Motor_FB.xml", SIEMENS_FB_UDT_XML)

        assert [(t.TagName, t.Scope) for t in output.tags] == [
            ("Start", "Input"),
            ("Cfg", "Input"),
            ("Limits", "Static"),
        ]
        assert output.tags[1].DataType == '"MotorCfg"'

    def test_fb_routine(self):
        output = self.parser.parse("Motor_FB.xml", SIEMENS_FB_XML)
        assert len(output.routines) == 1
        routine = output.routines[0]
        assert routine.Name == "Motor_FB"
        assert routine.Type == "FB"
        assert routine.File == ""

    def test_global_db_directions(self):
        output = self.parser.parse("Data.xml", SIEMENS_GLOBAL_DB_XML)
        tags = _tags_by_name(output)

        assert [t.TagName for t in output.tags] == ["Level", "StartPB", "Pump"]
        assert tags["Level"].Scope == "Global"
        assert tags["Level"].Description == "Tank level"
        assert tags["Level"].Direction == "Internal"
        assert tags["StartPB"].Direction == "Input"
        assert tags["Pump"].Direction == "Output"

    def test_metadata(self):
        output = self.parser.parse("Data.xml", SIEMENS_GLOBAL_DB_XML)
        assert output.metadata.file_count == 1
        assert output.metadata.total_size == len(SIEMENS_GLOBAL_DB_XML)
        assert output.metadata.plc_type == "Siemens S7"

    def test_archive_members(self):
        archive = BytesIO()
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("Blocks/Motor_FB.xml", SIEMENS_FB_XML)
            zf.writestr("Blocks/Data.xml", SIEMENS_GLOBAL_DB_XML)
            zf.writestr("readme.txt", "not a block")
        buffer = archive.getvalue()

        output = self.parser.parse("plant.ap16", buffer)
        names = {t.TagName for t in output.tags}

        assert {"Start", "Running", "Counter", "Level", "StartPB", "Pump"} <= names
        assert output.metadata.file_count == 2
        assert output.routines[0].File == "Blocks/Motor_FB.xml"

    def test_archive_skips_malformed_member(self):
        archive = BytesIO()
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("broken.xml", "<Document><SW.Blocks.FB>")
            zf.writestr("Data.xml", SIEMENS_GLOBAL_DB_XML)

        output = self.parser.parse("plant.ap11", archive.getvalue())
        assert [t.TagName for t in output.tags] == ["Level", "StartPB", "Pump"]

    def test_archive_skips_corrupted_member(self):
        archive = BytesIO()
        with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_STORED) as zf:
            zf.writestr("Damaged.xml", b"<Document>CORRUPTED-PAYLOAD</Document>")
            zf.writestr("Data.xml", SIEMENS_GLOBAL_DB_XML)
        # flip stored bytes so the member fails its CRC check
        buffer = archive.getvalue().replace(b"CORRUPTED-PAYLOAD", b"corrupted-payload")

        output = self.parser.parse("plant.ap16", buffer)

        assert [t.TagName for t in output.tags] == ["Level", "StartPB", "Pump"]
        assert output.metadata.file_count == 1

    def test_unreadable_archive_returns_empty_result(self):
        output = self.parser.parse("broken.ap11", b"not a zip")
        assert output.vendor == "Siemens"
        assert output.tags == []
        assert output.routines == []
        assert output.metadata.total_size == 9

    def test_malformed_xml_never_raises(self):
        output = self.parser.parse("bad.xml", b"<Document><unclosed>")
        assert output.tags == []
        assert output.metadata.file_count == 1


class TestRockwellParser:
    """Test Rockwell L5X parsing."""

    def setup_method(self):
        self.output = RockwellProjectParser().parse("line1.L5X", ROCKWELL_L5X)
        self.tags = _tags_by_name(self.output)

    def test_controller_tags(self):
        start = self.tags["StartPB"]
        assert start.Scope == "Controller"
        assert start.DataType == "BOOL"
        assert start.Description == "Start push button"
        assert start.Direction == "Input"
        assert self.tags["Motor"].Direction == "Output"
        assert self.tags["Count"].Direction == "Internal"

    def test_program_tags_take_program_scope(self):
        assert self.tags["Step"].Scope == "MainProgram"

    def test_aoi_parameters_use_usage(self):
        assert self.tags["Open"].Direction == "Input"
        assert self.tags["IsOpen"].Direction == "Output"
        assert self.tags["Cfg"].Direction == "Internal"
        assert self.tags["Open"].Scope == "AOI"

    def test_tag_count(self):
        assert len(self.output.tags) == 7

    def test_routines(self):
        routines = {r.Name: r for r in self.output.routines}
        assert set(routines) == {"MainRoutine", "Calc", "Valve"}

        ladder = routines["MainRoutine"]
        assert ladder.Type == "RLL"
        assert ladder.Program == "MainProgram"
        assert ladder.Code == "XIC(StartPB)OTE(Motor);\nNOP();"

        st = routines["Calc"]
        assert st.Type == "ST"
        assert st.Code == "Count := Count + 1;\nStep := 2;"

        aoi = routines["Valve"]
        assert aoi.Type == "AOI"
        assert aoi.Code == "IsOpen := Open;"

    def test_metadata(self):
        assert self.output.metadata.software_version == "Studio 5000"


class TestBeckhoffParser:
    """Test TwinCAT variables and POUs."""

    def setup_method(self):
        self.parser = BeckhoffProjectParser()

    def test_variables(self):
        output = self.parser.parse("machine.tsproj", BECKHOFF_VARIABLES_XML)
        tags = _tags_by_name(output)

        assert tags["Sensor"].Direction == "Input"
        assert tags["Sensor"].Scope == "Global"
        assert tags["Sensor"].Description == "Door sensor"
        assert tags["Lamp"].Direction == "Output"
        assert tags["Temp"].Scope == "Local"
        assert tags["Temp"].Direction == "Internal"

    def test_pou_routine_and_declaration(self):
        output = self.parser.parse("MAIN.TcPOU", BECKHOFF_POU_XML)
        tags = _tags_by_name(output)

        assert len(output.routines) == 1
        routine = output.routines[0]
        assert routine.Name == "MAIN"
        assert routine.Type == "POU"
        assert routine.Code == "nCount := nCount + 1;"

        assert set(tags) == {"bStart", "bMotor", "nCount"}
        assert tags["bStart"].Direction == "Input"
        assert tags["bMotor"].Address == "%QX0.0"
        assert tags["bMotor"].Direction == "Output"
        assert tags["bMotor"].Description == "Motor contactor"
        assert tags["nCount"].Scope == "Local"
        assert tags["nCount"].Direction == "Internal"


class TestSTProjectParser:
    """Test plain Structured Text files."""

    def setup_method(self):
        self.output = STProjectParser().parse("main.st", ST_SOURCE)

    def test_tags(self):
        tags = _tags_by_name(self.output)
        assert set(tags) == {"Start", "Motor", "Count", "Elapsed"}
        assert tags["Start"].Direction == "Input"
        assert tags["Motor"].Direction == "Output"
        assert tags["Count"].Scope == "Local"
        assert tags["Count"].DataType == "INT"

    def test_routines(self):
        routines = self.output.routines
        assert [(r.Name, r.Type) for r in routines] == [("Main", "PROGRAM"), ("Timer1", "FUNCTION_BLOCK")]
        assert routines[0].File == "main.st"
        assert routines[0].Code.startswith("PROGRAM Main")
        assert routines[0].Code.endswith("END_PROGRAM")

    def test_metadata(self):
        assert self.output.vendor == "Generic"
        assert self.output.metadata.line_count == len(ST_SOURCE.decode().split("\n"))


class TestDirectionRule:
    """Test physical address classification per vendor."""

    def test_vendor_markers(self):
        assert derive_direction("I0.0", get_dialect("siemens")) == Direction.INPUT
        assert derive_direction("Q4.1", get_dialect("siemens")) == Direction.OUTPUT
        assert derive_direction("I:0/0", get_dialect("rockwell")) == Direction.INPUT
        assert derive_direction("O:2/0", get_dialect("rockwell")) == Direction.OUTPUT
        assert derive_direction("%I0.0", get_dialect("beckhoff")) == Direction.INPUT
        assert derive_direction("%Q2", get_dialect("beckhoff")) == Direction.OUTPUT

    def test_shared_markers_without_dialect(self):
        assert derive_direction("%IX0.0") == Direction.INPUT
        assert derive_direction("%QW4") == Direction.OUTPUT
        assert derive_direction("I0.0") == Direction.INTERNAL
        assert derive_direction("") == Direction.INTERNAL
        assert derive_direction(None) == Direction.INTERNAL


class TestParseProject:
    """Test detection and dispatch."""

    def test_dispatches_by_content(self):
        output = parse_project("export.xml", ROCKWELL_L5X)
        assert output.vendor == "Rockwell"
        assert len(output.tags) == 7

    def test_unknown_vendor(self):
        output = parse_project("notes.txt", b"hello")
        assert output.vendor == "Unknown"
        assert output.tags == []
        assert output.routines == []
        assert output.to_dict()["metadata"] == {"file_count": 1, "total_size": 5}

    def test_to_dict_shape(self):
        result = parse_project("Motor_FB.xml", SIEMENS_FB_XML).to_dict()
        assert set(result) == {"vendor", "project_name", "tags", "routines", "metadata"}
        start = next(t for t in result["tags"] if t["TagName"] == "Start")
        assert start == {
            "TagName": "Start",
            "DataType": "Bool",
            "Scope": "Input",
            "Address": "",
            "Direction": "Input",
            "Description": "",
        }
        assert set(result["routines"][0]) == {"Name", "Type", "Code", "Program", "File"}

    def test_multiple_projects_keep_order(self):
        results = parse_multiple_projects([
            ("main.st", ST_SOURCE),
            ("notes.txt", b""),
            ("machine.tsproj", BECKHOFF_VARIABLES_XML),
        ])
        assert [r.vendor for r in results] == ["Generic", "Unknown", "Beckhoff"]

    def test_dialect_override_is_used(self):
        dialect = get_dialect("siemens")
        results = parse_multiple_projects([("Data.xml", SIEMENS_GLOBAL_DB_XML)], {Vendor.SIEMENS: dialect})
        assert results[0].vendor == "Siemens"
