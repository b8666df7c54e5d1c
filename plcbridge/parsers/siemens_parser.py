"""
Siemens TIA Portal project parser.

Accepts a single exported block XML or a project archive (``.ap11``/``.ap16``),
in which case every ``.xml`` member is parsed in turn. Both the flat export
layout (``SW.Blocks.GlobalDB.Var``) and the Openness layout
(``SW.Blocks.GlobalDB/.../Section/Member``) are understood.
"""

from .base import (
    DIRECTION_FROM_SECTION,
    ArchiveMixin,
    MappingProjectParser,
    RoutineMapping,
    TagMapping,
)
from ..models import Vendor

_NAME = ("Name", "AttributeList/Name")
_MEMBER_TYPE = ("Datatype", "DataType")
_COMMENT = ("Comment/MultiLanguageText", "Comment", "Description")


class SiemensProjectParser(ArchiveMixin, MappingProjectParser):
    """Parser for Siemens TIA Portal XML exports and project archives."""

    vendor = Vendor.SIEMENS
    dialect_name = "siemens"
    archive_extensions = (".ap11", ".ap16")
    plc_type = "Siemens S7"
    software_version = "TIA Portal"

    tag_mappings = (
        # flat global DB export
        TagMapping(
            path=("SW.Blocks.GlobalDB", "SW.Blocks.GlobalDB.Var"),
            data_type=("DataType", "Datatype"),
            description=_COMMENT,
            scope="Global",
        ),
        # Openness global DB: static section members; struct and UDT
        # members stay inside their parent member
        TagMapping(
            path=("SW.Blocks.GlobalDB", "Section", "Member"),
            data_type=_MEMBER_TYPE,
            description=_COMMENT,
            scope="Global",
            nested=False,
        ),
        TagMapping(
            path=("SW.Blocks.FB", "Section", "Member"),
            data_type=_MEMBER_TYPE,
            description=_COMMENT,
            scope_from=("Section", "Name"),
            direction=DIRECTION_FROM_SECTION,
            nested=False,
        ),
        TagMapping(
            path=("SW.Blocks.FC", "Section", "Member"),
            data_type=_MEMBER_TYPE,
            description=_COMMENT,
            scope_from=("Section", "Name"),
            direction=DIRECTION_FROM_SECTION,
            nested=False,
        ),
    )

    routine_mappings = (
        RoutineMapping(path=("SW.Blocks.FB",), code="st_source", routine_type="FB",
                       name=_NAME, program_keys=("Program",)),
        RoutineMapping(path=("SW.Blocks.FC",), code="st_source", routine_type="FC",
                       name=_NAME, program_keys=("Program",)),
    )
