"""
Rockwell Studio 5000 (L5X) project parser.

Controller tags, program-scoped tags, program routines (structured text or
ladder) and Add-On Instructions with their parameters.
"""

from .base import (
    DIRECTION_FROM_USAGE,
    MappingProjectParser,
    RoutineMapping,
    TagMapping,
)
from ..models import Vendor


class RockwellProjectParser(MappingProjectParser):
    """Parser for Rockwell L5X exports."""

    vendor = Vendor.ROCKWELL
    dialect_name = "rockwell"
    plc_type = "Allen-Bradley ControlLogix"
    software_version = "Studio 5000"

    tag_mappings = (
        TagMapping(
            path=("ControllerTags", "Tag"),
            description=("Description", "Comment"),
            scope="Controller",
        ),
        TagMapping(
            path=("Program", "Tags", "Tag"),
            description=("Description", "Comment"),
            scope="Program",
            scope_from=("Program", "Name"),
        ),
        TagMapping(
            path=("AddOnInstruction", "Parameter"),
            description=("Description",),
            scope="AOI",
            direction=DIRECTION_FROM_USAGE,
        ),
    )

    routine_mappings = (
        RoutineMapping(
            path=("Program", "Routine"),
            code="rockwell",
            routine_type="Routine",
            type_keys=("Type",),
            program_from=("Program", "Name"),
        ),
        RoutineMapping(path=("AddOnInstruction",), code="rockwell", routine_type="AOI"),
    )
