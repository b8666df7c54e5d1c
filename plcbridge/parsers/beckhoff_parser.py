"""
Beckhoff TwinCAT 3 project parser.

``Variable`` nodes become tags, ``POU`` nodes become routines. The textual
``Declaration`` block of a POU is handed to the Structured Text variable
parser so the POU's own VAR sections show up as tags too.
"""

import logging

from .base import MappingProjectParser, ParseContext, RoutineMapping, TagMapping, section_direction
from ..dialects import derive_direction
from ..models import Direction, PLCTag, Vendor
from ..st_parser import STVariableParser
from ..xmltree import XMLObject, find_nodes, get_field

logger = logging.getLogger(__name__)


class BeckhoffProjectParser(MappingProjectParser):
    """Parser for TwinCAT project and PLC object XML."""

    vendor = Vendor.BECKHOFF
    dialect_name = "beckhoff"
    plc_type = "Beckhoff TwinCAT"
    software_version = "TwinCAT 3"

    tag_mappings = (
        TagMapping(
            path=("Variable",),
            data_type=("Type", "DataType"),
            address=("Address", "PhysicalAddress"),
            description=("Comment", "Description"),
            scope="Global",
            scope_keys=("Scope",),
        ),
    )

    routine_mappings = (
        RoutineMapping(path=("POU",), code="implementation_st", routine_type="POU", type_keys=("Type",)),
    )

    def extract_extra(self, document: XMLObject, context: ParseContext) -> None:
        st_parser = STVariableParser(vendor=self.vendor.value, infer_assignments=False)
        for pou in find_nodes(document, "POU"):
            declaration = get_field(pou, "Declaration")
            if not declaration:
                continue
            variables = st_parser.parse(declaration)
            logger.debug(f"POU {get_field(pou, 'Name')}: {len(variables)} declared variables")
            for variable in variables:
                direction = section_direction(variable.scope)
                if direction == Direction.INTERNAL:
                    direction = derive_direction(variable.address, self.dialect)
                context.output.tags.append(PLCTag(
                    TagName=variable.name,
                    DataType=variable.data_type,
                    Scope=variable.scope,
                    Address=variable.address or "",
                    Direction=direction.value,
                    Description=variable.description or "",
                ))
