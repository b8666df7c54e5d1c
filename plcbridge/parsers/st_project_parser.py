"""Generic IEC 61131-3 Structured Text file parser (``.st`` / ``.scl``)."""

import re
import logging
from pathlib import PurePath
from typing import List

from .base import section_direction
from ..dialects import derive_direction
from ..models import Direction, PLCRoutine, PLCTag, ProjectMetadata, StandardPLCOutput, Vendor
from ..st_parser import STVariableParser

logger = logging.getLogger(__name__)

_ROUTINE = re.compile(r"\b(PROGRAM|FUNCTION_BLOCK|FUNCTION)\s+(\w+)[\s\S]*?\bEND_\1\b", re.IGNORECASE)


class STProjectParser:
    """Parser for plain Structured Text sources."""

    vendor = Vendor.GENERIC

    def __init__(self):
        self.variable_parser = STVariableParser()

    def parse(self, filename: str, buffer: bytes) -> StandardPLCOutput:
        """
        Parse a Structured Text file.

        Args:
            filename: Original file name
            buffer: Raw file content, decoded as UTF-8

        Returns:
            StandardPLCOutput with the declared (and inferred) variables as tags
            and each PROGRAM / FUNCTION_BLOCK / FUNCTION block as a routine
        """
        name = PurePath(filename).name
        logger.info(f"Parsing Structured Text file: {filename}")
        output = StandardPLCOutput(vendor=self.vendor.value, project_name=name)
        line_count = None
        try:
            source = buffer.decode("utf-8", errors="replace")
            line_count = len(source.split("\n"))
            output.tags = self._extract_tags(source)
            output.routines = self._extract_routines(source, name)
        except Exception as e:
            logger.error(f"Structured Text parsing failed for {filename}: {e}", exc_info=True)

        output.metadata = ProjectMetadata(
            file_count=1,
            total_size=len(buffer),
            line_count=line_count,
            plc_type="Generic ST",
        )
        logger.info(f"Parsed Structured Text file {filename}: "
                    f"{len(output.tags)} tags, {len(output.routines)} routines")
        return output

    def _extract_tags(self, source: str) -> List[PLCTag]:
        tags = []
        for variable in self.variable_parser.parse(source):
            direction = section_direction(variable.scope)
            if direction == Direction.INTERNAL:
                direction = derive_direction(variable.address)
            tags.append(PLCTag(
                TagName=variable.name,
                DataType=variable.data_type,
                Scope=variable.scope or "Local",
                Address=variable.address or "",
                Direction=direction.value,
                Description=variable.description or "",
            ))
        return tags

    def _extract_routines(self, source: str, filename: str) -> List[PLCRoutine]:
        routines = []
        for match in _ROUTINE.finditer(source):
            routines.append(PLCRoutine(
                Name=match.group(2),
                Type=match.group(1).upper(),
                Code=match.group(0),
                Program="",
                File=filename,
            ))
        return routines
