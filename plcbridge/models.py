"""
Data model for plcbridge.

Two families of records live here:

- the transient extraction records produced by a project parse
  (``StandardPLCOutput``, ``PLCTag``, ``PLCRoutine``, ``ProjectMetadata``);
- the persisted canonical tag (``Tag``) and its write-side counterpart
  (``CreateTagData``) handled by the tag store and the import/export pipelines.

The extraction records serialize to the vendor-agnostic JSON shape
``{vendor, project_name, tags: [...], routines: [...], metadata: {...}}``.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class Vendor(str, Enum):
    """Vendor classification of an input project file."""
    SIEMENS = "Siemens"
    ROCKWELL = "Rockwell"
    BECKHOFF = "Beckhoff"
    GENERIC = "Generic"
    UNKNOWN = "Unknown"


class Direction(str, Enum):
    """Derived I/O classification of an extracted tag."""
    INPUT = "Input"
    OUTPUT = "Output"
    INTERNAL = "Internal"


class StandardType(str, Enum):
    """Standard tag type every persisted tag is mapped onto."""
    BOOL = "BOOL"
    INT = "INT"
    DINT = "DINT"
    REAL = "REAL"
    STRING = "STRING"
    TIMER = "TIMER"
    COUNTER = "COUNTER"


class TagVendor(str, Enum):
    """Vendor a persisted tag belongs to."""
    ROCKWELL = "rockwell"
    SIEMENS = "siemens"
    BECKHOFF = "beckhoff"


class TagScope(str, Enum):
    GLOBAL = "global"
    LOCAL = "local"
    INPUT = "input"
    OUTPUT = "output"


class TagType(str, Enum):
    INPUT = "input"
    OUTPUT = "output"
    MEMORY = "memory"
    TEMP = "temp"
    CONSTANT = "constant"


@dataclass
class PLCTag:
    """A tag extracted from a vendor project file."""
    TagName: str
    DataType: str = ""
    Scope: str = ""
    Address: str = ""
    Direction: str = Direction.INTERNAL.value
    Description: str = ""


@dataclass
class PLCRoutine:
    """A routine (FB, FC, program, AOI, POU, ...) extracted from a project file."""
    Name: str
    Type: str = ""
    Code: str = ""
    Program: str = ""
    File: str = ""


@dataclass
class ProjectMetadata:
    """Advisory provenance counters; never validated."""
    file_count: Optional[int] = None
    total_size: Optional[int] = None
    line_count: Optional[int] = None
    plc_type: Optional[str] = None
    software_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class StandardPLCOutput:
    """Canonical result of parsing one project file."""
    vendor: str
    project_name: str
    tags: List[PLCTag] = field(default_factory=list)
    routines: List[PLCRoutine] = field(default_factory=list)
    metadata: ProjectMetadata = field(default_factory=ProjectMetadata)

    def to_dict(self) -> Dict[str, Any]:
        """Return the vendor-agnostic JSON shape of this result."""
        return {
            "vendor": self.vendor,
            "project_name": self.project_name,
            "tags": [asdict(tag) for tag in self.tags],
            "routines": [asdict(routine) for routine in self.routines],
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class CreateTagData:
    """A validated, mapped import row ready to be upserted into the tag store."""
    project_id: int
    user_id: str
    name: str
    type: str
    data_type: str
    vendor: str
    description: str = ""
    address: str = ""
    default_value: Optional[str] = None
    scope: str = TagScope.GLOBAL.value
    tag_type: str = TagType.MEMORY.value
    is_ai_generated: bool = False


@dataclass
class Tag:
    """A persisted canonical tag."""
    id: int
    project_id: int
    user_id: str
    name: str
    type: str
    data_type: str
    vendor: str
    description: str = ""
    address: str = ""
    default_value: Optional[str] = None
    scope: str = TagScope.GLOBAL.value
    tag_type: str = TagType.MEMORY.value
    is_ai_generated: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
