"""
Structured Text variable parser.

Walks IEC 61131-3 Structured Text line by line and extracts variable
declarations from ``VAR ... END_VAR`` blocks::

    VAR_INPUT
        Speed : REAL := 10.5;   // address=MW100 Conveyor speed
        Start AT %IX0.0 : BOOL;
    END_VAR

A trailing ``//`` or ``(* *)`` comment may carry ``address=<token>`` (and
``scope=<token>``); whatever remains of the comment becomes the description.

Outside VAR blocks a second, lower-confidence pass picks up bare assignments
of upper-case names (``MOTOR_SPEED := 1500;``) and infers a data type from the
literal. Inferred variables never override a declared one.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

DefaultValue = Union[bool, int, float, str]

# VAR section keyword -> scope of the variables it declares
SECTION_SCOPES = {
    "VAR": "Local",
    "VAR_INPUT": "Input",
    "VAR_OUTPUT": "Output",
    "VAR_IN_OUT": "InOut",
    "VAR_GLOBAL": "Global",
    "VAR_LOCAL": "Local",
    "VAR_TEMP": "Local",
}
OUTSIDE_SCOPE = "Global"

_VAR_START = re.compile(r"^(VAR(?:_INPUT|_OUTPUT|_IN_OUT|_GLOBAL|_LOCAL|_TEMP)?)(?=\s|$|\(|;)", re.IGNORECASE)
_VAR_END = re.compile(r"^END_VAR\b", re.IGNORECASE)

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"
_TYPE = (
    r"(?:(?:POINTER|REFERENCE)\s+TO\s+)*"
    r"(?:ARRAY\s*\[[^\]]*\]\s+OF\s+[A-Za-z_][\w.]*"
    r"|[A-Za-z_][\w.]*(?:\s*[\(\[][^\)\]]*[\)\]])?)"
)
_DECLARATION = re.compile(
    rf"^(?P<names>{_IDENT}(?:\s*,\s*{_IDENT})*)"
    rf"(?:\s+AT\s+(?P<at>%\S+?))?"
    rf"\s*:\s*(?P<type>{_TYPE})"
    rf"\s*(?::=\s*(?P<default>.+?))?"
    rf"\s*;?\s*$",
    re.IGNORECASE,
)
_ASSIGNMENT = re.compile(r"^(?P<name>[A-Z_][A-Z0-9_]*)\s*:=\s*(?P<value>[^;]+?)\s*;?\s*$")

_ADDRESS_TOKEN = re.compile(r"address\s*=\s*([^\s,]+)", re.IGNORECASE)
_SCOPE_TOKEN = re.compile(r"scope\s*=\s*([^\s,]+)", re.IGNORECASE)

_INT_LITERAL = re.compile(r"^-?\d+$")
_DECIMAL_LITERAL = re.compile(r"^-?\d*\.\d+$")

INT_MIN, INT_MAX = -32768, 32767


@dataclass
class STVariable:
    """A variable found in Structured Text source."""
    name: str
    data_type: str
    scope: str
    type: str = "variable"
    address: Optional[str] = None
    default_value: Optional[DefaultValue] = None
    description: Optional[str] = None
    vendor: Optional[str] = None
    line: Optional[int] = None
    inferred: bool = False


def parse_default_value(value: Optional[str]) -> Optional[DefaultValue]:
    """Coerce a literal: TRUE/FALSE -> bool, integers -> int, decimals -> float, quoted -> str."""
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.upper() == "TRUE":
        return True
    if text.upper() == "FALSE":
        return False
    if _INT_LITERAL.match(text):
        return int(text)
    if _DECIMAL_LITERAL.match(text):
        return float(text)
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def infer_data_type(value: str) -> str:
    """Guess a data type from the literal form of an assigned value."""
    text = value.strip()
    if text.upper() in ("TRUE", "FALSE"):
        return "BOOL"
    if _INT_LITERAL.match(text):
        return "INT" if INT_MIN <= int(text) <= INT_MAX else "DINT"
    if _DECIMAL_LITERAL.match(text):
        return "REAL"
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return "STRING"
    return "DINT"


def split_comment(line: str) -> Tuple[str, Optional[str]]:
    """Split a source line into code and trailing comment (``//`` or ``(* *)``)."""
    in_string: Optional[str] = None
    for i, ch in enumerate(line):
        if in_string:
            if ch == in_string:
                in_string = None
            continue
        if ch in ("'", '"'):
            in_string = ch
        elif line.startswith("//", i):
            return line[:i].rstrip(), line[i + 2:].strip()
        elif line.startswith("(*", i):
            comment = line[i + 2:]
            end = comment.find("*)")
            if end >= 0:
                comment = comment[:end]
            return line[:i].rstrip(), comment.strip()
    return line, None


def parse_comment(comment: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Extract ``address=`` from a comment; return (address, remaining description)."""
    if not comment:
        return None, None
    address = None
    match = _ADDRESS_TOKEN.search(comment)
    if match:
        address = match.group(1)
    description = _SCOPE_TOKEN.sub("", _ADDRESS_TOKEN.sub("", comment)).strip()
    return address, description or None


class STVariableParser:
    """Line-oriented state machine over Structured Text source."""

    def __init__(self, vendor: Optional[str] = None, infer_assignments: bool = True):
        self.vendor = vendor.lower() if vendor else None
        self.infer_assignments = infer_assignments

    def parse(self, source: str) -> List[STVariable]:
        """
        Extract variables from Structured Text.

        Args:
            source: Structured Text source code

        Returns:
            Declared variables in source order, followed by inferred ones whose
            names were not declared
        """
        declared: List[STVariable] = []
        inferred: List[STVariable] = []
        in_var_block = False
        scope = OUTSIDE_SCOPE

        for index, raw_line in enumerate(source.splitlines(), start=1):
            line = raw_line.strip()
            if not line or line.startswith("//") or line.startswith("(*") or line.startswith("*"):
                continue

            start = _VAR_START.match(line)
            if start:
                in_var_block = True
                scope = SECTION_SCOPES.get(start.group(1).upper(), "Local")
                continue

            if _VAR_END.match(line):
                in_var_block = False
                scope = OUTSIDE_SCOPE
                continue

            if in_var_block:
                declared.extend(self._parse_declaration(line, scope, index))
            elif self.infer_assignments:
                variable = self._parse_assignment(line, scope, index)
                if variable is not None:
                    inferred.append(variable)

        declared_names = {v.name for v in declared}
        seen = set()
        result = list(declared)
        for variable in inferred:
            if variable.name in declared_names or variable.name in seen:
                continue
            seen.add(variable.name)
            result.append(variable)

        logger.debug(f"ST parser found {len(declared)} declared and {len(result) - len(declared)} inferred variables")
        return result

    def _parse_declaration(self, line: str, scope: str, line_number: int) -> List[STVariable]:
        code, comment = split_comment(line)
        if not code:
            return []
        match = _DECLARATION.match(code)
        if not match:
            logger.debug(f"Line {line_number}: not a declaration: {code!r}")
            return []

        address, description = parse_comment(comment)
        if match.group("at"):
            address = match.group("at")
        data_type = re.sub(r"\s+", " ", match.group("type").strip()).upper()
        default_value = parse_default_value(match.group("default"))

        variables = []
        for name in match.group("names").split(","):
            variables.append(STVariable(
                name=name.strip(),
                data_type=data_type,
                scope=scope,
                address=address,
                default_value=default_value,
                description=description,
                vendor=self.vendor,
                line=line_number,
            ))
        return variables

    def _parse_assignment(self, line: str, scope: str, line_number: int) -> Optional[STVariable]:
        code, comment = split_comment(line)
        match = _ASSIGNMENT.match(code)
        if not match:
            return None
        value = match.group("value")
        address, description = parse_comment(comment)
        return STVariable(
            name=match.group("name"),
            data_type=infer_data_type(value),
            scope=scope,
            address=address,
            default_value=parse_default_value(value),
            description=description,
            vendor=self.vendor,
            line=line_number,
            inferred=True,
        )


def parse_st_variables(source: str, vendor: Optional[str] = None) -> List[STVariable]:
    """Convenience wrapper around :class:`STVariableParser`."""
    return STVariableParser(vendor=vendor).parse(source)
