"""
Vendor detection.

Classifies an input file by extension and, for plain ``.xml`` files, by vendor
signature strings found in the decoded content.
"""

import logging
from pathlib import PurePath
from typing import Dict, Optional, Tuple

from .models import Vendor

logger = logging.getLogger(__name__)

EXTENSION_VENDORS: Dict[str, Vendor] = {
    ".ap11": Vendor.SIEMENS,
    ".ap16": Vendor.SIEMENS,
    ".acd": Vendor.ROCKWELL,
    ".l5x": Vendor.ROCKWELL,
    ".tsproj": Vendor.BECKHOFF,
    ".plcproj": Vendor.BECKHOFF,
    ".st": Vendor.GENERIC,
    ".scl": Vendor.GENERIC,
}

# Checked in order; first vendor with a matching signature wins.
CONTENT_SIGNATURES: Tuple[Tuple[Vendor, Tuple[str, ...]], ...] = (
    (Vendor.SIEMENS, ("siemens.com/automation", "SW.Blocks.GlobalDB", "SW.Blocks.FB", "Step7")),
    (Vendor.ROCKWELL, ("RSLogix5000Content", "ControllerTags", "AddOnInstruction")),
    (Vendor.BECKHOFF, ("TcPlcProject", "TcPlcObject", "TwinCAT", "Beckhoff")),
)


def file_extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def detect_vendor(filename: str, buffer: Optional[bytes] = None) -> Vendor:
    """
    Detect which vendor produced a project file.

    Args:
        filename: Original file name (only the extension is inspected)
        buffer: Optional file content, used to sniff ``.xml`` files

    Returns:
        The detected vendor, ``Vendor.UNKNOWN`` when nothing matches
    """
    extension = file_extension(filename)
    vendor = EXTENSION_VENDORS.get(extension)
    if vendor is not None:
        return vendor

    if extension == ".xml" and buffer:
        text = buffer.decode("utf-8", errors="ignore")
        for candidate, signatures in CONTENT_SIGNATURES:
            if any(signature in text for signature in signatures):
                logger.debug(f"Detected {candidate.value} signature in {filename}")
                return candidate

    return Vendor.UNKNOWN
