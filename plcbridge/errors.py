"""Exceptions raised by plcbridge: unsupported inputs, malformed documents, row and store failures."""

from typing import Any, Dict, List, Optional


class PLCBridgeError(Exception):
    """Base exception for plcbridge."""

    pass


class UnsupportedFormatError(PLCBridgeError):
    """Raised when a vendor or file format has no parser, importer or formatter."""

    def __init__(self, vendor: str, message: Optional[str] = None) -> None:
        self.vendor = vendor
        super().__init__(message or f"Unsupported vendor or format: {vendor!r}")


class MalformedDocumentError(PLCBridgeError):
    """Raised when an XML document or archive cannot be decoded."""

    def __init__(self, source: str, message: str, cause: Optional[BaseException] = None) -> None:
        self.source = source
        self.cause = cause
        super().__init__(f"{source}: {message}")


class RowValidationError(PLCBridgeError):
    """One import row that failed validation. Collected, not raised, by the import pipelines."""

    def __init__(self, row: int, errors: List[str], raw: Optional[Dict[str, Any]] = None) -> None:
        self.row = row
        self.errors = list(errors)
        self.raw = dict(raw or {})
        super().__init__(f"Row {row}: {'; '.join(self.errors)}")

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "errors": list(self.errors), "raw": dict(self.raw)}


class PersistenceError(PLCBridgeError):
    """Raised when the tag store fails while writing already-validated data."""

    def __init__(self, message: str, *, tag_name: Optional[str] = None,
                 cause: Optional[BaseException] = None) -> None:
        self.tag_name = tag_name
        self.cause = cause
        super().__init__(message)


class ExportError(PLCBridgeError):
    """Raised when an export stream cannot be produced or written."""

    def __init__(self, vendor: str, message: str, cause: Optional[BaseException] = None) -> None:
        self.vendor = vendor
        self.cause = cause
        super().__init__(f"Failed to export {vendor} tags: {message}")


class DialectError(PLCBridgeError):
    """Raised when a dialect descriptor is unknown or malformed."""

    pass
