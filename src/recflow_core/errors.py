"""recflow error taxonomy."""
from __future__ import annotations

ERRORS = {
    "E_FILE_NOT_FOUND": "File not found for object",
    "E_FORMAT_INVALID": "Invalid format",
    "E_VARIANT_NOT_FOUND": "Variant not found for object",
    "E_ENCODING_FAILED": "Encoding failed",
    "E_PARSING_FAILED": "Failed to parse, incorrect format or not enough variants",
    "E_FAILED_TO_WRITE": "Written bytes did not verify",
    "E_STORAGE": "Storage I/O failed",
    "E_MODE_NOT_ENABLED": "Operation family not enabled for this record type",
    "E_REGISTRATION": "Invalid record binding",
    "E_ARCHIVE_BUSY": "Archive is already mapped for exclusive access",
}


class FlowError(Exception):
    """Base class for every error raised by recflow."""

    code = "E_FLOW"

    def __init__(self, detail: str | None = None):
        message = ERRORS.get(self.code, self.code)
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.detail = detail

    def as_dict(self) -> dict:
        out = {"code": self.code, "message": ERRORS.get(self.code, self.code)}
        if self.detail:
            out["detail"] = self.detail
        return out


class FileNotFound(FlowError, FileNotFoundError):
    code = "E_FILE_NOT_FOUND"


class FormatInvalid(FlowError):
    code = "E_FORMAT_INVALID"


class VariantNotFound(FlowError):
    code = "E_VARIANT_NOT_FOUND"

    def __init__(self, tag: int, record_type: str | None = None):
        detail = f"tag {tag}" if record_type is None else f"tag {tag} for {record_type}"
        super().__init__(detail)
        self.tag = tag


class EncodingFailed(FlowError):
    code = "E_ENCODING_FAILED"


class ParsingFailed(FlowError):
    code = "E_PARSING_FAILED"


class FailedToWrite(FlowError):
    code = "E_FAILED_TO_WRITE"

    def __init__(self, path, attempts: int):
        super().__init__(f"{path} after {attempts} attempts")
        self.path = path
        self.attempts = attempts


class StorageError(FlowError):
    """Passthrough for the storage layer's own OSError (see __cause__)."""

    code = "E_STORAGE"


class ModeNotEnabled(FlowError):
    code = "E_MODE_NOT_ENABLED"


class RegistrationError(FlowError):
    code = "E_REGISTRATION"


class ArchiveBusy(FlowError):
    code = "E_ARCHIVE_BUSY"
