"""Error handling with friendly messages."""

from __future__ import annotations


class FileDeckError(Exception):
    """Base exception for all filedeck errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class ConfigError(FileDeckError):
    """Configuration error."""

    pass


class OperationError(FileDeckError):
    """File operation error.

    Every subclass carries a stable ``kind`` tag that is reported to callers
    as ``errorType`` in the response envelope.
    """

    kind = "unknown"


class InvalidParameterError(OperationError):
    """A request field is missing or malformed."""

    kind = "invalid_parameter"


class NotFoundError(OperationError):
    """Source or destination does not exist."""

    kind = "not_found"


class NotADirError(OperationError):
    """A directory was expected."""

    kind = "not_a_directory"


class NotAFileError(OperationError):
    """A file was expected."""

    kind = "not_a_file"


class AlreadyExistsError(OperationError):
    """Destination exists and no automatic rename applies."""

    kind = "already_exists"


class OperationCancelledError(OperationError):
    """Operation was cancelled by the user."""

    kind = "cancelled"

    def __init__(self, message: str = "Operation cancelled by user") -> None:
        super().__init__(message)


class ArchiveCorruptError(OperationError):
    """Archive or archive entry is unreadable."""

    kind = "archive_corrupt"

    def __init__(self, path: str, detail: str | None = None) -> None:
        message = f"Archive '{path}' is corrupted or unreadable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, "Check the archive integrity or re-create it")


class CrossDeviceFallback(OperationError):
    """Rename crossed a device boundary; callers fall back to copy + delete."""

    kind = "cross_device"


class UnknownOperationFailure(OperationError):
    """Underlying OS error with its message preserved."""

    kind = "unknown"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)

    @classmethod
    def from_os_error(cls, exc: OSError) -> UnknownOperationFailure:
        detail = exc.strerror or str(exc)
        if exc.filename:
            detail = f"{detail}: {exc.filename}"
        return cls(detail, exc)
