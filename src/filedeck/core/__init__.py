"""filedeck core: errors, configuration, logging and diagnostics."""

from filedeck.core.config import ConfigResolver, LoggingPolicy
from filedeck.core.errors import (
    AlreadyExistsError,
    ArchiveCorruptError,
    ConfigError,
    CrossDeviceFallback,
    FileDeckError,
    InvalidParameterError,
    NotADirError,
    NotAFileError,
    NotFoundError,
    OperationCancelledError,
    OperationError,
    UnknownOperationFailure,
)
from filedeck.core.events import EventBus, get_event_bus
from filedeck.core.logging import (
    VerbosityLevel,
    apply_logging_policy,
    get_logger,
    get_verbosity,
    set_colors,
    set_verbosity,
)

__all__ = [
    # Config
    "ConfigResolver",
    "LoggingPolicy",
    # Errors
    "FileDeckError",
    "ConfigError",
    "OperationError",
    "InvalidParameterError",
    "NotFoundError",
    "NotADirError",
    "NotAFileError",
    "AlreadyExistsError",
    "OperationCancelledError",
    "ArchiveCorruptError",
    "CrossDeviceFallback",
    "UnknownOperationFailure",
    # Events
    "EventBus",
    "get_event_bus",
    # Logging
    "VerbosityLevel",
    "get_logger",
    "set_verbosity",
    "get_verbosity",
    "set_colors",
    "apply_logging_policy",
]
