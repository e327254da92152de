"""Error types raised by the update detection and reconciliation services."""


class SyncError(Exception):
    """Base class for failures surfaced by the sync engine."""


class NotFoundError(SyncError):
    pass


class ValidationError(SyncError):
    pass


class ConfigurationError(ValidationError):
    """Tool path or schema configuration makes the pack tool unusable."""


class ExternalToolUnavailableError(SyncError):
    pass


class ExternalToolError(SyncError):
    def __init__(self, message: str, *, exit_code: int | None = None, stderr: str = "") -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class ExternalToolTimeoutError(ExternalToolError):
    def __init__(self, message: str, *, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(message)


class OperationCancelledError(SyncError):
    pass


class PersistenceError(SyncError):
    pass


class TabularParseError(SyncError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to parse {path}: {reason}")
