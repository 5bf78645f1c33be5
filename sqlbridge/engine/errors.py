"""Exception hierarchy for the DBMS command path."""


class DBMSError(Exception):
    """Base error type for all command path failures."""


class DBMSStructuredError(DBMSError):
    """DBMS error carrying stable taxonomy class/code fields."""

    def __init__(self, message: str, *, error_class: str, error_code: str):
        super().__init__(message)
        self.error_class = error_class
        self.error_code = error_code


class DBMSUnavailableError(DBMSStructuredError):
    """Raised when no live DBMS process can take the command."""

    def __init__(self, message: str = "dbms process unavailable"):
        super().__init__(
            message,
            error_class="dbms_unavailable",
            error_code="DBMS_UNAVAILABLE",
        )


class CommandTimeoutError(DBMSStructuredError):
    """Raised when the DBMS stays silent for the whole inactivity window."""

    def __init__(self, message: str = "command timed out"):
        super().__init__(
            message,
            error_class="timeout",
            error_code="COMMAND_TIMEOUT",
        )


class CommandWriteError(DBMSStructuredError):
    """Raised when the DBMS input stream rejects a command line."""

    def __init__(self, message: str = "failed to write command"):
        super().__init__(
            message,
            error_class="write_failed",
            error_code="COMMAND_WRITE_FAILED",
        )


class InvalidCommandError(DBMSStructuredError):
    """Raised for malformed commands rejected before queueing."""

    def __init__(self, message: str = "invalid command format"):
        super().__init__(
            message,
            error_class="invalid_input",
            error_code="COMMAND_INVALID",
        )
