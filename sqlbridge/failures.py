"""Failure taxonomy, fingerprints and resolved execution results."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum

from sqlbridge.contracts import ERROR_SCHEMA_V1
from sqlbridge.engine.errors import (
    DBMSStructuredError,
    DBMSUnavailableError,
    InvalidCommandError,
)


class FailureKind(str, Enum):
    UNAVAILABLE = "unavailable"
    TIMED_OUT = "timed_out"
    WRITE_FAILED = "write_failed"
    INVALID_INPUT = "invalid_input"
    INTERNAL_FAILURE = "internal_failure"


# User-facing output text for each failure kind.
FAILURE_MESSAGES = {
    FailureKind.UNAVAILABLE: "DBMS is temporarily unavailable. Please try again shortly.",
    FailureKind.TIMED_OUT: "Command timed out",
    FailureKind.WRITE_FAILED: "Failed to send command to DBMS",
    FailureKind.INVALID_INPUT: "Invalid command format",
    FailureKind.INTERNAL_FAILURE: "Internal server error during command processing",
}

_KIND_BY_CLASS = {
    "dbms_unavailable": FailureKind.UNAVAILABLE,
    "timeout": FailureKind.TIMED_OUT,
    "write_failed": FailureKind.WRITE_FAILED,
    "invalid_input": FailureKind.INVALID_INPUT,
    "internal": FailureKind.INTERNAL_FAILURE,
}


def build_failure(
    *,
    error_class: str,
    error_code: str,
    command: str,
    message: str,
) -> dict[str, str]:
    """Build a stable failure payload for API responses and logs."""
    fingerprint_input = "|".join(
        [
            error_class,
            error_code,
            command or "",
        ]
    )
    fingerprint = hashlib.sha256(fingerprint_input.encode("utf-8")).hexdigest()
    return {
        "error_schema_version": ERROR_SCHEMA_V1,
        "error_class": error_class,
        "error_code": error_code,
        "command": command or "",
        "message": message,
        "fingerprint": fingerprint,
    }


def classify_failure(*, error: BaseException, command: str) -> dict[str, str]:
    """Classify a command path exception into the versioned error taxonomy."""
    message = str(error) or error.__class__.__name__
    if isinstance(error, DBMSStructuredError):
        return build_failure(
            error_class=error.error_class,
            error_code=error.error_code,
            command=command,
            message=message,
        )
    return build_failure(
        error_class="internal",
        error_code="INTERNAL_FAILURE",
        command=command,
        message=message,
    )


@dataclass(frozen=True)
class ExecutionResult:
    """Resolved outcome of one command, successful or not."""

    output: str
    error: bool
    failure: dict[str, str] | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def failure_kind(self) -> FailureKind | None:
        if self.failure is None:
            return None
        return _KIND_BY_CLASS.get(self.failure["error_class"], FailureKind.INTERNAL_FAILURE)

    @classmethod
    def completed(cls, body: str, is_error: bool) -> "ExecutionResult":
        return cls(output=body, error=is_error)

    @classmethod
    def failed(cls, error: BaseException, command: str) -> "ExecutionResult":
        failure = classify_failure(error=error, command=command)
        kind = _KIND_BY_CLASS.get(failure["error_class"], FailureKind.INTERNAL_FAILURE)
        return cls(output=FAILURE_MESSAGES[kind], error=True, failure=failure)


def unavailable(command: str, message: str = "dbms process unavailable") -> ExecutionResult:
    return ExecutionResult.failed(DBMSUnavailableError(message), command)


def invalid_input(command: str, message: str = "invalid command format") -> ExecutionResult:
    return ExecutionResult.failed(InvalidCommandError(message), command)
