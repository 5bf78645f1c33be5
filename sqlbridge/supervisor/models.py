from pydantic import BaseModel
from typing import Any, Optional
from enum import Enum

from sqlbridge.contracts import EXECUTE_RESULT_SCHEMA_V1
from sqlbridge.failures import ExecutionResult
from .process_supervisor import SupervisorState

class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"

class ExecuteRequest(BaseModel):
    # Validated by the gateway so malformed commands map to invalid_input.
    command: Any = None

class FailurePayload(BaseModel):
    error_schema_version: str
    error_class: str
    error_code: str
    command: str
    message: str
    fingerprint: str

class ExecuteResponse(BaseModel):
    schema_version: str = EXECUTE_RESULT_SCHEMA_V1
    output: str
    error: bool
    failure: Optional[FailurePayload] = None

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "ExecuteResponse":
        failure = FailurePayload(**result.failure) if result.failure is not None else None
        return cls(output=result.output, error=result.error, failure=failure)

class HealthResponse(BaseModel):
    status: HealthStatus
    live: bool
    state: SupervisorState
    queue_depth: int
    in_flight: bool
    pid: Optional[int] = None
    restart_count: int = 0
    last_exit_code: Optional[int] = None
