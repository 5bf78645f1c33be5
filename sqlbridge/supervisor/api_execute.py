"""HTTP endpoints for command execution and bridge health."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from sqlbridge.failures import ExecutionResult, FailureKind
from sqlbridge.supervisor.gateway import Gateway
from sqlbridge.supervisor.models import ExecuteRequest, ExecuteResponse, HealthResponse

logger = logging.getLogger("sqlbridge.supervisor.api_execute")

router = APIRouter()

STATUS_BY_FAILURE = {
    FailureKind.INVALID_INPUT: 400,
    FailureKind.UNAVAILABLE: 503,
    FailureKind.TIMED_OUT: 504,
    FailureKind.WRITE_FAILED: 500,
    FailureKind.INTERNAL_FAILURE: 500,
}


def status_code_for(result: ExecutionResult) -> int:
    """Map a resolved result to its HTTP status; error-flagged completions stay 200."""
    kind = result.failure_kind
    if kind is None:
        return 200
    return STATUS_BY_FAILURE[kind]


def execution_response(result: ExecutionResult) -> JSONResponse:
    body = ExecuteResponse.from_result(result)
    return JSONResponse(status_code=status_code_for(result), content=body.model_dump(mode="json"))


def _gateway(request: Request) -> Gateway:
    return request.app.state.runtime.gateway


@router.post("/execute", response_model=ExecuteResponse)
async def execute_command(payload: ExecuteRequest, request: Request):
    """Queue one DBMS command and return its output once the prompt comes back."""
    result = await _gateway(request).execute(payload.command)
    if not result.ok:
        logger.info("Command resolved as %s", result.failure_kind.value)
    return execution_response(result)


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    return _gateway(request).health()
