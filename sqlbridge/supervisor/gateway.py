"""Transport-facing boundary in front of the request queue."""

import logging

from sqlbridge.failures import ExecutionResult, invalid_input, unavailable
from sqlbridge.supervisor.models import HealthResponse, HealthStatus
from sqlbridge.supervisor.process_supervisor import ProcessSupervisor
from sqlbridge.supervisor.request_queue import RequestQueue

logger = logging.getLogger("sqlbridge.supervisor.gateway")


def validate_command(command_text: object) -> str | None:
    """Return a rejection reason for malformed commands, or None when acceptable."""
    if not isinstance(command_text, str):
        return "command must be a string"
    if not command_text.strip():
        return "command must not be empty"
    if "\n" in command_text or "\r" in command_text:
        return "command must be a single line"
    return None


class Gateway:
    """Accept external commands, enqueue them and report bridge health."""

    def __init__(self, supervisor: ProcessSupervisor, queue: RequestQueue) -> None:
        self._supervisor = supervisor
        self._queue = queue
        self.accepting = True

    async def execute(self, command_text: object) -> ExecutionResult:
        reason = validate_command(command_text)
        if reason is not None:
            logger.info("Rejected command: %s", reason)
            command = command_text if isinstance(command_text, str) else ""
            return invalid_input(command, reason)
        if not self.accepting:
            return unavailable(command_text, "bridge is shutting down")
        return await self._queue.enqueue(command_text)

    def health(self) -> HealthResponse:
        live = self._supervisor.is_live()
        return HealthResponse(
            status=HealthStatus.HEALTHY if live else HealthStatus.UNHEALTHY,
            live=live,
            state=self._supervisor.state,
            queue_depth=self._queue.depth,
            in_flight=self._queue.in_flight,
            pid=self._supervisor.pid,
            restart_count=self._supervisor.restart_count,
            last_exit_code=self._supervisor.last_exit_code,
        )

    async def close(self) -> None:
        """Stop accepting commands and abandon whatever is still queued."""
        self.accepting = False
        await self._queue.close()
