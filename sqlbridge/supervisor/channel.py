"""Command channel: one command line in, one prompt-framed response out."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from sqlbridge.engine.errors import (
    CommandTimeoutError,
    CommandWriteError,
    DBMSError,
    DBMSUnavailableError,
)
from sqlbridge.engine.prompt import PromptMatch, try_extract
from sqlbridge.supervisor.process_supervisor import ProcessSupervisor, describe_exit

logger = logging.getLogger("sqlbridge.supervisor.channel")

COMMAND_TIMEOUT_SECONDS = 10.0


class CommandState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class PendingCommand:
    """In-flight command: accumulates output until a prompt or a failure resolves it.

    The inactivity timer is re-armed on every chunk, so slow but steady output
    never times out; only a stalled process does.
    """

    def __init__(self, command: str, *, timeout_seconds: float, loop: asyncio.AbstractEventLoop):
        self.command = command
        self.timeout_seconds = timeout_seconds
        self.buffer = ""
        self.state = CommandState.PENDING
        self.deadline: float | None = None
        self._loop = loop
        self._future: asyncio.Future = loop.create_future()
        self._timer: asyncio.TimerHandle | None = None

    def arm_timer(self) -> None:
        self.cancel_timer()
        self.deadline = self._loop.time() + self.timeout_seconds
        self._timer = self._loop.call_later(self.timeout_seconds, self._expire)

    def cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def feed(self, chunk: str) -> None:
        if self.state is not CommandState.PENDING:
            return
        self.buffer += chunk
        self.arm_timer()
        match = try_extract(self.buffer, self.command)
        if match.complete:
            self._resolve(CommandState.COMPLETED, result=match)

    def terminated(self, returncode: int | None) -> None:
        if self.state is not CommandState.PENDING:
            return
        logger.warning("DBMS output closed while command was in flight: %s", self.command)
        self._resolve(
            CommandState.FAILED,
            error=DBMSUnavailableError(
                f"dbms process exited while command was in flight ({describe_exit(returncode)})"
            ),
        )

    def fail(self, error: DBMSError) -> None:
        self._resolve(CommandState.FAILED, error=error)

    def _expire(self) -> None:
        self._timer = None
        if self.state is not CommandState.PENDING:
            return
        logger.warning(
            "Command timed out after %.1f seconds without output: %s",
            self.timeout_seconds,
            self.command,
        )
        self._resolve(
            CommandState.TIMED_OUT,
            error=CommandTimeoutError(f"no output for {self.timeout_seconds:g} seconds"),
        )

    def _resolve(
        self,
        state: CommandState,
        *,
        result: PromptMatch | None = None,
        error: DBMSError | None = None,
    ) -> None:
        if self.state is not CommandState.PENDING:
            return
        self.state = state
        self.cancel_timer()
        if self._future.done():
            return
        if error is not None:
            self._future.set_exception(error)
        else:
            self._future.set_result(result)

    async def wait(self) -> PromptMatch:
        return await self._future


class CommandChannel:
    """Send one command at a time to the supervised DBMS.

    Callers must not overlap ``send`` calls; the request queue guarantees a
    single command in flight.
    """

    def __init__(self, supervisor: ProcessSupervisor, *, timeout_seconds: float = COMMAND_TIMEOUT_SECONDS):
        self.supervisor = supervisor
        self.timeout_seconds = timeout_seconds
        self.pending: PendingCommand | None = None

    async def send(self, command: str, timeout_seconds: float | None = None) -> PromptMatch:
        """Write ``command`` and wait for its prompt-framed response.

        The inactivity window also bounds the write itself: a process that
        stops reading stdin resolves as a timeout instead of blocking drain.

        Raises:
            DBMSUnavailableError: no live process, or it died mid-command
            CommandTimeoutError: no output within the inactivity window
            CommandWriteError: stdin rejected the command line
        """
        if not self.supervisor.is_live():
            raise DBMSUnavailableError("dbms process is not running")

        pending = PendingCommand(
            command,
            timeout_seconds=self.timeout_seconds if timeout_seconds is None else timeout_seconds,
            loop=asyncio.get_running_loop(),
        )
        self.supervisor.attach(pending)
        self.pending = pending
        pending.arm_timer()
        write_task = asyncio.create_task(self.supervisor.write(f"{command}\n"))
        resolution = asyncio.create_task(pending.wait())
        try:
            await asyncio.wait({write_task, resolution}, return_when=asyncio.FIRST_COMPLETED)
            if write_task.done():
                exc = write_task.exception()
                if isinstance(exc, OSError):
                    logger.error("Failed to send command to DBMS: %s", exc)
                    pending.fail(CommandWriteError(str(exc) or "dbms stdin closed"))
                elif exc is not None:
                    raise exc
            else:
                logger.warning("DBMS stdin still blocked when command resolved: %s", command)
            return await resolution
        finally:
            pending.cancel_timer()
            self.supervisor.detach(pending)
            self.pending = None
            for task in (write_task, resolution):
                task.cancel()
            await asyncio.gather(write_task, resolution, return_exceptions=True)
