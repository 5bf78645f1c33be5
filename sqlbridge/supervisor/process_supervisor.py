"""Lifecycle supervision for the single long-lived DBMS subprocess."""

from __future__ import annotations

import asyncio
import codecs
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

logger = logging.getLogger("sqlbridge.supervisor.process")
stderr_logger = logging.getLogger("sqlbridge.dbms.stderr")

RESTART_DELAY_SECONDS = 1.0
SHUTDOWN_TIMEOUT_SECONDS = 5.0
READ_CHUNK_SIZE = 4096


class SupervisorState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    CRASHED = "crashed"


class OutputListener(Protocol):
    """Receiver for DBMS stdout while a command is in flight."""

    def feed(self, chunk: str) -> None:
        ...

    def terminated(self, returncode: int | None) -> None:
        ...


SpawnFn = Callable[[Sequence[str], Optional[str]], Awaitable[Any]]


async def spawn_dbms(argv: Sequence[str], cwd: str | None) -> asyncio.subprocess.Process:
    """Launch the DBMS with all three standard streams piped."""
    return await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )


def describe_exit(returncode: int | None) -> str:
    """Return a human readable exit description (negative codes are signals)."""
    if returncode is None:
        return "unknown status"
    if returncode < 0:
        return f"signal {-returncode}"
    return f"code {returncode}"


class ProcessSupervisor:
    """Keep exactly one DBMS instance alive and restart it when it dies."""

    def __init__(
        self,
        argv: Sequence[str],
        *,
        cwd: str | None = None,
        restart_delay_seconds: float = RESTART_DELAY_SECONDS,
        spawn_fn: SpawnFn | None = None,
    ) -> None:
        if not argv:
            raise ValueError("argv must be a non-empty command line")
        self.argv = list(argv)
        self.cwd = cwd
        self.restart_delay_seconds = restart_delay_seconds
        self.spawn_fn = spawn_fn or spawn_dbms
        self.state = SupervisorState.STOPPED
        self.restart_count = 0
        self.last_exit_code: int | None = None
        self._process: Any = None
        self._killed = False
        self._shutting_down = False
        self._watch_task: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None
        self._listener: OutputListener | None = None

    @property
    def pid(self) -> int | None:
        if not self.is_live():
            return None
        return getattr(self._process, "pid", None)

    @property
    def restart_pending(self) -> bool:
        return self._restart_task is not None

    def is_live(self) -> bool:
        """Return True while an instance exists that has neither exited nor been killed."""
        process = self._process
        return process is not None and not self._killed and process.returncode is None

    async def start(self) -> bool:
        """Launch a new DBMS instance; spawn failures schedule a restart."""
        if self._shutting_down:
            return False
        if self.is_live():
            return True
        self.state = SupervisorState.STARTING
        try:
            process = await self.spawn_fn(self.argv, self.cwd)
        except (OSError, ValueError) as exc:
            logger.error("Failed to start DBMS process: %s", exc)
            self.state = SupervisorState.CRASHED
            self.schedule_restart()
            return False

        if self._shutting_down:
            process.kill()
            await process.wait()
            self.state = SupervisorState.STOPPED
            return False

        self._process = process
        self._killed = False
        self.state = SupervisorState.RUNNING
        self._watch_task = asyncio.create_task(self._watch(process))
        logger.info("DBMS process started successfully (pid=%s)", getattr(process, "pid", None))
        return True

    def schedule_restart(self) -> bool:
        """Schedule one delayed restart; no-op when one is already pending."""
        if self._shutting_down or self._restart_task is not None:
            return False
        logger.info(
            "Attempting to restart DBMS process in %.1f seconds...",
            self.restart_delay_seconds,
        )
        self._restart_task = asyncio.create_task(self._restart_after_delay())
        return True

    async def _restart_after_delay(self) -> None:
        try:
            await asyncio.sleep(self.restart_delay_seconds)
        finally:
            self._restart_task = None
        self.restart_count += 1
        await self.start()

    def attach(self, listener: OutputListener) -> None:
        """Register the single stdout listener."""
        if self._listener is not None:
            raise RuntimeError("an output listener is already attached")
        self._listener = listener

    def detach(self, listener: OutputListener) -> None:
        if self._listener is listener:
            self._listener = None

    async def write(self, text: str) -> None:
        """Write text to the live instance's stdin and wait for the buffer to drain."""
        process = self._process
        if process is None or process.stdin is None:
            raise BrokenPipeError("dbms stdin is not available")
        process.stdin.write(text.encode("utf-8"))
        await process.stdin.drain()

    async def _watch(self, process: Any) -> None:
        await asyncio.gather(
            self._pump_stdout(process),
            self._pump_stderr(process),
        )
        returncode = await process.wait()
        self._handle_exit(process, returncode)

    async def _pump_stdout(self, process: Any) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                data = await process.stdout.read(READ_CHUNK_SIZE)
            except OSError as exc:
                logger.warning("DBMS stdout read failed: %s", exc)
                break
            if not data:
                break
            text = decoder.decode(data)
            if text:
                self._dispatch_output(text)
        tail = decoder.decode(b"", final=True)
        if tail:
            self._dispatch_output(tail)
        # stdout is gone, nothing in flight can complete any more
        if process is self._process:
            self._notify_terminated(process.returncode)

    async def _pump_stderr(self, process: Any) -> None:
        while True:
            try:
                data = await process.stderr.read(READ_CHUNK_SIZE)
            except OSError as exc:
                logger.warning("DBMS stderr read failed: %s", exc)
                break
            if not data:
                break
            message = data.decode("utf-8", errors="replace").strip()
            if message:
                stderr_logger.warning("DBMS Runtime Error: %s", message)

    def _dispatch_output(self, text: str) -> None:
        listener = self._listener
        if listener is None:
            logger.debug("Discarding unsolicited DBMS output: %r", text)
            return
        try:
            listener.feed(text)
        except Exception:
            logger.exception("Output listener failed while handling DBMS output")

    def _notify_terminated(self, returncode: int | None) -> None:
        listener = self._listener
        if listener is not None:
            listener.terminated(returncode)

    def _handle_exit(self, process: Any, returncode: int | None) -> None:
        if process is not self._process:
            return
        self._process = None
        self.last_exit_code = returncode
        if self._shutting_down:
            self.state = SupervisorState.STOPPED
            logger.info("DBMS process stopped (%s)", describe_exit(returncode))
        else:
            self.state = SupervisorState.CRASHED
            if returncode != 0:
                logger.error("DBMS process exited unexpectedly with %s", describe_exit(returncode))
            else:
                logger.warning("DBMS process exited cleanly; command channel is unusable")
        self._notify_terminated(returncode)
        self.schedule_restart()

    async def shutdown(self, timeout_seconds: float = SHUTDOWN_TIMEOUT_SECONDS) -> None:
        """Kill the live instance and suppress further restarts."""
        self._shutting_down = True
        restart_task = self._restart_task
        if restart_task is not None:
            restart_task.cancel()
            try:
                await restart_task
            except asyncio.CancelledError:
                pass
            self._restart_task = None

        process = self._process
        if process is not None and process.returncode is None:
            self._killed = True
            try:
                process.kill()
            except ProcessLookupError:
                pass

        watch_task = self._watch_task
        if watch_task is not None and not watch_task.done():
            done, _ = await asyncio.wait({watch_task}, timeout=timeout_seconds)
            if not done:
                logger.warning("DBMS process did not exit within %.1f seconds", timeout_seconds)
                watch_task.cancel()
                try:
                    await watch_task
                except asyncio.CancelledError:
                    pass
        self._watch_task = None
        self._process = None
        self.state = SupervisorState.STOPPED
