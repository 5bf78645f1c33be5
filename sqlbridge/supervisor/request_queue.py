"""FIFO request queue that keeps exactly one command in flight."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field

from sqlbridge.engine.errors import DBMSError
from sqlbridge.failures import ExecutionResult, unavailable
from sqlbridge.supervisor.channel import CommandChannel

logger = logging.getLogger("sqlbridge.supervisor.queue")


@dataclass
class QueueEntry:
    command: str
    future: asyncio.Future
    enqueued_at: float = field(default_factory=time.monotonic)


class RequestQueue:
    """Serialize concurrent callers into one ordered command stream.

    The first caller that finds the queue idle starts a drain task. The drain
    task dispatches entries strictly in insertion order and finishes when the
    queue is empty. Every entry resolves to an ``ExecutionResult``; a fault in
    one entry never stalls the entries behind it.
    """

    def __init__(self, channel: CommandChannel) -> None:
        self._channel = channel
        self._entries: deque[QueueEntry] = deque()
        self._in_flight: QueueEntry | None = None
        self._drain_task: asyncio.Task | None = None
        self._closed = False

    @property
    def depth(self) -> int:
        """Number of entries waiting behind the in-flight command."""
        return len(self._entries)

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def draining(self) -> bool:
        return self._drain_task is not None

    @property
    def closed(self) -> bool:
        return self._closed

    async def enqueue(self, command: str) -> ExecutionResult:
        """Queue ``command`` and wait for its turn and its resolution."""
        if self._closed:
            return unavailable(command, "request queue is closed")
        loop = asyncio.get_running_loop()
        entry = QueueEntry(command=command, future=loop.create_future())
        self._entries.append(entry)
        if self._drain_task is None:
            self._drain_task = asyncio.create_task(self._drain())
        return await entry.future

    async def _drain(self) -> None:
        try:
            while self._entries:
                entry = self._entries.popleft()
                if entry.future.done():
                    # caller went away before its turn
                    logger.debug("Skipping abandoned command: %s", entry.command)
                    continue
                self._in_flight = entry
                result = await self._dispatch(entry.command)
                self._in_flight = None
                if not entry.future.done():
                    entry.future.set_result(result)
        finally:
            self._in_flight = None
            self._drain_task = None

    async def _dispatch(self, command: str) -> ExecutionResult:
        try:
            match = await self._channel.send(command)
        except DBMSError as exc:
            logger.warning("Command failed (%s): %s", exc.__class__.__name__, exc)
            return ExecutionResult.failed(exc, command)
        except Exception as exc:
            logger.exception("Command processing error")
            return ExecutionResult.failed(exc, command)
        return ExecutionResult.completed(match.body, match.is_error)

    async def close(self) -> None:
        """Refuse new entries and resolve everything outstanding as unavailable."""
        self._closed = True
        outstanding = list(self._entries)
        if self._in_flight is not None:
            outstanding.insert(0, self._in_flight)
        self._entries.clear()

        drain_task = self._drain_task
        if drain_task is not None:
            drain_task.cancel()
            try:
                await drain_task
            except asyncio.CancelledError:
                pass

        for entry in outstanding:
            if not entry.future.done():
                entry.future.set_result(unavailable(entry.command, "bridge is shutting down"))
        if outstanding:
            logger.info("Abandoned %d queued command(s) on shutdown", len(outstanding))
