"""In-memory stand-ins for DBMS subprocesses used across tests."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional


class FakeStdin:
    def __init__(self, process: "FakeProcess") -> None:
        self._process = process
        self.writes: list[str] = []
        self.fail_with: Optional[BaseException] = None
        self.drain_gate: Optional[asyncio.Event] = None

    def write(self, data: bytes) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        text = data.decode("utf-8")
        self.writes.append(text)
        self._process.on_write(text)

    async def drain(self) -> None:
        if self.drain_gate is not None:
            await self.drain_gate.wait()


class FakeProcess:
    """Process-like object with StreamReader pipes and a scripted responder."""

    def __init__(self, pid: int, responder: Optional[Callable[[str], Optional[str]]] = None) -> None:
        self.pid = pid
        self.returncode: Optional[int] = None
        self.stdin = FakeStdin(self)
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.responder = responder
        self.killed = False
        self._exited = asyncio.Event()

    def on_write(self, text: str) -> None:
        if self.responder is None:
            return
        response = self.responder(text.rstrip("\n"))
        if response is not None:
            asyncio.get_running_loop().call_soon(self.emit, response)

    def emit(self, text: str) -> None:
        if self.returncode is None:
            self.stdout.feed_data(text.encode("utf-8"))

    def emit_stderr(self, text: str) -> None:
        self.stderr.feed_data(text.encode("utf-8"))

    def exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode


def echo_prompt_responder(context: str = "mydb") -> Callable[[str], str]:
    """Respond to every command with a one-line result and a fresh prompt."""

    def respond(command: str) -> str:
        return f"result of {command}\n{context}> "

    return respond


class FakeSpawner:
    """Callable spawn_fn that records launches and hands out FakeProcess objects."""

    def __init__(self, responder: Optional[Callable[[str], Optional[str]]] = None) -> None:
        self.responder = responder
        self.processes: list[FakeProcess] = []
        self.calls: list[tuple[list[str], Optional[str]]] = []
        self.fail_next: int = 0

    async def __call__(self, argv, cwd):
        self.calls.append((list(argv), cwd))
        if self.fail_next > 0:
            self.fail_next -= 1
            raise FileNotFoundError(f"No such file or directory: {argv[0]!r}")
        process = FakeProcess(pid=1000 + len(self.processes), responder=self.responder)
        self.processes.append(process)
        return process

    @property
    def current(self) -> FakeProcess:
        return self.processes[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)
