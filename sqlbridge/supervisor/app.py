from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
from typing import Any, Optional

from sqlbridge.failures import invalid_input
from .api_execute import execution_response, router as execute_router
from .channel import CommandChannel
from .gateway import Gateway
from .process_supervisor import ProcessSupervisor, SpawnFn
from .request_queue import RequestQueue
from .settings import load_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("sqlbridge.supervisor.app")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )


@dataclass
class BridgeRuntime:
    """Everything one bridge instance owns, wired together."""

    supervisor: ProcessSupervisor
    channel: CommandChannel
    queue: RequestQueue
    gateway: Gateway

    async def start(self) -> None:
        logger.info("Starting DBMS process: %s", " ".join(self.supervisor.argv))
        await self.supervisor.start()

    async def stop(self) -> None:
        await self.gateway.close()
        await self.supervisor.shutdown()


def build_runtime(settings: dict[str, Any], *, spawn_fn: Optional[SpawnFn] = None) -> BridgeRuntime:
    supervisor = ProcessSupervisor(
        settings["dbms_command"],
        cwd=settings["working_dir"],
        restart_delay_seconds=settings["restart_delay_seconds"],
        spawn_fn=spawn_fn,
    )
    channel = CommandChannel(supervisor, timeout_seconds=settings["command_timeout_seconds"])
    queue = RequestQueue(channel)
    gateway = Gateway(supervisor, queue)
    return BridgeRuntime(supervisor=supervisor, channel=channel, queue=queue, gateway=gateway)


async def _invalid_request_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected malformed request body: %s", exc.errors())
    return execution_response(invalid_input("", "request body must be a JSON object"))


def create_app(settings: Optional[dict[str, Any]] = None, *, spawn_fn: Optional[SpawnFn] = None) -> FastAPI:
    settings = settings if settings is not None else load_settings()
    runtime = build_runtime(settings, spawn_fn=spawn_fn)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await runtime.start()
        logger.info("Bridge ready (pid=%s)", runtime.supervisor.pid)
        try:
            yield
        finally:
            logger.info("Shutting down gracefully...")
            await runtime.stop()
            logger.info("DBMS process stopped.")

    app = FastAPI(title="sqlbridge", lifespan=lifespan)
    app.state.settings = settings
    app.state.runtime = runtime
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings["cors_origins"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _invalid_request_handler)
    app.include_router(execute_router)
    return app
