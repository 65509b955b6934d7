"""
Admission worker processes.

Every admission worker serves the FastAPI app with uvicorn on one socket
bound by the supervisor, so all workers accept connections on the same
port and the kernel spreads them across processes.
"""

import multiprocessing
import socket
from typing import Any, Protocol

import uvicorn

from task_throttler.config import Settings, get_settings
from task_throttler.observability.logging import setup_logging

APP_IMPORT_PATH = "task_throttler.api.main:app"


class WorkerProcess(Protocol):
    """The subset of ``multiprocessing.Process`` the supervisor relies on."""

    pid: int | None
    exitcode: int | None

    def is_alive(self) -> bool:
        ...

    def terminate(self) -> None:
        ...

    def join(self, timeout: float | None = None) -> None:
        ...


def serve_admission_worker(config: uvicorn.Config, sockets: list[socket.socket]) -> None:
    """Process target: serve the admission API on the inherited sockets."""
    setup_logging(role="api")
    uvicorn.Server(config).run(sockets=sockets)


class AdmissionWorkerFactory:
    """
    Starts admission worker processes with identical configuration.

    The listening socket is bound on first use and shared by every worker
    started afterwards, replacements included.
    """

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self.config = uvicorn.Config(
            APP_IMPORT_PATH,
            host=settings.api_host,
            port=settings.api_port,
            log_level=settings.log_level.lower(),
        )
        self._socket: socket.socket | None = None
        self._context = multiprocessing.get_context("spawn")

    def __call__(self, worker_index: int) -> Any:
        if self._socket is None:
            self._socket = self.config.bind_socket()

        process = self._context.Process(
            target=serve_admission_worker,
            kwargs={"config": self.config, "sockets": [self._socket]},
            name=f"admission-worker-{worker_index}",
        )
        process.start()
        return process

    def close(self) -> None:
        """Close the shared listening socket."""
        if self._socket is not None:
            self._socket.close()
            self._socket = None
