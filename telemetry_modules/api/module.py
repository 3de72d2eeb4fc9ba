"""
ApiModule - встроенный модуль HTTP endpoint экспортёра.

Поднимает FastAPI приложение с маршрутами MonitoringModule (/metrics, /health)
на config.http_host:config.http_port через uvicorn. Сервер работает задачей
в том же event loop, что и runtime.
"""

import asyncio
import contextlib
from typing import Any, Optional

from fastapi import FastAPI
import uvicorn

from telemetry_core.logger_helper import info, warning
from telemetry_core.runtime_module import RuntimeModule


class ApiModule(RuntimeModule):
    """Модуль HTTP API: отдаёт /metrics и /health."""

    @property
    def name(self) -> str:
        return "api"

    def __init__(self, runtime: Any):
        super().__init__(runtime)
        self.app: Optional[FastAPI] = None
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None

    async def register(self) -> None:
        """Создаёт FastAPI приложение и подключает router экспортёра."""
        self.app = FastAPI(title="BEAM Telemetry", version="0.1.0")
        self.app.state.runtime = self.runtime

        monitoring = self.runtime.get_module("monitoring")
        if monitoring is not None:
            self.app.include_router(monitoring.router)

    async def start(self) -> None:
        config = self.runtime.config
        if self.app is None or config.http_port == 0:
            return

        server_config = uvicorn.Config(
            self.app,
            host=config.http_host,
            port=config.http_port,
            log_level="warning",
        )
        self._server = uvicorn.Server(server_config)
        self._task = asyncio.create_task(self._serve(self._server))
        await info(
            self.runtime,
            f"HTTP endpoint: http://{config.http_host}:{config.http_port}/metrics",
            module="api",
        )

    async def _serve(self, server: uvicorn.Server) -> None:
        try:
            await server.serve()
        except SystemExit:
            # uvicorn завершает процесс через SystemExit(1), если порт занят
            await warning(
                self.runtime,
                "uvicorn exited during startup (port may be in use)",
                module="api",
            )

    async def stop(self) -> None:
        """Останавливает HTTP сервер."""
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=float(self.runtime.config.shutdown_timeout))
            except asyncio.TimeoutError:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task
        self._task = None
        self._server = None
