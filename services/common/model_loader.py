"""Background model loader shared by every inference pipeline.

A loader wraps one expensive load function and guarantees it runs at most
once at a time per process:
- Background loading: ``initialize()`` starts the load without blocking startup
- Lazy loading: ``ensure_loaded()`` starts it on first use, or waits for the
  load already in flight
- Graceful API handling: routes check ``get_status()`` and answer 503 while a
  model is unavailable
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Any


class BackgroundModelLoader:
    """Load a model once, in the background or on first use, and keep it.

    A failed load is recorded (see ``get_status``) and the next
    ``ensure_loaded`` call starts a fresh attempt.
    """

    def __init__(
        self,
        loader_func: Callable[[], Any] | Callable[[], Awaitable[Any]],
        logger: Any,
        *,
        loader_name: str = "model",
        timeout_seconds: float | None = None,
        heartbeat_interval: float = 10.0,
    ) -> None:
        """Initialize the loader.

        Args:
            loader_func: Sync or async callable returning the loaded model.
                Sync callables run in a worker thread.
            logger: Structured logger instance
            loader_name: Name used in log events and status payloads
            timeout_seconds: Default wait for ``ensure_loaded`` (None = wait forever)
            heartbeat_interval: Seconds between progress logs while loading
        """
        self._loader_func = loader_func
        self._logger = logger
        self._loader_name = loader_name
        self._timeout = timeout_seconds
        self._heartbeat_interval = heartbeat_interval

        self._model: Any | None = None
        self._loading_lock = asyncio.Lock()
        self._loading_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._load_error: Exception | None = None
        self._load_start_time: float | None = None
        self._load_duration: float | None = None

    @property
    def name(self) -> str:
        return self._loader_name

    async def initialize(self) -> None:
        """Start background loading (non-blocking)."""
        async with self._loading_lock:
            if self.is_loaded() or self.is_loading():
                self._logger.debug(
                    "model_loader.already_initialized", loader_name=self._loader_name
                )
                return
            self._start_load("background")

    def _start_load(self, phase: str) -> None:
        self._load_error = None
        self._load_start_time = time.time()
        self._loading_task = asyncio.create_task(self._load(phase))
        self._logger.info(
            "model_loader.load_started", loader_name=self._loader_name, phase=phase
        )

    async def _load(self, phase: str) -> None:
        self._heartbeat_task = asyncio.create_task(self._heartbeat_logger())
        try:
            model = await self._execute_loader(self._loader_func)
        except Exception as exc:
            self._load_error = exc
            self._model = None
            self._load_duration = self._elapsed()
            self._logger.exception(
                "model_loader.load_failed",
                loader_name=self._loader_name,
                error=str(exc),
                error_type=type(exc).__name__,
                duration_ms=self._duration_ms(),
                phase=phase,
            )
        else:
            self._model = model
            self._load_duration = self._elapsed()
            self._logger.info(
                "model_loader.load_success",
                loader_name=self._loader_name,
                duration_ms=self._duration_ms(),
                phase=phase,
            )
        finally:
            await self._stop_heartbeat()

    async def _heartbeat_logger(self) -> None:
        """Log progress while a (possibly downloading) load is running."""
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            elapsed = self._elapsed() or 0.0
            self._logger.info(
                "model_loader.loading_heartbeat",
                loader_name=self._loader_name,
                elapsed_seconds=round(elapsed, 1),
                elapsed_display=f"{int(elapsed // 60)}m {int(elapsed % 60)}s",
            )

    async def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._heartbeat_task
            self._heartbeat_task = None

    async def _execute_loader(
        self, loader_func: Callable[[], Any] | Callable[[], Awaitable[Any]]
    ) -> Any:
        if inspect.iscoroutinefunction(loader_func):
            return await loader_func()
        return await asyncio.to_thread(loader_func)

    def _elapsed(self) -> float | None:
        if self._load_start_time is None:
            return None
        return time.time() - self._load_start_time

    def _duration_ms(self) -> float | None:
        if self._load_duration is None:
            return None
        return round(self._load_duration * 1000, 2)

    def is_loaded(self) -> bool:
        return self._model is not None

    def is_loading(self) -> bool:
        return self._loading_task is not None and not self._loading_task.done()

    def get_status(self) -> dict[str, Any]:
        """Loading status for health and error responses.

        Returns dict with: loaded, loading, and when known error, error_type,
        duration_ms, elapsed_ms.
        """
        status: dict[str, Any] = {
            "loaded": self.is_loaded(),
            "loading": self.is_loading(),
        }
        if self._load_error is not None:
            status["error"] = str(self._load_error)
            status["error_type"] = type(self._load_error).__name__
        if self._load_duration is not None and not self.is_loading():
            status["duration_ms"] = self._duration_ms()
        if self.is_loading():
            status["elapsed_ms"] = round((self._elapsed() or 0.0) * 1000, 2)
        return status

    def get_model(self) -> Any | None:
        return self._model

    async def ensure_loaded(self, timeout: float | None = None) -> bool:
        """Make sure the model is loaded, starting or joining a load as needed.

        Returns True when the model is available, False when the load failed
        or did not finish within ``timeout`` (the load itself keeps running).
        """
        if timeout is None:
            timeout = self._timeout

        if self.is_loaded():
            return True

        async with self._loading_lock:
            if self.is_loaded():
                return True
            if not self.is_loading():
                self._start_load("lazy")
            task = self._loading_task

        assert task is not None
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except TimeoutError:
            self._logger.warning(
                "model_loader.lazy_load_timeout",
                loader_name=self._loader_name,
                timeout=timeout,
            )
            return False
        return self.is_loaded()

    async def cleanup(self) -> None:
        """Cancel any load in flight and drop the model."""
        await self._stop_heartbeat()
        if self._loading_task is not None:
            if not self._loading_task.done():
                self._loading_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._loading_task
            self._loading_task = None
        self._model = None
        self._logger.debug(
            "model_loader.cleanup_completed", loader_name=self._loader_name
        )


__all__ = ["BackgroundModelLoader"]
