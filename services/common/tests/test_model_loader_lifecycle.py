"""Tests for BackgroundModelLoader load-once behaviour."""

import asyncio
import threading
import time
from unittest.mock import Mock

import pytest

from services.common.model_loader import BackgroundModelLoader


class TestBackgroundModelLoader:
    """Background, lazy and failed loads."""

    @pytest.mark.unit
    async def test_lazy_load_on_first_use(self):
        loader = BackgroundModelLoader(lambda: "model", Mock(), loader_name="asr")

        assert not loader.is_loaded()
        assert await loader.ensure_loaded() is True
        assert loader.get_model() == "model"
        assert loader.get_status()["loaded"] is True
        assert "duration_ms" in loader.get_status()

    @pytest.mark.unit
    async def test_concurrent_callers_share_one_load(self):
        calls = []
        lock = threading.Lock()

        def slow_load():
            with lock:
                calls.append(1)
            time.sleep(0.05)
            return object()

        loader = BackgroundModelLoader(slow_load, Mock())

        results = await asyncio.gather(*(loader.ensure_loaded() for _ in range(5)))

        assert results == [True] * 5
        assert len(calls) == 1

    @pytest.mark.unit
    async def test_background_initialize_then_wait(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def async_load():
            started.set()
            await release.wait()
            return "ready"

        loader = BackgroundModelLoader(async_load, Mock())
        await loader.initialize()
        await started.wait()

        assert loader.is_loading()
        assert loader.get_status()["loading"] is True
        assert "elapsed_ms" in loader.get_status()

        release.set()
        assert await loader.ensure_loaded() is True
        assert loader.get_model() == "ready"

    @pytest.mark.unit
    async def test_initialize_twice_starts_one_load(self):
        load = Mock(return_value="model")
        loader = BackgroundModelLoader(load, Mock())

        await loader.initialize()
        await loader.initialize()
        await loader.ensure_loaded()

        load.assert_called_once()

    @pytest.mark.unit
    async def test_failed_load_is_reported_and_retried(self):
        load = Mock(side_effect=[RuntimeError("download failed"), "model"])
        logger = Mock()
        loader = BackgroundModelLoader(load, logger, loader_name="tts")

        assert await loader.ensure_loaded() is False
        status = loader.get_status()
        assert status["loaded"] is False
        assert status["error"] == "download failed"
        assert status["error_type"] == "RuntimeError"
        logger.exception.assert_called_once()

        assert await loader.ensure_loaded() is True
        assert "error" not in loader.get_status()

    @pytest.mark.unit
    async def test_timeout_leaves_load_running(self):
        release = asyncio.Event()

        async def async_load():
            await release.wait()
            return "model"

        loader = BackgroundModelLoader(async_load, Mock(), timeout_seconds=0.01)

        assert await loader.ensure_loaded() is False
        assert loader.is_loading()

        release.set()
        assert await loader.ensure_loaded(timeout=1.0) is True

    @pytest.mark.unit
    async def test_heartbeat_logs_while_loading(self):
        release = asyncio.Event()
        logger = Mock()

        async def async_load():
            await release.wait()
            return "model"

        loader = BackgroundModelLoader(async_load, logger, heartbeat_interval=0.01)
        await loader.initialize()
        await asyncio.sleep(0.05)
        release.set()
        await loader.ensure_loaded()

        events = [call.args[0] for call in logger.info.call_args_list]
        assert "model_loader.loading_heartbeat" in events

    @pytest.mark.unit
    async def test_cleanup_drops_model(self):
        loader = BackgroundModelLoader(lambda: "model", Mock())
        await loader.ensure_loaded()

        await loader.cleanup()

        assert not loader.is_loaded()
        assert loader.get_model() is None
