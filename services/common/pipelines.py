"""Model pipeline gateway.

The gateway maps a registered pipeline name (task + model id) to a loaded
inference callable. Each pipeline gets its own ``BackgroundModelLoader`` so it
is loaded at most once per process, either eagerly at startup or lazily on
first use. Route handlers receive the gateway through a FastAPI dependency,
which lets tests swap in a fake factory instead of downloading models.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from fastapi import Request

from services.common.config import ModelsConfig
from services.common.logging import get_logger
from services.common.metrics import inference_metrics
from services.common.model_loader import BackgroundModelLoader


SPEAKER_EMBEDDINGS_TASK = "speaker-embeddings"

AUDIO = "audio"
NLP = "nlp"
VISION = "vision"


class PipelineError(Exception):
    """Base exception for gateway failures."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(message)


class UnknownPipelineError(PipelineError):
    """No pipeline is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(name, f"pipeline '{name}' is not registered")


class PipelineUnavailableError(PipelineError):
    """The pipeline could not be loaded (or is still loading past the timeout)."""

    def __init__(self, name: str, status: Mapping[str, Any]) -> None:
        self.status = dict(status)
        reason = status.get("error") or (
            "still loading" if status.get("loading") else "not loaded"
        )
        super().__init__(name, f"pipeline '{name}' is unavailable: {reason}")


class InferenceError(PipelineError):
    """The pipeline raised while running inference."""

    def __init__(self, name: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(name, f"pipeline '{name}' failed: {cause}")


@dataclass(frozen=True)
class PipelineSpec:
    """A named pipeline: which task and model to load, and its load options."""

    name: str
    task: str
    model: str
    group: str
    options: Mapping[str, Any] = field(default_factory=dict)


PipelineFactory = Callable[[PipelineSpec], Any]


def load_speaker_embeddings(spec: PipelineSpec) -> Any:
    """Download a raw float32 x-vector and shape it as a ``(1, dims)`` tensor."""
    import numpy as np
    import torch
    from huggingface_hub import hf_hub_download

    path = hf_hub_download(
        repo_id=spec.model,
        filename=spec.options.get("filename", "speaker_embeddings.bin"),
        repo_type=spec.options.get("repo_type", "dataset"),
    )
    vector = np.fromfile(path, dtype=np.float32)
    return torch.from_numpy(vector).unsqueeze(0)


def load_pipeline(spec: PipelineSpec) -> Any:
    """Default factory: build a Hugging Face ``transformers`` pipeline."""
    if spec.task == SPEAKER_EMBEDDINGS_TASK:
        return load_speaker_embeddings(spec)

    from transformers import pipeline

    return pipeline(spec.task, model=spec.model, **dict(spec.options))


def default_pipeline_specs(models: ModelsConfig) -> list[PipelineSpec]:
    """The pipelines served by the API, with model ids taken from config."""
    return [
        PipelineSpec("asr", "automatic-speech-recognition", models.asr_model, AUDIO),
        PipelineSpec("tts", "text-to-speech", models.tts_model, AUDIO),
        PipelineSpec(
            "tts_speaker_embeddings",
            SPEAKER_EMBEDDINGS_TASK,
            "Xenova/transformers.js-docs",
            AUDIO,
            {"filename": "speaker_embeddings.bin", "repo_type": "dataset"},
        ),
        PipelineSpec(
            "text_generation",
            "text-generation",
            models.text_generation_model,
            NLP,
            {"device": "cpu"},
        ),
        PipelineSpec("question_answering", "question-answering", models.qa_model, NLP),
        PipelineSpec(
            "sentence_similarity", "feature-extraction", models.similarity_model, NLP
        ),
        PipelineSpec(
            "image_classification",
            "image-classification",
            models.image_classification_model,
            VISION,
        ),
        PipelineSpec(
            "object_detection", "object-detection", models.object_detection_model, VISION
        ),
        PipelineSpec(
            "image_segmentation",
            "image-segmentation",
            models.image_segmentation_model,
            VISION,
        ),
    ]


class PipelineGateway:
    """Registry of lazily loaded inference pipelines."""

    def __init__(
        self,
        specs: Iterable[PipelineSpec],
        *,
        factory: PipelineFactory = load_pipeline,
        load_timeout: float | None = None,
        logger: Any | None = None,
    ) -> None:
        self._specs = {spec.name: spec for spec in specs}
        self._factory = factory
        self._logger = logger or get_logger(__name__)
        self._metrics = inference_metrics()
        self._loaders = {
            name: BackgroundModelLoader(
                self._loader_for(spec),
                self._logger,
                loader_name=name,
                timeout_seconds=load_timeout,
            )
            for name, spec in self._specs.items()
        }

    def _loader_for(self, spec: PipelineSpec) -> Callable[[], Any]:
        def load() -> Any:
            self._logger.info(
                "pipelines.load_start",
                pipeline=spec.name,
                task=spec.task,
                model=spec.model,
            )
            start = time.perf_counter()
            model = self._factory(spec)
            self._metrics["pipeline_load_duration"].labels(pipeline=spec.name).observe(
                time.perf_counter() - start
            )
            return model

        return load

    def names(self, group: str | None = None) -> list[str]:
        return [
            name
            for name, spec in self._specs.items()
            if group is None or spec.group == group
        ]

    def spec(self, name: str) -> PipelineSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise UnknownPipelineError(name) from None

    def _loader(self, name: str) -> BackgroundModelLoader:
        try:
            return self._loaders[name]
        except KeyError:
            raise UnknownPipelineError(name) from None

    async def preload(self, groups: Iterable[str]) -> list[str]:
        """Start background loading for every pipeline in ``groups``."""
        started = []
        for group in groups:
            for name in self.names(group):
                await self._loaders[name].initialize()
                started.append(name)
        if started:
            self._logger.info("pipelines.preload_started", pipelines=started)
        return started

    async def get(self, name: str) -> Any:
        """Return the loaded pipeline, loading it first if needed."""
        loader = self._loader(name)
        if not await loader.ensure_loaded():
            raise PipelineUnavailableError(name, loader.get_status())
        return loader.get_model()

    async def run(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Load (if needed) and call a pipeline in a worker thread."""
        pipe = await self.get(name)
        start = time.perf_counter()
        try:
            result = await asyncio.to_thread(pipe, *args, **kwargs)
        except Exception as exc:
            self._metrics["inference_requests"].labels(
                pipeline=name, status="error"
            ).inc()
            self._logger.exception(
                "pipelines.inference_failed",
                pipeline=name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise InferenceError(name, exc) from exc

        duration = time.perf_counter() - start
        self._metrics["inference_requests"].labels(pipeline=name, status="success").inc()
        self._metrics["inference_duration"].labels(pipeline=name).observe(duration)
        self._logger.debug(
            "pipelines.inference_complete",
            pipeline=name,
            duration_ms=round(duration * 1000, 2),
        )
        return result

    def is_loaded(self, name: str) -> bool:
        return self._loader(name).is_loaded()

    def status(self) -> dict[str, dict[str, Any]]:
        return {
            name: {
                "task": self._specs[name].task,
                "model": self._specs[name].model,
                **loader.get_status(),
            }
            for name, loader in self._loaders.items()
        }

    async def close(self) -> None:
        for loader in self._loaders.values():
            await loader.cleanup()


def get_gateway(request: Request) -> PipelineGateway:
    """FastAPI dependency returning the app's gateway."""
    return request.app.state.gateway


__all__ = [
    "AUDIO",
    "NLP",
    "VISION",
    "InferenceError",
    "PipelineError",
    "PipelineFactory",
    "PipelineGateway",
    "PipelineSpec",
    "PipelineUnavailableError",
    "UnknownPipelineError",
    "default_pipeline_specs",
    "get_gateway",
    "load_pipeline",
]
