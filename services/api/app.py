"""Deep Learning APIs: one FastAPI app serving the audio, NLP and vision routes."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse, RedirectResponse
import uvicorn

from services.audio.routes import router as audio_router
from services.common.app_factory import create_service_app
from services.common.config import ServiceConfig, load_service_config
from services.common.health import HealthManager
from services.common.health_endpoints import HealthEndpoints
from services.common.http import register_exception_handlers
from services.common.logging import configure_from_config, get_logger
from services.common.pipelines import (
    AUDIO,
    NLP,
    VISION,
    PipelineFactory,
    PipelineGateway,
    default_pipeline_specs,
    load_pipeline,
)
from services.nlp.routes import router as nlp_router
from services.vision.routes import router as vision_router

SERVICE_NAME = "api"
VERSION_TEXT = "Deep Learning APIs: Version 1.0"

logger = get_logger(__name__, service_name=SERVICE_NAME)


def _preload_groups(config: ServiceConfig) -> list[str]:
    flags = {
        AUDIO: config.models.load_audio,
        NLP: config.models.load_nlp,
        VISION: config.models.load_vision,
    }
    return [group for group, enabled in flags.items() if enabled]


def create_app(
    config: ServiceConfig | None = None,
    *,
    pipeline_factory: PipelineFactory = load_pipeline,
    configure_logs: bool = True,
) -> FastAPI:
    """Build the API app.

    The pipeline gateway is attached to ``app.state.gateway``; groups enabled
    with LOAD_AUDIO / LOAD_NLP / LOAD_VISION start loading when the app
    starts and gate readiness until they finish.
    """
    config = config or load_service_config(SERVICE_NAME)
    if configure_logs:
        configure_from_config(config.logging, SERVICE_NAME)

    health_manager = HealthManager(SERVICE_NAME)
    gateway = PipelineGateway(
        default_pipeline_specs(config.models),
        factory=pipeline_factory,
        load_timeout=config.models.load_timeout,
        logger=get_logger("services.common.pipelines", service_name=SERVICE_NAME),
    )

    async def _startup(app: FastAPI) -> None:
        if config.models.cache_dir:
            logger.info("api.model_cache", cache_dir=config.models.cache_dir)
        started = await gateway.preload(_preload_groups(config))
        for name in started:
            health_manager.register_dependency(
                name, lambda name=name: gateway.is_loaded(name)
            )
        health_manager.mark_startup_complete()

    async def _shutdown(app: FastAPI) -> None:
        await gateway.close()

    app = create_service_app(
        SERVICE_NAME,
        "1.0.0",
        title="Deep Learning APIs",
        description="Speech, language and vision inference over HTTP",
        startup_callback=_startup,
        shutdown_callback=_shutdown,
        health_manager=health_manager,
    )
    app.state.gateway = gateway
    app.state.config = config
    app.state.max_upload_bytes = config.server.max_upload_mb * 1024 * 1024
    register_exception_handlers(app)

    @app.get("/api/version", response_class=PlainTextResponse, tags=["Meta"])
    async def version() -> str:
        return VERSION_TEXT

    @app.get("/api-docs", include_in_schema=False)
    async def api_docs() -> RedirectResponse:
        return RedirectResponse(url="/docs")

    health_endpoints = HealthEndpoints(
        service_name=SERVICE_NAME,
        health_manager=health_manager,
        custom_components={"pipelines": gateway.status},
    )
    app.include_router(health_endpoints.get_router())
    app.include_router(audio_router)
    app.include_router(nlp_router)
    app.include_router(vision_router)
    return app


app = create_app()


def main() -> None:
    config: ServiceConfig = app.state.config
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
