"""Tests for the assembled API app: meta routes, observability and readiness."""

import pytest
from fastapi.testclient import TestClient

from services.api.app import VERSION_TEXT, create_app
from services.common.config import load_service_config
from services.common.pipelines import PipelineUnavailableError
from services.tests.fixtures.api_fixtures import FakePipelineFactory


def _app(environ=None, pipelines=None):
    factory = FakePipelineFactory(pipelines)
    app = create_app(
        load_service_config("api", environ=environ or {}),
        pipeline_factory=factory,
        configure_logs=False,
    )
    return app, factory


class TestMetaRoutes:
    """Version, docs redirect and metrics."""

    @pytest.mark.component
    def test_version(self, api_client):
        response = api_client.get("/api/version")

        assert response.status_code == 200
        assert response.text == VERSION_TEXT
        assert response.headers["content-type"].startswith("text/plain")

    @pytest.mark.component
    def test_api_docs_redirects(self, api_client):
        response = api_client.get("/api-docs", follow_redirects=False)

        assert response.status_code in (302, 307)
        assert response.headers["location"] == "/docs"

    @pytest.mark.component
    def test_openapi_lists_routes(self, api_client):
        paths = api_client.get("/openapi.json").json()["paths"]

        for path in (
            "/audio/transcribe",
            "/audio/synthesize",
            "/nlp/generate",
            "/nlp/qa",
            "/nlp/similarity",
            "/vision/classify",
            "/vision/detect",
            "/vision/segment",
        ):
            assert path in paths

    @pytest.mark.component
    def test_metrics_exposed(self, api_client):
        api_client.get("/api/version")

        response = api_client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert 'route="/api/version"' in response.text


class TestCorrelation:
    """X-Correlation-ID propagation."""

    @pytest.mark.component
    def test_echoes_supplied_id(self, api_client, correlation_id):
        response = api_client.get(
            "/api/version", headers={"X-Correlation-ID": correlation_id}
        )

        assert response.headers["X-Correlation-ID"] == correlation_id

    @pytest.mark.component
    def test_generates_id(self, api_client):
        response = api_client.get("/api/version")

        assert len(response.headers["X-Correlation-ID"]) == 36


class TestGatewayIntegration:
    """The real gateway driven by a fake pipeline factory."""

    @pytest.mark.integration
    def test_lazy_load_on_first_request(self):
        app, factory = _app(
            pipelines={"question_answering": lambda question, context: {"answer": "42"}}
        )

        with TestClient(app) as client:
            assert factory.loads == []
            first = client.post("/nlp/qa", json={"question": "q", "context": "c"})
            second = client.post("/nlp/qa", json={"question": "q", "context": "c"})

        assert first.json() == {"answer": "42"}
        assert second.status_code == 200
        assert factory.loads == ["question_answering"]

    @pytest.mark.integration
    def test_failed_load_is_service_unavailable(self):
        app, _ = _app()

        with TestClient(app) as client:
            response = client.post("/nlp/generate", json={"prompt": "hi"})

        assert response.status_code == 503
        assert "text_generation" in response.json()["detail"]

    @pytest.mark.integration
    def test_ready_without_preloading(self):
        app, _ = _app()

        with TestClient(app) as client:
            response = client.get("/health/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert set(data["components"]["pipelines"]) >= {"asr", "tts", "object_detection"}

    @pytest.mark.integration
    def test_preloaded_group_gates_readiness(self):
        app, factory = _app(
            environ={"LOAD_VISION": "1"},
            pipelines={
                "image_classification": object(),
                "object_detection": object(),
                "image_segmentation": object(),
            },
        )

        with TestClient(app) as client:
            # wait for the background loads started at startup
            client.portal.call(app.state.gateway.get, "image_segmentation")
            client.portal.call(app.state.gateway.get, "object_detection")
            client.portal.call(app.state.gateway.get, "image_classification")
            response = client.get("/health/ready")

        assert response.status_code == 200
        assert sorted(factory.loads) == [
            "image_classification",
            "image_segmentation",
            "object_detection",
        ]
        assert set(response.json()["dependencies"]) == {
            "image_classification",
            "object_detection",
            "image_segmentation",
        }

    @pytest.mark.integration
    def test_failed_preload_not_ready(self):
        app, _ = _app(environ={"LOAD_NLP": "1"})

        with TestClient(app) as client:
            with pytest.raises(PipelineUnavailableError):
                client.portal.call(app.state.gateway.get, "question_answering")
            response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
