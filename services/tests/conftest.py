"""Global test configuration and fixtures for the deep learning API services."""

import os
import random

import pytest

from services.tests.fixtures.api_fixtures import *  # noqa: F401, F403


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> None:
    """Set up the test environment for deterministic testing."""
    os.environ["TZ"] = "UTC"
    random.seed(42)
    # Tests must never reach the Hugging Face Hub
    os.environ["HF_HUB_OFFLINE"] = "1"


@pytest.fixture(autouse=True)
def reset_environment():
    """Restore environment variables after each test."""
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def correlation_id() -> str:
    """Provide a deterministic correlation ID for testing."""
    return "test-correlation-1234567890abcdef"
