"""
Global pytest fixtures for the exporter test suite.

Provides:
- A test BASE_URL in the environment before any settings are built
- Fresh Prometheus registries per test
- Fake upstream fetcher and recording metric sink
"""
import os

import pytest
from prometheus_client import CollectorRegistry

from tests.utils import TEST_BASE_URL, FakeFetcher, RecordingSink

# Set test environment BEFORE any exporter settings are built
os.environ["BASE_URL"] = TEST_BASE_URL
os.environ.pop("API_USERNAME", None)
os.environ.pop("API_KEY", None)

from billing_exporter.shared.core.config import Settings, get_settings  # noqa: E402

BASE_URL = TEST_BASE_URL


@pytest.fixture(autouse=True)
def reset_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(BASE_URL=BASE_URL)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
