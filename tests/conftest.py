"""Pytest configuration and shared fixtures for all tests."""

import json
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

from dos_scanner.config import DosScannerConfig

TEST_DATA_DIR = Path(__file__).parent / "test-data" / "dos"


@pytest.fixture(autouse=True)
def disable_sentry_for_tests(monkeypatch):
    """Disable Sentry telemetry for all tests."""
    monkeypatch.setenv("TELEMETRY", "false")
    monkeypatch.delenv("SENTRY_DSN", raising=False)


@pytest.fixture
def load_fixture():
    """Load a DOS API response body from tests/test-data/dos."""

    def _load(name: str) -> dict:
        with (TEST_DATA_DIR / name).open() as f:
            return json.load(f)

    return _load


@pytest.fixture
def make_response():
    """Create mock requests.Response objects."""

    def _make(status_code: int = 200, body=None) -> Mock:
        response = Mock(spec=requests.Response)
        response.status_code = status_code
        response.ok = 200 <= status_code < 400
        response.reason = "OK" if response.ok else "Bad Request"
        if body is None:
            response.json.side_effect = ValueError("No JSON")
        else:
            response.json.return_value = body
        return response

    return _make


@pytest.fixture
def config():
    return DosScannerConfig(url="http://localhost:5000/api/", token="test-token")


@pytest.fixture
def mock_session():
    """Create a mock requests session."""
    return Mock(spec=requests.Session)
