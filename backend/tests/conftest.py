"""Test configuration and fixtures."""
from typing import Callable, Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ytgrab.api.endpoints.download import get_download_service
from ytgrab.main import create_app
from ytgrab.services.download_service import DownloadService


@pytest.fixture
def app() -> FastAPI:
    """Fresh application instance per test."""
    return create_app()


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app.

    Yields:
        TestClient instance
    """
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def use_service(app: FastAPI) -> Callable[[DownloadService], None]:
    """Route requests to the given service instead of the lifespan one."""

    def _install(service: DownloadService) -> None:
        app.dependency_overrides[get_download_service] = lambda: service

    return _install
