"""
Integration test configuration
"""
import pytest
from fastapi.testclient import TestClient

from event_gallery.api.deps import get_gallery_manager
from event_gallery.app.main import app
from event_gallery.services.gallery.service import GalleryManager
from tests.fakes import FakeStorage


@pytest.fixture
def storage(images):
    return FakeStorage(images)


@pytest.fixture
def manager(storage, gateway):
    return GalleryManager(storage=storage, gateway=gateway, strategy="per_face")


@pytest.fixture
def client(manager):
    """FastAPI test client with dependency overrides."""
    app.dependency_overrides[get_gallery_manager] = lambda: manager

    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()
