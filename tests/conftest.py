"""
Pytest configuration for Hypatia tests.
"""
import os
import sys
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Make the src layout importable without an editable install
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from hypatia.config.settings import Config
from hypatia.integrations.asset_service import AssetService
from hypatia.integrations.mongodb_service import MongoDBService
from hypatia.main import create_app
from hypatia.services.material_service import MaterialService
from hypatia.services.relationship_service import RelationshipService

# Disable logging during tests
logging.basicConfig(level=logging.ERROR)


@pytest.fixture
def config() -> Config:
    """Default configuration with in-memory storage."""
    config = Config()
    config.mongo.use_mock = True
    return config


@pytest.fixture
def mock_mongodb_service(config):
    """Return a MongoDB service running in mock mode."""
    return MongoDBService(use_mock=True, config=config)


@pytest.fixture
def asset_service():
    return AssetService()


@pytest.fixture
def relationship_service(mock_mongodb_service, config):
    """Return a relationship service backed by mock storage."""
    return RelationshipService(mongodb=mock_mongodb_service, config=config)


@pytest.fixture
def material_service(mock_mongodb_service, relationship_service, asset_service, config):
    """Return a material service backed by mock storage."""
    return MaterialService(
        mongodb=mock_mongodb_service,
        relationships=relationship_service,
        assets=asset_service,
        config=config
    )


@pytest.fixture
def app(material_service) -> FastAPI:
    """Return an app wired to the mock-backed services."""
    return create_app(material_service=material_service)


@pytest.fixture
def client(app: FastAPI):
    """Return a test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def quiz_payload():
    """The canonical true/false quiz."""
    return {
        "type": "quiz",
        "name": "Q1",
        "questions": [
            {
                "type": "true or false",
                "text": "Is sky blue?",
                "answers": [
                    {"text": "Yes", "correctAnswer": True},
                    {"text": "No", "correctAnswer": False}
                ]
            }
        ]
    }


@pytest.fixture
def make_material(mock_mongodb_service):
    """Return a coroutine function that stores a bare material and returns its id."""
    async def _make(name: str, variant: str = "Default") -> int:
        stored = await mock_mongodb_service.create_material({"name": name, "variant": variant})
        return stored["id"]
    return _make
