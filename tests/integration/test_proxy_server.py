"""
Integration tests for the image-generation proxy endpoints.
"""

from unittest.mock import MagicMock

import pytest
import requests
from fastapi.testclient import TestClient

from atelier.services.image_generation import (
    GenerationResult,
    ImageGenerationError,
)
from atelier.webserver.config import ServerConfig, parse_api_tokens
from atelier.webserver.server import create_app

DATA_URI = "data:image/png;base64,iVBORw0KGgo="
ADMIN = {"Authorization": "Bearer admin-token"}
BODY = {"prompt": "make it warmer", "base64Image": DATA_URI}


@pytest.fixture
def upstream():
    return MagicMock()


@pytest.fixture
def config():
    return ServerConfig(
        openrouter_api_key="secret",
        api_tokens={"admin-token": "admin", "editor-token": "editor"},
    )


@pytest.fixture
def client(config, upstream):
    factory = MagicMock(return_value=upstream)
    app = create_app(config, client_factory=factory)
    return TestClient(app)


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["environment"] == "development"
    assert "timestamp" in data


def test_health_reports_production():
    app = create_app(ServerConfig(production=True))
    data = TestClient(app).get("/api/health").json()
    assert data["environment"] == "production"


@pytest.mark.parametrize(
    "headers, status, detail",
    [
        ({}, 401, "No authorization token provided"),
        ({"Authorization": "Basic abc"}, 401, "No authorization token provided"),
        ({"Authorization": "Bearer unknown"}, 401, "Invalid or expired token"),
        ({"Authorization": "Bearer editor-token"}, 403, "Admin access required"),
    ],
)
def test_authorization(client, upstream, headers, status, detail):
    response = client.post("/api/openrouter/nanobanana", json=BODY, headers=headers)
    assert response.status_code == status
    assert response.json()["error"] == detail
    upstream.edit_image.assert_not_called()


def test_missing_prompt(client):
    response = client.post(
        "/api/openrouter/nanobanana", json={"base64Image": DATA_URI}, headers=ADMIN
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Prompt is required"


def test_missing_image(client):
    response = client.post(
        "/api/openrouter/nanobanana", json={"prompt": "x"}, headers=ADMIN
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Image URL or base64 image is required"


def test_missing_api_key(upstream):
    config = ServerConfig(api_tokens={"admin-token": "admin"})
    client = TestClient(create_app(config, client_factory=lambda key: upstream))
    response = client.post("/api/openrouter/nanobanana", json=BODY, headers=ADMIN)
    assert response.status_code == 500
    assert response.json()["error"] == "AI service not configured"


def test_oversized_body_is_rejected(upstream):
    config = ServerConfig(
        openrouter_api_key="secret",
        api_tokens={"admin-token": "admin"},
        max_body_bytes=100,
    )
    client = TestClient(create_app(config, client_factory=lambda key: upstream))
    body = {"prompt": "x" * 200, "base64Image": DATA_URI}

    response = client.post("/api/openrouter/nanobanana", json=body, headers=ADMIN)

    assert response.status_code == 413
    assert response.json() == {"error": "Request body too large"}
    upstream.edit_image.assert_not_called()


def test_success(client, upstream):
    upstream.edit_image.return_value = GenerationResult(image=DATA_URI, raw={})

    response = client.post("/api/openrouter/nanobanana", json=BODY, headers=ADMIN)

    assert response.status_code == 200
    assert response.json() == {"success": True, "generatedImage": DATA_URI}
    upstream.edit_image.assert_called_once_with(
        "make it warmer", image_url=None, base64_image=DATA_URI
    )


def test_no_image_in_response(client, upstream):
    upstream.edit_image.return_value = GenerationResult(image=None, raw={})
    response = client.post("/api/openrouter/nanobanana", json=BODY, headers=ADMIN)
    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "error": "Geen afbeelding in response",
    }


def test_upstream_failure(client, upstream):
    upstream.edit_image.side_effect = ImageGenerationError(
        "AI generation failed", details="quota exceeded", status_code=429
    )
    response = client.post("/api/openrouter/nanobanana", json=BODY, headers=ADMIN)
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "AI generation failed",
        "details": "quota exceeded",
    }


def test_upstream_connection_failure(client, upstream):
    upstream.edit_image.side_effect = requests.exceptions.ConnectionError("down")
    response = client.post("/api/openrouter/nanobanana", json=BODY, headers=ADMIN)
    assert response.status_code == 500
    assert response.json()["error"] == "AI generation failed"


def test_unexpected_failure(client, upstream):
    upstream.edit_image.side_effect = RuntimeError("boom")
    response = client.post("/api/openrouter/nanobanana", json=BODY, headers=ADMIN)
    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Failed to process AI request",
        "details": "boom",
    }


def test_image_url_is_forwarded(client, upstream):
    upstream.edit_image.return_value = GenerationResult(image=DATA_URI, raw={})
    client.post(
        "/api/openrouter/nanobanana",
        json={"prompt": "x", "imageUrl": "https://example.com/a.jpg"},
        headers=ADMIN,
    )
    upstream.edit_image.assert_called_once_with(
        "x", image_url="https://example.com/a.jpg", base64_image=None
    )


def test_cors_in_development(client):
    response = client.options(
        "/api/openrouter/nanobanana",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "4000")
    monkeypatch.setenv("ATELIER_ENV", "production")
    monkeypatch.setenv("OPENROUTER_API_KEY", "k")
    monkeypatch.setenv("ATELIER_API_TOKENS", "t1:admin, t2:editor,t3")

    config = ServerConfig.from_env()

    assert config.port == 4000
    assert config.production
    assert config.openrouter_api_key == "k"
    assert config.api_tokens == {"t1": "admin", "t2": "editor", "t3": "admin"}


def test_parse_api_tokens_ignores_blanks():
    assert parse_api_tokens(" , ") == {}
