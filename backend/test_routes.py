from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from photopoet.config import get_settings
from photopoet.main import app
from photopoet.schemas.poet import PhotoFromPoemResponse, PoemFromPhotoResponse
from photopoet.services.generation import GenerationConnectionError, get_generation_service
from photopoet.state.sessions import SessionStore, get_session_store


@pytest.fixture
def service():
    service = MagicMock()
    service.generate_poem_from_photo = AsyncMock(
        return_value=PoemFromPhotoResponse(poem="line1\nline2\n\n~Satyam mishra")
    )
    service.generate_photo_from_poem = AsyncMock(
        return_value=PhotoFromPoemResponse(photoDataUri="data:image/png;base64,AAAA")
    )
    service.refine_poem = AsyncMock()
    service.generate_shareable_image = AsyncMock()
    return service


def make_client(service, settings):
    store = SessionStore(service=service, settings=settings)
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_generation_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def client(service, settings):
    with make_client(service, settings) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def dev_client(service, dev_settings):
    with make_client(service, dev_settings) as client:
        yield client
    app.dependency_overrides.clear()


def new_session(client) -> str:
    response = client.post("/api/v1/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


# =============================================================================
# CONTRACT ENDPOINTS
# =============================================================================

def test_generate_poem_endpoint(client, service):
    response = client.post(
        "/api/v1/generate-poem",
        json={"photoDataUri": "data:image/png;base64,AAAA", "textType": "sonnet"},
    )
    assert response.status_code == 200
    assert response.json() == {"poem": "line1\nline2\n\n~Satyam mishra"}
    request = service.generate_poem_from_photo.await_args.args[0]
    assert request.text_type.value == "sonnet"


def test_generate_poem_rejects_unknown_style(client):
    response = client.post(
        "/api/v1/generate-poem",
        json={"photoDataUri": "data:image/png;base64,AAAA", "textType": "rap"},
    )
    assert response.status_code == 422


def test_backend_outage_maps_to_503(client, service):
    service.generate_photo_from_poem.side_effect = GenerationConnectionError("down")
    response = client.post("/api/v1/generate-photo", json={"poem": "a poem"})
    assert response.status_code == 503
    assert response.json()["detail"]["error"] == "generation_connection_error"


def test_health(client):
    assert client.get("/api/v1/health").json()["status"] == "healthy"
    assert client.get("/api/v1/health/ready").status_code == 200


# =============================================================================
# SESSION FLOW
# =============================================================================

def test_upload_generates_poem_and_serves_preview(client, png_bytes):
    session_id = new_session(client)

    response = client.post(
        f"/api/v1/sessions/{session_id}/photo",
        files={"photo": ("sunset.png", png_bytes, "image/png")},
    )
    assert response.status_code == 202

    view = client.get(f"/api/v1/sessions/{session_id}").json()
    assert view["poem"] == "line1\nline2\n\n~Satyam mishra"
    assert view["is_loading_poem"] is False
    assert view["can_regenerate"] is True
    assert view["image_url"] == f"/api/v1/sessions/{session_id}/photo/sunset.png"

    preview = client.get(view["image_url"])
    assert preview.status_code == 200
    assert preview.content == png_bytes

    download = client.get(f"/api/v1/sessions/{session_id}/download")
    assert download.status_code == 200
    assert download.content == png_bytes
    assert 'filename="sunset.png"' in download.headers["content-disposition"]


def test_regenerate_without_photo_is_disabled(client):
    session_id = new_session(client)
    assert client.post(f"/api/v1/sessions/{session_id}/poem/regenerate").status_code == 409


def test_text_to_photo_flow(client, service):
    session_id = new_session(client)
    base = f"/api/v1/sessions/{session_id}"

    assert client.post(f"{base}/photo/generate").status_code == 409
    assert client.put(f"{base}/poem", json={"poem": "my words"}).status_code == 409

    client.put(f"{base}/mode", json={"mode": "text-to-photo"})
    view = client.put(f"{base}/poem", json={"poem": "my words"}).json()
    assert view["can_generate_photo"] is True

    assert client.post(f"{base}/photo/generate").status_code == 202
    view = client.get(base).json()
    assert view["generated_image_url"] == "data:image/png;base64,AAAA"

    download = client.get(f"{base}/download")
    assert 'filename="generated-image.png"' in download.headers["content-disposition"]

    plan = client.post(f"{base}/share", json={"canShare": True}).json()
    assert plan["method"] == "url"
    assert plan["text"] == "my words"


def test_production_hides_refine_and_edit(client):
    session_id = new_session(client)
    base = f"/api/v1/sessions/{session_id}"
    assert client.put(f"{base}/feedback", json={"feedback": "happier"}).status_code == 403
    assert client.post(f"{base}/poem/refine").status_code == 403
    assert client.patch(f"{base}/poem", json={"poem": "x"}).status_code == 403


def test_development_refine(dev_client, service, png_bytes):
    from photopoet.schemas.poet import RefinePoemResponse

    service.refine_poem.return_value = RefinePoemResponse(refinedPoem="new poem\n\n~Satyam mishra")
    session_id = new_session(dev_client)
    base = f"/api/v1/sessions/{session_id}"

    dev_client.post(f"{base}/photo", files={"photo": ("a.png", png_bytes, "image/png")})
    assert dev_client.post(f"{base}/poem/refine").status_code == 409

    dev_client.put(f"{base}/feedback", json={"feedback": "make it happier"})
    assert dev_client.post(f"{base}/poem/refine").status_code == 202

    view = dev_client.get(base).json()
    assert view["poem"] == "new poem\n\n~Satyam mishra"
    assert view["feedback"] == ""


def test_unknown_session_is_404(client):
    assert client.get("/api/v1/sessions/nope").status_code == 404
