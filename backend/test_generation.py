import asyncio
import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from photopoet.schemas.poet import (
    PhotoFromPoemRequest,
    PoemFromPhotoRequest,
    RefinePoemRequest,
    ShareableImageRequest,
)
from photopoet.services.generation import (
    GenerationConnectionError,
    GenerationResponseError,
    GenerationService,
    GenerationServiceError,
    GenerationValidationError,
    strip_attribution,
    with_attribution,
)

ATTRIBUTION = "~Satyam mishra"


def chat_reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def image_reply(b64):
    return SimpleNamespace(data=[SimpleNamespace(b64_json=b64)] if b64 is not None else [])


def make_service(settings, chat=None, images=None, edit=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=chat)
    client.images.generate = AsyncMock(return_value=images)
    client.images.edit = AsyncMock(return_value=edit)
    return GenerationService(settings=settings, client=client), client


def test_attribution_is_appended_exactly_once():
    assert with_attribution("a poem", ATTRIBUTION) == "a poem\n\n~Satyam mishra"
    assert with_attribution("a poem\n\n~Satyam mishra", ATTRIBUTION) == "a poem\n\n~Satyam mishra"
    assert strip_attribution("a poem\n\n~Satyam mishra\n", ATTRIBUTION) == "a poem"
    assert with_attribution("a poem", "") == "a poem"


def test_poem_from_photo_appends_attribution(settings):
    service, client = make_service(settings, chat=chat_reply('{"poem": "line1\\nline2\\nline3"}'))
    request = PoemFromPhotoRequest(photoDataUri="data:image/png;base64,AAAA", textType="haiku")

    result = asyncio.run(service.generate_poem_from_photo(request))

    assert result.poem == "line1\nline2\nline3\n\n~Satyam mishra"
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == settings.TEXT_MODEL
    text_part, image_part = kwargs["messages"][0]["content"]
    assert "haiku" in text_part["text"]
    assert image_part["image_url"]["url"] == "data:image/png;base64,AAAA"


def test_poem_json_is_extracted_from_fenced_output(settings):
    reply = 'Here you go:\n```json\n{"poem": "soft light"}\n```'
    service, _ = make_service(settings, chat=chat_reply(reply))
    result = asyncio.run(
        service.generate_poem_from_photo(PoemFromPhotoRequest(photoDataUri="data:image/png;base64,AAAA"))
    )
    assert result.poem.startswith("soft light")


def test_missing_poem_field_is_a_validation_error(settings):
    service, _ = make_service(settings, chat=chat_reply('{"verse": "wrong key"}'))
    with pytest.raises(GenerationValidationError):
        asyncio.run(
            service.generate_poem_from_photo(PoemFromPhotoRequest(photoDataUri="data:image/png;base64,AAAA"))
        )


def test_non_json_output_is_a_response_error(settings):
    service, _ = make_service(settings, chat=chat_reply("I cannot do that."))
    with pytest.raises(GenerationResponseError):
        asyncio.run(
            service.generate_poem_from_photo(PoemFromPhotoRequest(photoDataUri="data:image/png;base64,AAAA"))
        )


def test_refine_strips_then_reappends_attribution(settings):
    service, client = make_service(settings, chat=chat_reply('{"refinedPoem": "new poem\\n\\n~Satyam mishra"}'))
    request = RefinePoemRequest(originalPoem="old poem\n\n~Satyam mishra", feedback="make it happier")

    result = asyncio.run(service.refine_poem(request))

    assert result.refined_poem == "new poem\n\n~Satyam mishra"
    prompt = client.chat.completions.create.await_args.kwargs["messages"][0]["content"]
    assert "Original Poem: old poem\n" in prompt
    assert "Feedback: make it happier" in prompt


def test_photo_from_poem_returns_png_data_uri(settings):
    service, client = make_service(settings, images=image_reply("iVBORw0KGgo="))
    result = asyncio.run(service.generate_photo_from_poem(PhotoFromPoemRequest(poem="a poem")))

    assert result.photo_data_uri == "data:image/png;base64,iVBORw0KGgo="
    assert client.images.generate.await_args.kwargs["response_format"] == "b64_json"


def test_photo_from_poem_without_media_fails(settings):
    service, _ = make_service(settings, images=image_reply(None))
    with pytest.raises(GenerationResponseError):
        asyncio.run(service.generate_photo_from_poem(PhotoFromPoemRequest(poem="a poem")))


def test_shareable_image_edits_template(settings, png_data_uri):
    edited = base64.b64encode(b"edited").decode("utf-8")
    service, client = make_service(settings, edit=image_reply(edited))
    request = ShareableImageRequest(
        poem="a poem", templateImageUri=png_data_uri, username="alice", creator="~bob"
    )

    result = asyncio.run(service.generate_shareable_image(request))

    assert result.photo_data_uri.startswith("data:image/png;base64,")
    kwargs = client.images.edit.await_args.kwargs
    name, content, mime = kwargs["image"]
    assert mime == "image/png" and content.startswith(b"\x89PNG")
    assert '"alice"' in kwargs["prompt"] and '"~bob"' in kwargs["prompt"]


def test_shareable_image_with_undecodable_template_fails(settings):
    service, client = make_service(settings, edit=image_reply("AAAA"))
    request = ShareableImageRequest(
        poem="a poem", templateImageUri="data:image/png;base64,AAAA", username="alice", creator="~bob"
    )
    with pytest.raises(GenerationValidationError):
        asyncio.run(service.generate_shareable_image(request))
    client.images.edit.assert_not_awaited()


def test_shareable_image_refuses_internal_template_urls(settings):
    service, client = make_service(settings, edit=image_reply("AAAA"))
    request = ShareableImageRequest(
        poem="a poem",
        templateImageUri="http://169.254.169.254/latest/meta-data/iam",
        username="alice",
        creator="~bob",
    )

    with patch("photopoet.services.media.httpx.AsyncClient") as http_client:
        with pytest.raises(GenerationValidationError):
            asyncio.run(service.generate_shareable_image(request))

    http_client.assert_not_called()
    client.images.edit.assert_not_awaited()


def test_shareable_image_fetches_template_from_allowed_host(settings, png_bytes):
    settings = settings.model_copy(update={"TEMPLATE_ALLOWED_HOSTS": "templates.example.com"})
    service, client = make_service(settings, edit=image_reply("AAAA"))
    request = ShareableImageRequest(
        poem="a poem",
        templateImageUri="https://templates.example.com/frame.png",
        username="alice",
        creator="~bob",
    )

    with patch("photopoet.services.generation.load_asset", AsyncMock(return_value=("image/png", png_bytes))) as load:
        asyncio.run(service.generate_shareable_image(request))

    assert load.await_args.kwargs == {
        "allowed_hosts": ["templates.example.com"],
        "max_bytes": settings.MAX_UPLOAD_BYTES,
    }
    client.images.edit.assert_awaited_once()


def test_transport_failures_collapse_into_service_errors(settings):
    service, client = make_service(settings)
    client.images.generate.side_effect = openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.openai.com/v1/images/generations")
    )
    with pytest.raises(GenerationConnectionError) as exc_info:
        asyncio.run(service.generate_photo_from_poem(PhotoFromPoemRequest(poem="a poem")))
    assert isinstance(exc_info.value, GenerationServiceError)


def test_missing_api_key_is_a_connection_error(settings):
    service = GenerationService(settings=settings.model_copy(update={"OPENAI_API_KEY": None}))
    with pytest.raises(GenerationConnectionError):
        asyncio.run(service.generate_photo_from_poem(PhotoFromPoemRequest(poem="a poem")))


def test_client_waits_for_the_backend_unless_a_timeout_is_configured(settings):
    with patch("photopoet.services.generation.AsyncOpenAI") as client_cls:
        GenerationService(settings=settings)._get_client()
        GenerationService(settings=settings.model_copy(update={"GENERATION_TIMEOUT": 30.0}))._get_client()

    assert [c.kwargs["timeout"] for c in client_cls.call_args_list] == [None, 30.0]
