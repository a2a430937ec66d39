import asyncio
import base64
from unittest.mock import patch

import httpx
import pytest

from photopoet.services.media import (
    MediaError,
    download_filename,
    check_remote_url,
    fetch_remote,
    file_to_data_uri,
    is_data_uri,
    load_asset,
    parse_data_uri,
    to_png_bytes,
)


def test_file_to_data_uri_uses_declared_image_type():
    assert file_to_data_uri(base64.b64decode("AAAA"), "image/png") == "data:image/png;base64,AAAA"


def test_file_to_data_uri_sniffs_type_when_not_declared(png_bytes):
    uri = file_to_data_uri(png_bytes, "application/octet-stream")
    assert uri.startswith("data:image/png;base64,")
    assert parse_data_uri(uri) == ("image/png", png_bytes)


def test_file_to_data_uri_rejects_non_images():
    with pytest.raises(MediaError):
        file_to_data_uri(b"hello world", None)
    with pytest.raises(MediaError):
        file_to_data_uri(b"", "image/png")


def test_parse_data_uri_rejects_urls():
    with pytest.raises(MediaError):
        parse_data_uri("https://example.com/a.png")


def test_to_png_bytes_reencodes(png_bytes):
    assert to_png_bytes(png_bytes).startswith(b"\x89PNG")
    with pytest.raises(MediaError):
        to_png_bytes(b"not an image")


@pytest.mark.parametrize(
    "asset, expected",
    [
        ("data:image/png;base64,AAAA", "generated-image.png"),
        ("https://images.example.com/photos/sunset.jpg", "sunset.jpg"),
        ("https://images.example.com/photos/sunset.jpg?w=1200", "sunset.jpg"),
        ("https://images.example.com/", "image.png"),
        ("/api/v1/sessions/abc/photo/my%20cat.png", "my cat.png"),
    ],
)
def test_download_filename(asset, expected):
    assert download_filename(asset) == expected


def test_is_data_uri():
    assert is_data_uri("data:image/png;base64,AAAA")
    assert not is_data_uri("https://example.com/x.png")
    assert not is_data_uri(None)


REAL_ASYNC_CLIENT = httpx.AsyncClient


def serve(handler):
    """Route httpx.AsyncClient through a MockTransport calling ``handler``."""
    return patch(
        "photopoet.services.media.httpx.AsyncClient",
        side_effect=lambda **kwargs: REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs),
    )


@pytest.mark.parametrize(
    "url",
    [
        "http://169.254.169.254/latest/meta-data/iam",
        "http://localhost:8000/admin",
        "ftp://templates.example.com/frame.png",
        "https://evil.example.com/frame.png",
    ],
)
def test_fetch_remote_refuses_hosts_outside_the_allow_list(url):
    with patch("photopoet.services.media.httpx.AsyncClient") as client_cls:
        with pytest.raises(MediaError):
            asyncio.run(fetch_remote(url, allowed_hosts=["templates.example.com"]))
    client_cls.assert_not_called()


def test_load_asset_without_allowed_hosts_only_takes_data_uris(png_data_uri, png_bytes):
    assert asyncio.run(load_asset(png_data_uri)) == ("image/png", png_bytes)
    with pytest.raises(MediaError):
        asyncio.run(load_asset("https://templates.example.com/frame.png"))


def test_fetch_remote_from_allowed_host(png_bytes):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, headers={"content-type": "image/png"}, content=png_bytes)

    with serve(handler):
        mime, content = asyncio.run(
            fetch_remote("https://templates.example.com/frame.png", allowed_hosts=["Templates.example.com"])
        )

    assert (mime, content) == ("image/png", png_bytes)
    assert seen == ["https://templates.example.com/frame.png"]


def test_fetch_remote_aborts_oversized_body():
    def handler(request):
        return httpx.Response(200, headers={"content-type": "image/png"}, content=b"x" * 2048)

    with serve(handler):
        with pytest.raises(MediaError, match="larger than 1024 bytes"):
            asyncio.run(
                fetch_remote(
                    "https://templates.example.com/huge.png",
                    allowed_hosts=["templates.example.com"],
                    max_bytes=1024,
                )
            )


def test_fetch_remote_does_not_follow_redirects():
    def handler(request):
        return httpx.Response(302, headers={"location": "http://169.254.169.254/latest/meta-data/"})

    with serve(handler):
        with pytest.raises(MediaError, match="status 302"):
            asyncio.run(fetch_remote("https://templates.example.com/frame.png", allowed_hosts=["templates.example.com"]))


def test_check_remote_url_ignores_host_case():
    assert check_remote_url("https://Templates.Example.com/frame.png", ["templates.example.com"]) == "templates.example.com"
