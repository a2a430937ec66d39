"""
Image asset helpers.

An ImageAsset is either a self-describing data URI
(``data:<mime>;base64,<payload>``) or a remote http(s) URL. These helpers
convert between uploaded bytes, data URIs and PNG bytes, fetch remote
images from allowed hosts, and resolve the file name a download should use.
"""

import base64
import binascii
import logging
from io import BytesIO
from typing import Iterable, Optional, Tuple
from urllib.parse import unquote, urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from photopoet.schemas.poet import DATA_URI_PATTERN

logger = logging.getLogger(__name__)

DATA_URI_DOWNLOAD_NAME = "generated-image.png"
FALLBACK_DOWNLOAD_NAME = "image.png"


class MediaError(ValueError):
    """Raised when an image asset cannot be decoded or fetched."""
    pass


def is_data_uri(asset: Optional[str]) -> bool:
    return bool(asset) and asset.startswith("data:")


def to_data_uri(content: bytes, mime_type: str = "image/png") -> str:
    """Encode raw bytes as a base64 data URI."""
    b64 = base64.b64encode(content).decode("utf-8")
    return f"data:{mime_type};base64,{b64}"


def parse_data_uri(data_uri: str) -> Tuple[str, bytes]:
    """
    Split a data URI into its MIME type and decoded payload.

    Raises:
        MediaError: If the string is not a base64 data URI
    """
    match = DATA_URI_PATTERN.match(data_uri or "")
    if not match:
        raise MediaError("Not a base64 data URI")
    try:
        payload = base64.b64decode("".join(match.group("payload").split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise MediaError(f"Invalid base64 payload: {e}") from e
    return match.group("mime"), payload


def file_to_data_uri(content: bytes, content_type: Optional[str]) -> str:
    """
    Convert an uploaded file to a data URI.

    The declared content type is trusted when it is an image type. Otherwise
    Pillow sniffs the format so that the URI is still self-describing.
    """
    if not content:
        raise MediaError("Uploaded file is empty")
    mime = (content_type or "").lower()
    if not mime.startswith("image/"):
        try:
            with Image.open(BytesIO(content)) as img:
                mime = Image.MIME.get(img.format or "", "")
        except (UnidentifiedImageError, OSError) as e:
            raise MediaError("Uploaded file is not a readable image") from e
        if not mime:
            raise MediaError("Could not determine the image type of the upload")
    return to_data_uri(content, mime)


def to_png_bytes(content: bytes) -> bytes:
    """Re-encode any Pillow-readable image as PNG."""
    try:
        with Image.open(BytesIO(content)) as img:
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA")
            out = BytesIO()
            img.save(out, format="PNG")
    except (UnidentifiedImageError, OSError) as e:
        raise MediaError("Image could not be decoded") from e
    return out.getvalue()


def check_remote_url(url: str, allowed_hosts: Iterable[str]) -> str:
    """
    Make sure ``url`` is an http(s) URL on one of ``allowed_hosts``.

    Returns:
        The lowercase host name

    Raises:
        MediaError: If the URL may not be fetched
    """
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if parsed.scheme not in ("http", "https") or not host:
        raise MediaError("Remote images must be http(s) URLs")
    if host not in {h.lower() for h in allowed_hosts}:
        raise MediaError(f"Remote images from {host} are not allowed")
    return host


async def fetch_remote(
    url: str,
    allowed_hosts: Iterable[str] = (),
    max_bytes: Optional[int] = None,
    timeout: float = 30,
) -> Tuple[str, bytes]:
    """
    Download a remote image asset from an allowed host.

    Redirects are not followed. The body is streamed and the download is
    aborted once it exceeds ``max_bytes``.

    Returns:
        (mime_type, content)

    Raises:
        MediaError: On a disallowed URL, any transport failure, a non-200
            response or an oversized body
    """
    check_remote_url(url, allowed_hosts)
    chunks = []
    size = 0
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=False) as client:
            async with client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise MediaError(f"Remote image returned status {response.status_code}")

                declared = response.headers.get("content-length", "")
                if max_bytes is not None and declared.isdigit() and int(declared) > max_bytes:
                    raise MediaError(f"Remote image is larger than {max_bytes} bytes")

                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if max_bytes is not None and size > max_bytes:
                        raise MediaError(f"Remote image is larger than {max_bytes} bytes")
                    chunks.append(chunk)

                mime = response.headers.get("content-type", "image/png").split(";")[0].strip()
    except httpx.HTTPError as e:
        logger.error(f"Failed to fetch remote image {url}: {e}")
        raise MediaError(f"Failed to fetch remote image: {e}") from e

    return mime, b"".join(chunks)


async def load_asset(
    asset: str,
    allowed_hosts: Iterable[str] = (),
    max_bytes: Optional[int] = None,
    timeout: float = 30,
) -> Tuple[str, bytes]:
    """Resolve a data URI or an allowed remote URL to (mime_type, content)."""
    if is_data_uri(asset):
        return parse_data_uri(asset)
    return await fetch_remote(asset, allowed_hosts=allowed_hosts, max_bytes=max_bytes, timeout=timeout)


def download_filename(asset: str) -> str:
    """
    File name a download of ``asset`` should be saved under.

    Data URIs are always ``generated-image.png``. Remote URLs use their last
    path segment, falling back to ``image.png``.
    """
    if is_data_uri(asset):
        return DATA_URI_DOWNLOAD_NAME
    path = urlparse(asset).path
    name = unquote(path.rsplit("/", 1)[-1]) if path else ""
    return name or FALLBACK_DOWNLOAD_NAME
