import base64
from io import BytesIO

import pytest
from PIL import Image

from photopoet.config import Settings


def make_settings(**overrides) -> Settings:
    values = {
        "OPENAI_API_KEY": "sk-test",
        "APP_ENV": "production",
        "PLACEHOLDER_IMAGE_URL": "https://images.example.com/placeholder.jpg",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def dev_settings() -> Settings:
    return make_settings(APP_ENV="development")


@pytest.fixture
def png_bytes() -> bytes:
    out = BytesIO()
    Image.new("RGB", (8, 8), "white").save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def png_data_uri(png_bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("utf-8")
