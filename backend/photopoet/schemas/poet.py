"""
Poem and photo generation schemas.

This module contains the Pydantic models for every request/response contract
with the generation backend. Wire names are camelCase, Python attributes are
snake_case, and both spellings are accepted on input.
"""

import re
from enum import Enum
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

# data:<mime>;base64,<payload>
DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[\w-]+=[\w.-]+)*;base64,(?P<payload>[A-Za-z0-9+/=\s]*)$",
    re.DOTALL,
)

REMOTE_URL_PATTERN = re.compile(r"^https?://\S+$")


class TextType(str, Enum):
    """Literary forms the photo -> text contract can be asked for."""
    POEM = "poem"
    SHAYARI = "shayari"
    GHAZAL = "ghazal"
    STORY = "story"
    HAIKU = "haiku"
    ACROSTIC = "acrostic"
    LIMERICK = "limerick"
    FREE_VERSE = "free verse"
    SONNET = "sonnet"
    ELEGY = "elegy"
    VILLANELLE = "villanelle"
    ODE = "ode"
    BALLAD = "ballad"
    EPIC = "epic"
    BLANK_VERSE = "blank verse"
    SESTINA = "sestina"
    LYRIC_POETRY = "lyric poetry"
    CINQUAIN = "cinquain"
    OCCASIONAL_POETRY = "occasional poetry"
    COUPLET = "couplet"
    PASTORAL = "pastoral"
    BLACKOUT_POETRY = "blackout poetry"
    EKPHRASTIC = "ekphrastic"
    PANTOUM = "pantoum"
    PROSE_POETRY = "prose poetry"
    DRAMATIC_POETRY = "dramatic poetry"
    EPITAPH = "epitaph"


class ContractViolation(ValueError):
    """Raised when a request or response does not match its contract."""

    def __init__(self, model_name: str, errors: list[dict[str, Any]]):
        self.model_name = model_name
        self.errors = errors
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())) or "<root>" for e in errors)
        super().__init__(f"{model_name} contract violated: {fields}")


class ContractModel(BaseModel):
    """Base for every contract model: camelCase on the wire, strict keys."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def _require_text(v: str, field_name: str) -> str:
    if not v or not v.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return v


def _require_data_uri(v: str) -> str:
    if not DATA_URI_PATTERN.match(v):
        raise ValueError(
            "Expected a data URI with a MIME type and base64 payload: "
            "'data:<mimetype>;base64,<encoded_data>'"
        )
    return v


# =============================================================================
# PHOTO -> TEXT
# =============================================================================

class PoemFromPhotoRequest(ContractModel):
    """A photo plus the literary form to write about it."""

    photo_data_uri: str = Field(
        ...,
        alias="photoDataUri",
        description=(
            "A photo, as a data URI that must include a MIME type and use Base64 encoding. "
            "Expected format: 'data:<mimetype>;base64,<encoded_data>'."
        ),
    )

    text_type: TextType = Field(
        TextType.POEM,
        alias="textType",
        description="The literary form to write in",
    )

    @field_validator("photo_data_uri")
    @classmethod
    def validate_photo(cls, v: str) -> str:
        return _require_data_uri(v)


class PoemFromPhotoResponse(ContractModel):
    """The generated piece. Also the exact JSON shape the model must return."""

    poem: str = Field(..., description="A unique poem generated based on the photo.")

    @field_validator("poem")
    @classmethod
    def validate_poem(cls, v: str) -> str:
        return _require_text(v, "poem")


# =============================================================================
# TEXT -> PHOTO
# =============================================================================

class PhotoFromPoemRequest(ContractModel):
    poem: str = Field(
        ...,
        description="The text (poem, shayari, ghazal) to generate an image from.",
    )

    @field_validator("poem")
    @classmethod
    def validate_poem(cls, v: str) -> str:
        return _require_text(v, "poem")


class PhotoFromPoemResponse(ContractModel):
    photo_data_uri: str = Field(
        ...,
        alias="photoDataUri",
        description="The generated photo as a data URI. Format: 'data:image/png;base64,<encoded_data>'.",
    )

    @field_validator("photo_data_uri")
    @classmethod
    def validate_photo(cls, v: str) -> str:
        return _require_data_uri(v)


# =============================================================================
# REFINEMENT
# =============================================================================

class RefinePoemRequest(ContractModel):
    original_poem: str = Field(..., alias="originalPoem", description="The original generated poem.")
    feedback: str = Field(..., description="The user feedback on the poem.")

    @field_validator("original_poem", "feedback")
    @classmethod
    def validate_text(cls, v: str, info) -> str:
        return _require_text(v, info.field_name)


class RefinePoemResponse(ContractModel):
    """The refined piece. Also the exact JSON shape the model must return."""

    refined_poem: str = Field(
        ...,
        alias="refinedPoem",
        description="The refined poem based on the user feedback.",
    )

    @field_validator("refined_poem")
    @classmethod
    def validate_poem(cls, v: str) -> str:
        return _require_text(v, "refinedPoem")


# =============================================================================
# SHAREABLE IMAGE
# =============================================================================

class ShareableImageRequest(ContractModel):
    poem: str = Field(..., description="The text (poem, shayari, ghazal) to put on the image.")
    template_image_uri: str = Field(
        ...,
        alias="templateImageUri",
        description="The template image, as a data URI or an http(s) URL.",
    )
    username: str = Field(..., description="The username to display at the top.")
    creator: str = Field(..., description="The creator text to display at the bottom.")

    @field_validator("poem")
    @classmethod
    def validate_poem(cls, v: str) -> str:
        return _require_text(v, "poem")

    @field_validator("template_image_uri")
    @classmethod
    def validate_template(cls, v: str) -> str:
        if REMOTE_URL_PATTERN.match(v):
            return v
        return _require_data_uri(v)


class ShareableImageResponse(ContractModel):
    photo_data_uri: str = Field(
        ...,
        alias="photoDataUri",
        description="The composed image as a data URI. Format: 'data:image/png;base64,<encoded_data>'.",
    )

    @field_validator("photo_data_uri")
    @classmethod
    def validate_photo(cls, v: str) -> str:
        return _require_data_uri(v)


# =============================================================================
# ERROR RESPONSE SCHEMA
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str = Field(..., description="Error type/code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict] = Field(None, description="Additional error details")


M = TypeVar("M", bound=BaseModel)


def validate_contract(model: Type[M], data: Any) -> M:
    """
    Validate ``data`` against ``model``.

    Accepts a dict (either key spelling) or an existing instance. Validating
    an instance that is already valid returns an equal instance.

    Raises:
        ContractViolation: If the data does not satisfy the contract
    """
    if isinstance(data, ContractModel):
        data = data.to_wire()
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ContractViolation(model.__name__, e.errors(include_url=False)) from e
