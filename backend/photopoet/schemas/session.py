"""
Session (presentation) schemas.

Models the browser-facing view of a PhotoPoet session: which panel is shown,
what is currently held, which controls are enabled, and the bodies of the
intents the page can dispatch.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from photopoet.schemas.poet import TextType


class Mode(str, Enum):
    """Which panel of the page is active."""
    PHOTO_TO_TEXT = "photo-to-text"
    TEXT_TO_PHOTO = "text-to-photo"


class NoticeVariant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


class Notice(BaseModel):
    """A short user-visible message (toast)."""

    title: str
    description: str
    variant: NoticeVariant = NoticeVariant.DEFAULT


class ShareMethod(str, Enum):
    FILES = "files"
    URL = "url"
    CLIPBOARD = "clipboard"


class SharePlan(BaseModel):
    """How the page should share the current creation."""

    method: ShareMethod
    title: str
    text: str
    url: str = Field(..., description="Image to attach (files) or link to (url)")
    filename: str


class DownloadTarget(BaseModel):
    url: str
    filename: str


class ViewState(BaseModel):
    """Everything the page needs to render, including control enablement."""

    session_id: str
    mode: Mode
    image_url: Optional[str] = None
    generated_image_url: Optional[str] = None
    share_image_url: Optional[str] = None
    poem: str = ""
    displayed_poem: str = ""
    text_type: TextType = TextType.POEM
    feedback: str = ""

    is_loading_poem: bool = False
    is_refining_poem: bool = False
    is_loading_photo: bool = False
    is_composing: bool = False

    can_upload: bool = True
    can_regenerate: bool = False
    can_refine: bool = False
    can_generate_photo: bool = False
    can_compose: bool = False
    can_download: bool = False
    can_share: bool = False
    can_copy: bool = False
    can_edit_poem: bool = False
    show_refine_panel: bool = False

    text_types: List[TextType] = Field(default_factory=lambda: list(TextType))
    notices: List[Notice] = Field(default_factory=list)


# =============================================================================
# INTENT BODIES
# =============================================================================

class ModeUpdate(BaseModel):
    mode: Mode


class TextTypeUpdate(BaseModel):
    text_type: TextType = Field(..., alias="textType")

    model_config = {"populate_by_name": True}


class FeedbackUpdate(BaseModel):
    feedback: str = ""


class PoemUpdate(BaseModel):
    poem: str = ""


class ShareIntent(BaseModel):
    """Platform share capabilities reported by the page."""

    can_share_files: bool = Field(False, alias="canShareFiles")
    can_share: bool = Field(False, alias="canShare")

    model_config = {"populate_by_name": True}


class ShareableImageIntent(BaseModel):
    template_image_uri: str = Field(..., alias="templateImageUri")
    username: str
    creator: str

    model_config = {"populate_by_name": True}
