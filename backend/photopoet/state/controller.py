"""
Application State Controller.

Owns the UI state of one PhotoPoet session and sequences calls to the
generation service. Every backend operation follows the same protocol:

1. set its busy flag and clear the stale result it is about to replace
2. call the generation service
3. apply the result on success, or log and post a notice on failure,
   then clear the busy flag

Dispatches are fenced: each one takes a token from a monotonic counter and
a result is only applied if its token is still the latest issued for the
state field it writes. A slow response can therefore never overwrite a
newer one.
"""

import asyncio
import itertools
import logging
import time
from typing import Callable, Coroutine, Dict, Optional, Set

from pydantic import BaseModel

from photopoet.config import Settings, get_settings
from photopoet.schemas.poet import (
    ContractViolation,
    PhotoFromPoemRequest,
    PoemFromPhotoRequest,
    RefinePoemRequest,
    ShareableImageRequest,
    TextType,
    validate_contract,
)
from photopoet.schemas.session import (
    DownloadTarget,
    Mode,
    Notice,
    NoticeVariant,
    ShareMethod,
    SharePlan,
    ViewState,
)
from photopoet.services.generation import GenerationService, GenerationServiceError
from photopoet.services.media import MediaError, download_filename, file_to_data_uri
from photopoet.state.reveal import TextReveal

logger = logging.getLogger(__name__)

SHARE_TITLE = "My PhotoPoet Creation"
SHARE_DEFAULT_TEXT = "Check out this creation from PhotoPoet!"
SHARE_FILENAME = "photopoet-creation.png"

# Operation -> state field it writes
POEM_FIELD = "poem"
PHOTO_FIELD = "generated_image_url"
SHARE_IMAGE_FIELD = "share_image_url"


class UIState(BaseModel):
    """Mutable state of one session. Only the controller writes to it."""

    mode: Mode = Mode.PHOTO_TO_TEXT
    image_url: Optional[str] = None
    image_data_uri: Optional[str] = None
    generated_image_url: Optional[str] = None
    share_image_url: Optional[str] = None
    poem: str = ""
    text_type: TextType = TextType.POEM
    feedback: str = ""

    is_loading_poem: bool = False
    is_refining_poem: bool = False
    is_loading_photo: bool = False
    is_composing: bool = False

    notices: list[Notice] = []


class PoetController:
    """Coordinates one session's state with the generation service."""

    def __init__(
        self,
        service: GenerationService,
        settings: Optional[Settings] = None,
        session_id: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.service = service
        self.session_id = session_id
        self.state = UIState(image_url=self.settings.PLACEHOLDER_IMAGE_URL)
        self.reveal = TextReveal(self.settings.REVEAL_INTERVAL_MS, clock=clock)

        self._sequence = itertools.count(1)
        self._latest_for_field: Dict[str, int] = {}
        self._latest_for_op: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Fencing
    # ------------------------------------------------------------------

    def _issue(self, operation: str, field: str) -> int:
        token = next(self._sequence)
        self._latest_for_field[field] = token
        self._latest_for_op[operation] = token
        return token

    def _supersede(self, field: str) -> None:
        """Invalidate every in-flight result for ``field`` (user edits)."""
        self._latest_for_field[field] = next(self._sequence)

    def _is_current(self, field: str, token: int) -> bool:
        return self._latest_for_field.get(field) == token

    def _owns_busy(self, operation: str, token: int) -> bool:
        return self._latest_for_op.get(operation) == token

    # ------------------------------------------------------------------
    # Notices / tasks
    # ------------------------------------------------------------------

    def notify(self, title: str, description: str, destructive: bool = False) -> None:
        variant = NoticeVariant.DESTRUCTIVE if destructive else NoticeVariant.DEFAULT
        self.state.notices.append(Notice(title=title, description=description, variant=variant))

    def drain_notices(self) -> list[Notice]:
        notices, self.state.notices = self.state.notices, []
        return notices

    async def dispatch(self, coro: Coroutine) -> asyncio.Task:
        """
        Run an operation in the background, keeping a reference until it
        settles. Yields once so the operation reaches its backend call and
        its busy flag is already set when the caller renders the view.
        """
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        await asyncio.sleep(0)
        return task

    async def wait_idle(self) -> None:
        """Wait for every dispatched operation to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _set_poem(self, poem: str) -> None:
        self.state.poem = poem
        self.reveal.restart(poem)

    # ------------------------------------------------------------------
    # Photo -> text
    # ------------------------------------------------------------------

    async def upload_photo(self, content: bytes, content_type: Optional[str], preview_url: str) -> bool:
        """
        Take a newly selected photo and write about it.

        The preview URL is shown immediately; the content is converted to a
        data URI and handed to generate_poem with the current text type.
        A file that cannot be read leaves the previous photo in place.
        """
        previous_url, self.state.image_url = self.state.image_url, preview_url
        try:
            data_uri = file_to_data_uri(content, content_type)
        except MediaError as e:
            logger.error(f"[{self.session_id}] Could not read uploaded photo: {e}")
            self.state.image_url = previous_url
            self.notify("Upload Failed", "We couldn't read this file. Please choose an image.", destructive=True)
            return False

        self.state.image_data_uri = data_uri
        return await self.generate_poem(data_uri)

    async def generate_poem(self, data_uri: Optional[str] = None) -> bool:
        data_uri = data_uri or self.state.image_data_uri
        if not data_uri:
            self.notify("No Image", "Please upload an image first to generate a poem.", destructive=True)
            return False

        token = self._issue("generate_poem", POEM_FIELD)
        self.state.is_loading_poem = True
        self._set_poem("")
        try:
            request = validate_contract(
                PoemFromPhotoRequest,
                {"photo_data_uri": data_uri, "text_type": self.state.text_type},
            )
            result = await self.service.generate_poem_from_photo(request)
        except (GenerationServiceError, ContractViolation) as e:
            logger.error(f"[{self.session_id}] Error generating poem: {e}")
            self.notify(
                "Generation Failed",
                "We couldn't generate a poem for this image. Please try another one.",
                destructive=True,
            )
            return False
        finally:
            if self._owns_busy("generate_poem", token):
                self.state.is_loading_poem = False

        if not self._is_current(POEM_FIELD, token):
            logger.info(f"[{self.session_id}] Discarding stale poem (token {token})")
            return False
        self._set_poem(result.poem)
        return True

    async def regenerate_poem(self) -> bool:
        """Write a new piece about the photo already held."""
        return await self.generate_poem(self.state.image_data_uri)

    async def refine_poem(self) -> bool:
        poem, feedback = self.state.poem, self.state.feedback
        if not poem or not feedback.strip():
            return False

        token = self._issue("refine_poem", POEM_FIELD)
        self.state.is_refining_poem = True
        try:
            request = validate_contract(RefinePoemRequest, {"original_poem": poem, "feedback": feedback})
            result = await self.service.refine_poem(request)
        except (GenerationServiceError, ContractViolation) as e:
            logger.error(f"[{self.session_id}] Error refining poem: {e}")
            self.notify("Refinement Failed", "We couldn't refine the poem. Please try again.", destructive=True)
            return False
        finally:
            if self._owns_busy("refine_poem", token):
                self.state.is_refining_poem = False

        if not self._is_current(POEM_FIELD, token):
            logger.info(f"[{self.session_id}] Discarding stale refinement (token {token})")
            return False
        self._set_poem(result.refined_poem)
        # Keep anything typed while the request was in flight
        if self.state.feedback == feedback:
            self.state.feedback = ""
        return True

    # ------------------------------------------------------------------
    # Text -> photo
    # ------------------------------------------------------------------

    async def generate_photo(self) -> bool:
        poem = self.state.poem
        if not poem:
            return False

        token = self._issue("generate_photo", PHOTO_FIELD)
        self.state.is_loading_photo = True
        self.state.generated_image_url = None
        try:
            request = validate_contract(PhotoFromPoemRequest, {"poem": poem})
            result = await self.service.generate_photo_from_poem(request)
        except (GenerationServiceError, ContractViolation) as e:
            logger.error(f"[{self.session_id}] Error generating photo: {e}")
            self.notify(
                "Generation Failed",
                "We couldn't generate a photo from this text. Please try again.",
                destructive=True,
            )
            return False
        finally:
            if self._owns_busy("generate_photo", token):
                self.state.is_loading_photo = False

        if not self._is_current(PHOTO_FIELD, token):
            return False
        self.state.generated_image_url = result.photo_data_uri
        return True

    async def compose_shareable_image(self, template_image_uri: str, username: str, creator: str) -> bool:
        """Put the current poem on a template image for sharing."""
        poem = self.state.poem
        if not poem:
            self.notify("Nothing to share", "Please generate a poem first.", destructive=True)
            return False

        token = self._issue("compose_shareable_image", SHARE_IMAGE_FIELD)
        self.state.is_composing = True
        self.state.share_image_url = None
        try:
            request = validate_contract(
                ShareableImageRequest,
                {
                    "poem": poem,
                    "template_image_uri": template_image_uri,
                    "username": username,
                    "creator": creator,
                },
            )
            result = await self.service.generate_shareable_image(request)
        except (GenerationServiceError, ContractViolation) as e:
            logger.error(f"[{self.session_id}] Error composing shareable image: {e}")
            self.notify(
                "Image Creation Failed",
                "We couldn't put your poem on the template. Please try again.",
                destructive=True,
            )
            return False
        finally:
            if self._owns_busy("compose_shareable_image", token):
                self.state.is_composing = False

        if not self._is_current(SHARE_IMAGE_FIELD, token):
            return False
        self.state.share_image_url = result.photo_data_uri
        return True

    # ------------------------------------------------------------------
    # Plain user input
    # ------------------------------------------------------------------

    def set_mode(self, mode: Mode) -> None:
        # In-flight work keeps running; only the rendered panel changes.
        self.state.mode = Mode(mode)

    def set_text_type(self, text_type: TextType) -> None:
        self.state.text_type = TextType(text_type)

    def set_feedback(self, feedback: str) -> None:
        self.state.feedback = feedback

    def set_poem(self, poem: str) -> None:
        """Text typed into the text-to-photo panel."""
        self._supersede(POEM_FIELD)
        self.state.poem = poem
        self.reveal.show_all(poem)

    def edit_poem(self, poem: str) -> None:
        """Manual edit of a generated poem (development builds only)."""
        if not self.settings.is_development:
            raise PermissionError("Manual poem editing is only available in development")
        self.set_poem(poem)

    def copy_text(self) -> Optional[str]:
        if not self.state.poem:
            return None
        self.notify("Copied!", "The poem has been copied to your clipboard.")
        return self.state.poem

    # ------------------------------------------------------------------
    # Download / share
    # ------------------------------------------------------------------

    def current_asset(self) -> Optional[str]:
        """The image the download and share actions act on in the current mode."""
        if self.state.mode == Mode.TEXT_TO_PHOTO:
            return self.state.generated_image_url
        return self.state.image_url

    def download(self) -> Optional[DownloadTarget]:
        asset = self.current_asset()
        if not asset:
            return None
        return DownloadTarget(url=asset, filename=download_filename(asset))

    def plan_share(self, can_share_files: bool = False, can_share: bool = False) -> Optional[SharePlan]:
        """
        Pick the richest share mechanism the platform supports: a native
        file share, then a URL + text share, then copying the text.
        """
        asset = self.current_asset()
        if not asset:
            self.notify("Nothing to share", "Please generate an image first.", destructive=True)
            return None

        text = self.state.poem or SHARE_DEFAULT_TEXT
        if can_share_files:
            method = ShareMethod.FILES
        elif can_share:
            method = ShareMethod.URL
        else:
            method = ShareMethod.CLIPBOARD
            self.notify(
                "Copied to Clipboard!",
                "The text has been copied. Sharing is not supported in this browser.",
            )
        return SharePlan(method=method, title=SHARE_TITLE, text=text, url=asset, filename=SHARE_FILENAME)

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def view(self, consume_notices: bool = True) -> ViewState:
        """Render the current state, including which controls are enabled."""
        s = self.state
        dev = self.settings.is_development
        has_poem = bool(s.poem)
        has_asset = bool(self.current_asset())
        show_refine = dev and has_poem and not s.is_loading_poem

        notices = self.drain_notices() if consume_notices else list(s.notices)
        return ViewState(
            session_id=self.session_id,
            mode=s.mode,
            image_url=s.image_url,
            generated_image_url=s.generated_image_url,
            share_image_url=s.share_image_url,
            poem=s.poem,
            displayed_poem=self.reveal.sync(),
            text_type=s.text_type,
            feedback=s.feedback,
            is_loading_poem=s.is_loading_poem,
            is_refining_poem=s.is_refining_poem,
            is_loading_photo=s.is_loading_photo,
            is_composing=s.is_composing,
            can_upload=not s.is_loading_poem,
            can_regenerate=bool(s.image_data_uri) and not s.is_loading_poem,
            can_refine=show_refine and bool(s.feedback.strip()) and not s.is_refining_poem,
            can_generate_photo=has_poem and not s.is_loading_photo,
            can_compose=has_poem and not s.is_composing,
            can_download=has_asset,
            can_share=has_asset,
            can_copy=has_poem,
            can_edit_poem=dev and has_poem and not s.is_loading_poem,
            show_refine_panel=show_refine,
            notices=notices,
        )
