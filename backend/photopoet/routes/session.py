"""
Session API routes (presentation shell).

The page creates a session, renders its ViewState and dispatches intents.
Generation intents run in the background: the route returns immediately
with the busy flag set and the page polls the view until it clears.

A control the view reports as disabled answers 409, and a control hidden
in production builds answers 403.
"""

import logging
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from fastapi.responses import RedirectResponse

from photopoet.config import Settings, get_settings
from photopoet.schemas.session import (
    FeedbackUpdate,
    Mode,
    ModeUpdate,
    PoemUpdate,
    ShareableImageIntent,
    ShareIntent,
    SharePlan,
    TextTypeUpdate,
    ViewState,
)
from photopoet.services.media import MediaError, is_data_uri, parse_data_uri
from photopoet.state.controller import PoetController
from photopoet.state.sessions import SessionStore, get_session_store

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/sessions",
    tags=["session"],
)


def get_controller(
    session_id: str,
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> PoetController:
    controller = store.get(session_id)
    if controller is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return controller


Controller = Annotated[PoetController, Depends(get_controller)]


def _require(enabled: bool, action: str) -> None:
    if not enabled:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"'{action}' is not available right now",
        )


def _require_development(settings: Settings, action: str) -> None:
    if not settings.is_development:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"'{action}' is only available in development builds",
        )


@router.post("", response_model=ViewState, status_code=status.HTTP_201_CREATED)
async def create_session(store: Annotated[SessionStore, Depends(get_session_store)]) -> ViewState:
    return store.create().view()


@router.get("/{session_id}", response_model=ViewState)
async def get_view(controller: Controller) -> ViewState:
    return controller.view()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, store: Annotated[SessionStore, Depends(get_session_store)]):
    if not store.delete(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# PHOTO -> TEXT
# =============================================================================

@router.post("/{session_id}/photo", response_model=ViewState, status_code=status.HTTP_202_ACCEPTED)
async def upload_photo(
    controller: Controller,
    settings: Annotated[Settings, Depends(get_settings)],
    photo: UploadFile = File(...),
) -> ViewState:
    """Select a new photo; a poem is generated from it automatically."""
    _require(controller.view(consume_notices=False).can_upload, "upload")

    content = await photo.read()
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Photo exceeds {settings.MAX_UPLOAD_BYTES} bytes",
        )

    filename = quote(photo.filename or "photo.png")
    preview_url = f"{router.prefix}/{controller.session_id}/photo/{filename}"
    logger.info(f"[{controller.session_id}] Upload received: {photo.filename} ({len(content)} bytes)")

    await controller.dispatch(controller.upload_photo(content, photo.content_type, preview_url))
    return controller.view()


@router.get("/{session_id}/photo/{filename}")
async def get_photo(controller: Controller, filename: str) -> Response:
    """Serve the uploaded photo (the preview URL)."""
    if not controller.state.image_data_uri:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No photo uploaded")
    mime, content = parse_data_uri(controller.state.image_data_uri)
    return Response(content=content, media_type=mime)


@router.post("/{session_id}/poem/regenerate", response_model=ViewState, status_code=status.HTTP_202_ACCEPTED)
async def regenerate_poem(controller: Controller) -> ViewState:
    _require(controller.view(consume_notices=False).can_regenerate, "regenerate")
    await controller.dispatch(controller.regenerate_poem())
    return controller.view()


@router.put("/{session_id}/text-type", response_model=ViewState)
async def set_text_type(controller: Controller, body: TextTypeUpdate) -> ViewState:
    controller.set_text_type(body.text_type)
    return controller.view()


@router.put("/{session_id}/mode", response_model=ViewState)
async def set_mode(controller: Controller, body: ModeUpdate) -> ViewState:
    controller.set_mode(body.mode)
    return controller.view()


@router.put("/{session_id}/feedback", response_model=ViewState)
async def set_feedback(
    controller: Controller,
    settings: Annotated[Settings, Depends(get_settings)],
    body: FeedbackUpdate,
) -> ViewState:
    _require_development(settings, "feedback")
    controller.set_feedback(body.feedback)
    return controller.view()


@router.post("/{session_id}/poem/refine", response_model=ViewState, status_code=status.HTTP_202_ACCEPTED)
async def refine_poem(controller: Controller, settings: Annotated[Settings, Depends(get_settings)]) -> ViewState:
    _require_development(settings, "refine")
    _require(controller.view(consume_notices=False).can_refine, "refine")
    await controller.dispatch(controller.refine_poem())
    return controller.view()


@router.patch("/{session_id}/poem", response_model=ViewState)
async def edit_poem(
    controller: Controller,
    settings: Annotated[Settings, Depends(get_settings)],
    body: PoemUpdate,
) -> ViewState:
    """Manual edit of the generated poem (development builds only)."""
    _require_development(settings, "edit")
    _require(controller.view(consume_notices=False).can_edit_poem, "edit")
    controller.edit_poem(body.poem)
    return controller.view()


@router.post("/{session_id}/copy")
async def copy_poem(controller: Controller) -> dict:
    text = controller.copy_text()
    _require(text is not None, "copy")
    return {"text": text, "view": controller.view()}


# =============================================================================
# TEXT -> PHOTO
# =============================================================================

@router.put("/{session_id}/poem", response_model=ViewState)
async def set_poem(controller: Controller, body: PoemUpdate) -> ViewState:
    """Text typed into the text-to-photo panel."""
    _require(controller.state.mode == Mode.TEXT_TO_PHOTO, "write")
    controller.set_poem(body.poem)
    return controller.view()


@router.post("/{session_id}/photo/generate", response_model=ViewState, status_code=status.HTTP_202_ACCEPTED)
async def generate_photo(controller: Controller) -> ViewState:
    _require(controller.view(consume_notices=False).can_generate_photo, "generate photo")
    await controller.dispatch(controller.generate_photo())
    return controller.view()


# =============================================================================
# SHARING
# =============================================================================

@router.post("/{session_id}/share-image", response_model=ViewState, status_code=status.HTTP_202_ACCEPTED)
async def compose_shareable_image(controller: Controller, body: ShareableImageIntent) -> ViewState:
    _require(controller.view(consume_notices=False).can_compose, "create shareable image")
    await controller.dispatch(
        controller.compose_shareable_image(body.template_image_uri, body.username, body.creator)
    )
    return controller.view()


@router.get("/{session_id}/download")
async def download(controller: Controller) -> Response:
    """
    Download the image for the current mode: the uploaded photo in
    photo-to-text, the generated photo in text-to-photo.
    """
    target = controller.download()
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Nothing to download")

    if target.url.startswith(("http://", "https://")):
        return RedirectResponse(target.url)

    # Either a generated data URI or the preview URL of the uploaded photo
    source = target.url if is_data_uri(target.url) else controller.state.image_data_uri
    if not source:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Nothing to download")
    try:
        mime, content = parse_data_uri(source)
    except MediaError as e:
        logger.error(f"[{controller.session_id}] Could not decode download: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Image is corrupt")

    return Response(
        content=content,
        media_type=mime,
        headers={"Content-Disposition": f'attachment; filename="{quote(target.filename)}"'},
    )


@router.post("/{session_id}/share", response_model=SharePlan)
async def share(controller: Controller, body: ShareIntent) -> SharePlan:
    plan = controller.plan_share(can_share_files=body.can_share_files, can_share=body.can_share)
    _require(plan is not None, "share")
    return plan
