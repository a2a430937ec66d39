"""
Generation contract API routes.

One endpoint per generation contract, each a single round trip to the
generation backend, plus health and readiness checks. Service errors are
mapped to HTTP status codes here and nowhere else.
"""

import logging
from typing import Annotated, Awaitable, Callable, TypeVar

from fastapi import APIRouter, Depends, HTTPException, status

from photopoet.config import get_settings
from photopoet.schemas.poet import (
    ErrorResponse,
    PhotoFromPoemRequest,
    PhotoFromPoemResponse,
    PoemFromPhotoRequest,
    PoemFromPhotoResponse,
    RefinePoemRequest,
    RefinePoemResponse,
    ShareableImageRequest,
    ShareableImageResponse,
)
from photopoet.services.generation import (
    GenerationConnectionError,
    GenerationResponseError,
    GenerationService,
    GenerationServiceError,
    GenerationValidationError,
    get_generation_service,
)

# Configure logging
logger = logging.getLogger(__name__)

# Create router with prefix and tags
router = APIRouter(
    prefix="/api/v1",
    tags=["generation"],
)

ERROR_RESPONSES = {
    422: {"description": "Invalid request (validation error)", "model": ErrorResponse},
    502: {"description": "Generation backend returned an unusable response", "model": ErrorResponse},
    503: {"description": "Generation backend unavailable", "model": ErrorResponse},
}

T = TypeVar("T")


async def _call_backend(operation: str, call: Callable[[], Awaitable[T]]) -> T:
    """Run one generation call, translating service errors into HTTP errors."""
    try:
        return await call()

    except GenerationConnectionError as e:
        logger.error(f"{operation} connection error: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "generation_connection_error",
                "message": str(e),
                "details": {
                    "service": "OpenAI",
                    "action": "Check OPENAI_API_KEY and network connectivity",
                },
            },
        )

    except GenerationValidationError as e:
        logger.error(f"{operation} validation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "error": "generation_validation_error",
                "message": str(e),
                "details": {"service": "OpenAI", "action": "Output did not match expected schema"},
            },
        )

    except GenerationResponseError as e:
        logger.error(f"{operation} response error: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "error": "generation_response_error",
                "message": str(e),
                "details": {"service": "OpenAI"},
            },
        )

    except GenerationServiceError as e:
        logger.error(f"{operation} service error: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "error": "generation_error",
                "message": str(e),
                "details": {"service": "OpenAI"},
            },
        )


@router.post(
    "/generate-poem",
    response_model=PoemFromPhotoResponse,
    response_model_by_alias=True,
    responses=ERROR_RESPONSES,
    summary="Write a poem about a photo",
)
async def generate_poem(
    request: PoemFromPhotoRequest,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> PoemFromPhotoResponse:
    """
    Generate a unique piece in the requested literary form from a photo
    data URI. The attribution line is appended to the returned text.
    """
    logger.info(f"Received poem request: text_type={request.text_type.value}")
    return await _call_backend("generate_poem", lambda: service.generate_poem_from_photo(request))


@router.post(
    "/generate-photo",
    response_model=PhotoFromPoemResponse,
    response_model_by_alias=True,
    responses=ERROR_RESPONSES,
    summary="Generate a photo from text",
)
async def generate_photo(
    request: PhotoFromPoemRequest,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> PhotoFromPoemResponse:
    logger.info(f"Received photo request: {len(request.poem)} chars of text")
    return await _call_backend("generate_photo", lambda: service.generate_photo_from_poem(request))


@router.post(
    "/refine-poem",
    response_model=RefinePoemResponse,
    response_model_by_alias=True,
    responses=ERROR_RESPONSES,
    summary="Refine a poem from feedback",
)
async def refine_poem(
    request: RefinePoemRequest,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> RefinePoemResponse:
    return await _call_backend("refine_poem", lambda: service.refine_poem(request))


@router.post(
    "/shareable-image",
    response_model=ShareableImageResponse,
    response_model_by_alias=True,
    responses=ERROR_RESPONSES,
    summary="Put a poem on a template image",
)
async def shareable_image(
    request: ShareableImageRequest,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> ShareableImageResponse:
    logger.info(f"Received shareable image request for '{request.username}'")
    return await _call_backend("shareable_image", lambda: service.generate_shareable_image(request))


@router.get(
    "/health",
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Check if the backend service is running.",
)
async def health_check():
    settings = get_settings()
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get(
    "/health/ready",
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Check if the backend is ready to accept requests (configs loaded).",
)
async def readiness_check():
    """
    Readiness check that verifies the generation backend is configured.

    Returns:
        dict: Readiness status with configuration info
    """
    settings = get_settings()
    openai_configured = bool(settings.OPENAI_API_KEY)

    return {
        "status": "ready" if openai_configured else "not_ready",
        "configuration": {
            "openai_configured": openai_configured,
            "text_model": settings.TEXT_MODEL,
            "image_model": settings.IMAGE_MODEL,
            "image_edit_model": settings.IMAGE_EDIT_MODEL,
            "environment": "development" if settings.is_development else "production",
        },
        "warnings": [] if openai_configured else ["Set OPENAI_API_KEY to enable generation"],
    }
