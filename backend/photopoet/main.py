"""
PhotoPoet Backend - Main Application Entry Point.

This FastAPI application serves the PhotoPoet page:
1. Photo -> text: writes a poem (or one of 27 literary forms) about a photo
2. Text -> photo: paints an image from a poem
3. Refinement: revises a poem from free-text feedback
4. Shareable image: puts a poem on a template image

All generation is delegated to the OpenAI API. The backend only validates
contracts, sequences calls and keeps per-session UI state.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from photopoet.config import get_settings
from photopoet.routes.flows import router as flows_router
from photopoet.routes.session import router as session_router

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events.
    """
    settings = get_settings()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    # Log configuration status (without exposing secrets)
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"Environment: {'development' if settings.is_development else 'production'}")
    logger.info(f"OpenAI API key configured: {bool(settings.OPENAI_API_KEY)}")
    logger.info(f"Models: text={settings.TEXT_MODEL}, image={settings.IMAGE_MODEL}, edit={settings.IMAGE_EDIT_MODEL}")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    if not settings.OPENAI_API_KEY:
        logger.warning(
            "OPENAI_API_KEY is not configured. "
            "Set this in your .env file before making requests."
        )

    logger.info("Application startup complete")

    yield

    logger.info("Application shutdown")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## PhotoPoet Backend

Turns photos into poetry and poetry into photos.

### Contract endpoints

- `POST /api/v1/generate-poem` - Poem from a photo data URI
- `POST /api/v1/generate-photo` - Photo from a poem
- `POST /api/v1/refine-poem` - Revise a poem from feedback
- `POST /api/v1/shareable-image` - Poem composed onto a template image

### Page sessions

- `POST /api/v1/sessions` - Start a session, then dispatch intents under
  `/api/v1/sessions/{id}/...` and poll `GET /api/v1/sessions/{id}`

### Configuration

Set `OPENAI_API_KEY` (and optionally `APP_ENV=development`) via environment
variables or a `.env` file.
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROUTES
# =============================================================================

app.include_router(flows_router)
app.include_router(session_router)


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint - points at the API documentation."""
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
    }


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def run():
    import uvicorn

    # In production, use: uvicorn photopoet.main:app --host 0.0.0.0 --port 8000
    uvicorn.run(
        "photopoet.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
