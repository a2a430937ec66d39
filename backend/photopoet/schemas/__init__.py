# Schemas package - Pydantic models for request/response validation
from photopoet.schemas.poet import (
    ContractViolation,
    ErrorResponse,
    PhotoFromPoemRequest,
    PhotoFromPoemResponse,
    PoemFromPhotoRequest,
    PoemFromPhotoResponse,
    RefinePoemRequest,
    RefinePoemResponse,
    ShareableImageRequest,
    ShareableImageResponse,
    TextType,
    validate_contract,
)
from photopoet.schemas.session import Mode, Notice, SharePlan, ViewState

__all__ = [
    "ContractViolation",
    "ErrorResponse",
    "PhotoFromPoemRequest",
    "PhotoFromPoemResponse",
    "PoemFromPhotoRequest",
    "PoemFromPhotoResponse",
    "RefinePoemRequest",
    "RefinePoemResponse",
    "ShareableImageRequest",
    "ShareableImageResponse",
    "TextType",
    "validate_contract",
    "Mode",
    "Notice",
    "SharePlan",
    "ViewState",
]
