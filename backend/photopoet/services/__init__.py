# Services package - External API integrations
from photopoet.services.generation import (
    GenerationConnectionError,
    GenerationResponseError,
    GenerationService,
    GenerationServiceError,
    GenerationValidationError,
    get_generation_service,
)

__all__ = [
    "GenerationService",
    "GenerationServiceError",
    "GenerationConnectionError",
    "GenerationResponseError",
    "GenerationValidationError",
    "get_generation_service",
]
