"""
Generation Service (OpenAI).

This module handles every call to the generative backend:
1. Photo -> text: a vision chat completion with the photo attached inline.
2. Text -> photo: the OpenAI Images API.
3. Refinement: a chat completion revising an existing poem from feedback.
4. Shareable image: an Images API edit of a template image.

Each operation is exactly one round trip. There are no retries and no
streaming; any failure surfaces as a GenerationServiceError subclass.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI

from photopoet.config import Settings, get_settings
from photopoet.schemas.poet import (
    ContractViolation,
    PhotoFromPoemRequest,
    PhotoFromPoemResponse,
    PoemFromPhotoRequest,
    PoemFromPhotoResponse,
    RefinePoemRequest,
    RefinePoemResponse,
    ShareableImageRequest,
    ShareableImageResponse,
    validate_contract,
)
from photopoet.services.media import MediaError, load_asset, to_png_bytes

# Configure logging
logger = logging.getLogger(__name__)


POEM_FROM_PHOTO_PROMPT = """You are a skilled and empathetic writer. Your task is to write a completely new and unique creative piece in the style of a {text_type} that captures the essence, emotion, and mood of the attached image. Do not repeat previous responses.

Write as a real human would, with genuine feeling. Your writing should be evocative and heartfelt. Ensure your response is formatted with appropriate line breaks to appear as a real piece of art.

Your output should be only the {text_type}.

You MUST respond with ONLY a JSON object of this exact shape, using \\n for line breaks:
{{"poem": "..."}}"""

REFINE_POEM_PROMPT = """You are a helpful and empathetic AI assistant that refines poems based on user feedback. Your goal is to make the poem feel more human and emotionally resonant.

Incorporate the user's feedback while maintaining a natural, heartfelt tone. Ensure the refined poem is formatted with appropriate line breaks for readability and artistic presentation.

Original Poem: {original_poem}
Feedback: {feedback}

You MUST respond with ONLY a JSON object of this exact shape, using \\n for line breaks:
{{"refinedPoem": "..."}}"""

PHOTO_FROM_POEM_PROMPT = (
    "Generate a beautiful, artistic, and high-quality image that visually represents "
    'the mood and content of the following text: "{poem}"'
)

SHAREABLE_IMAGE_PROMPT = """Please edit the provided template image. Do not change the existing design, border, or background.
Follow these instructions precisely:
1. At the very top of the image, positioned above the decorative border, add the username: "{username}". Use a font size that is noticeably larger than the poem text. The color of this text must exactly match the color of the border.
2. Inside the bordered area, perfectly centered, place the following poem. You must adjust the font size so all the text fits neatly without overlapping the borders.

    Poem:
    {poem}

3. At the very bottom of the image, positioned below the decorative border, add the creator text: "{creator}". The color of this text must also exactly match the color of the border.

Return only the modified image."""


class GenerationServiceError(Exception):
    """Base exception for generation service errors."""
    pass


class GenerationConnectionError(GenerationServiceError):
    """Raised when the backend cannot be reached or rejects our credentials."""
    pass


class GenerationResponseError(GenerationServiceError):
    """Raised when the backend answers without the expected text or media."""
    pass


class GenerationValidationError(GenerationServiceError):
    """Raised when a request or response does not match its contract."""
    pass


def strip_attribution(text: str, attribution: str) -> str:
    """Remove a trailing attribution line, if present."""
    text = text.rstrip()
    if attribution and text.endswith(attribution):
        text = text[: -len(attribution)].rstrip()
    return text


def with_attribution(text: str, attribution: str) -> str:
    """Append the attribution line exactly once."""
    if not attribution:
        return text
    return f"{strip_attribution(text, attribution)}\n\n{attribution}"


class GenerationService:
    """
    Client for the four generation contracts.

    Requests are validated before dispatch and responses before they are
    returned, so callers only ever see well-formed contract models.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self._client = client
        if client is None and not self.settings.OPENAI_API_KEY:
            logger.warning(
                "OPENAI_API_KEY is not configured. "
                "Set it in your .env before making generation requests."
            )

    def _get_client(self) -> AsyncOpenAI:
        """Lazy-initialize the OpenAI client so the app starts without a key."""
        if self._client is not None:
            return self._client
        if not self.settings.OPENAI_API_KEY:
            raise GenerationConnectionError("OPENAI_API_KEY is not configured.")
        self._client = AsyncOpenAI(
            api_key=self.settings.OPENAI_API_KEY,
            base_url=self.settings.OPENAI_BASE_URL or None,
            timeout=self.settings.GENERATION_TIMEOUT,
            max_retries=0,
        )
        return self._client

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(model, data):
        try:
            return validate_contract(model, data)
        except ContractViolation as e:
            logger.error(f"Contract violation: {e}")
            raise GenerationValidationError(str(e)) from e

    @staticmethod
    def _translate_error(e: Exception, operation: str) -> GenerationServiceError:
        """Map an OpenAI SDK exception onto our error hierarchy."""
        if isinstance(e, (openai.APIConnectionError, openai.AuthenticationError, openai.RateLimitError)):
            return GenerationConnectionError(f"{operation}: {e}")
        if isinstance(e, openai.APIStatusError):
            return GenerationResponseError(f"{operation}: backend returned status {e.status_code}: {e.message}")
        return GenerationServiceError(f"{operation}: {e}")

    def _extract_json(self, text: str) -> Dict[str, Any]:
        """Extract a single JSON object from model output."""
        text = (text or "").strip()
        if not text:
            raise GenerationResponseError("Empty response from the text model")
        text = re.sub(r"```json\s*(.*?)\s*```", r"\1", text, flags=re.DOTALL)
        text = re.sub(r"```\s*(.*?)\s*```", r"\1", text, flags=re.DOTALL)
        text = text.strip()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
            match = re.search(r"(\{.*\})", text, re.DOTALL)
            if match:
                try:
                    data = json.loads(match.group(1))
                except json.JSONDecodeError:
                    pass
        if not isinstance(data, dict):
            raise GenerationResponseError(
                f"Could not extract a JSON object from model response: {text[:300]}..."
            )
        return data

    async def _complete_json(self, content: Any, operation: str) -> Dict[str, Any]:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.settings.TEXT_MODEL,
                messages=[{"role": "user", "content": content}],
                response_format={"type": "json_object"},
                max_tokens=1200,
            )
        except openai.OpenAIError as e:
            logger.error(f"{operation} failed: {e}")
            raise self._translate_error(e, operation) from e

        if not response.choices:
            raise GenerationResponseError(f"{operation}: no choices in response")
        return self._extract_json(response.choices[0].message.content or "")

    @staticmethod
    def _first_image_b64(response: Any, operation: str) -> str:
        data = getattr(response, "data", None) or []
        b64 = data[0].b64_json if data else None
        if not b64:
            raise GenerationResponseError(f"{operation}: image generation failed to return a data URI.")
        return b64

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    async def generate_poem_from_photo(self, request: PoemFromPhotoRequest) -> PoemFromPhotoResponse:
        """
        Write a piece in the requested literary form about a photo.

        Args:
            request: Photo data URI and text type (defaults to 'poem')

        Returns:
            PoemFromPhotoResponse: The piece, with the attribution line appended

        Raises:
            GenerationConnectionError: If the backend cannot be reached
            GenerationResponseError: If the backend returns no usable text
            GenerationValidationError: If request or output violates its schema
        """
        request = self._validate(PoemFromPhotoRequest, request)
        text_type = request.text_type.value
        logger.info(f"Generating {text_type} from photo ({len(request.photo_data_uri)} chars of data URI)")

        content = [
            {"type": "text", "text": POEM_FROM_PHOTO_PROMPT.format(text_type=text_type)},
            {"type": "image_url", "image_url": {"url": request.photo_data_uri}},
        ]
        data = await self._complete_json(content, "generate_poem_from_photo")
        output = self._validate(PoemFromPhotoResponse, data)

        poem = with_attribution(output.poem, self.settings.ATTRIBUTION)
        logger.info(f"Generated {text_type}: {len(poem)} chars")
        return PoemFromPhotoResponse(poem=poem)

    async def refine_poem(self, request: RefinePoemRequest) -> RefinePoemResponse:
        """Revise a poem according to free-text feedback, keeping its line breaks."""
        request = self._validate(RefinePoemRequest, request)
        logger.info(f"Refining poem ({len(request.original_poem)} chars) with feedback: {request.feedback[:80]}")

        prompt = REFINE_POEM_PROMPT.format(
            original_poem=strip_attribution(request.original_poem, self.settings.ATTRIBUTION),
            feedback=request.feedback,
        )
        data = await self._complete_json(prompt, "refine_poem")
        output = self._validate(RefinePoemResponse, data)

        refined = with_attribution(output.refined_poem, self.settings.ATTRIBUTION)
        return RefinePoemResponse(refined_poem=refined)

    async def generate_photo_from_poem(self, request: PhotoFromPoemRequest) -> PhotoFromPoemResponse:
        """Generate an artistic PNG capturing the mood and content of a text."""
        request = self._validate(PhotoFromPoemRequest, request)
        client = self._get_client()
        logger.info(f"Generating photo from text ({len(request.poem)} chars)")

        try:
            response = await client.images.generate(
                model=self.settings.IMAGE_MODEL,
                prompt=PHOTO_FROM_POEM_PROMPT.format(poem=request.poem),
                n=1,
                size=self.settings.IMAGE_SIZE,
                response_format="b64_json",
            )
        except openai.OpenAIError as e:
            logger.error(f"generate_photo_from_poem failed: {e}")
            raise self._translate_error(e, "generate_photo_from_poem") from e

        b64 = self._first_image_b64(response, "generate_photo_from_poem")
        return self._validate(PhotoFromPoemResponse, {"photoDataUri": f"data:image/png;base64,{b64}"})

    async def generate_shareable_image(self, request: ShareableImageRequest) -> ShareableImageResponse:
        """
        Edit a template image in place: username above the border, the poem
        centred inside it, creator text below it.
        """
        request = self._validate(ShareableImageRequest, request)
        client = self._get_client()

        try:
            _, template_bytes = await load_asset(
                request.template_image_uri,
                allowed_hosts=self.settings.template_allowed_hosts_list,
                max_bytes=self.settings.MAX_UPLOAD_BYTES,
            )
            template_png = to_png_bytes(template_bytes)
        except MediaError as e:
            raise GenerationValidationError(f"Template image is unusable: {e}") from e

        logger.info(
            f"Composing shareable image for '{request.username}' "
            f"({len(template_png)} byte template, {len(request.poem)} chars of poem)"
        )
        prompt = SHAREABLE_IMAGE_PROMPT.format(
            username=request.username,
            poem=request.poem,
            creator=request.creator,
        )
        try:
            response = await client.images.edit(
                model=self.settings.IMAGE_EDIT_MODEL,
                image=("template.png", template_png, "image/png"),
                prompt=prompt,
                n=1,
            )
        except openai.OpenAIError as e:
            logger.error(f"generate_shareable_image failed: {e}")
            raise self._translate_error(e, "generate_shareable_image") from e

        b64 = self._first_image_b64(response, "generate_shareable_image")
        return self._validate(ShareableImageResponse, {"photoDataUri": f"data:image/png;base64,{b64}"})


# Dependency injection support
_generation_service: Optional[GenerationService] = None


def get_generation_service() -> GenerationService:
    """Get the shared GenerationService instance for dependency injection."""
    global _generation_service
    if _generation_service is None:
        _generation_service = GenerationService()
    return _generation_service
