"""Adapters for the strangeness analyzer and image generation backends."""

from __future__ import annotations

import asyncio
import io
import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import httpx
from PIL import Image, ImageDraw
from pydantic import ValidationError

from review_comics.errors import (
    ContentPolicyError,
    InvalidInputError,
    PermanentServiceError,
    ServiceError,
    TransientServiceError,
    is_transient_status,
)
from review_comics.models import AnalysisResult
from review_comics.overlay import panel_boxes
from review_comics.prompting import (
    ANALYSIS_SYSTEM_PROMPT,
    build_analysis_prompt,
    build_comic_prompt,
    sanitize_narrative,
)

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_KEY_FILE = Path(".api_keys/Gemini.md")
DEFAULT_ANALYSIS_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "imagen-4.0-generate-001"

POLICY_MARKERS = ("content_policy", "contentfilter", "safety", "blocked", "responsible ai")


def resolve_gemini_api_key(key_file: Path = DEFAULT_GEMINI_KEY_FILE) -> str | None:
    """Resolve the Gemini API key from environment or fallback file.

    Resolution order:
    1. ``GEMINI_API_KEY`` environment variable.
    2. ``key_file`` plaintext contents.

    Returns:
        The non-empty API key when found, otherwise ``None``.
    """
    api_key = (os.getenv("GEMINI_API_KEY") or "").strip()
    if api_key:
        return api_key

    if key_file.exists():
        fallback_key = key_file.read_text(encoding="utf-8").strip()
        if fallback_key:
            return fallback_key

    return None


def _create_client() -> Any:
    api_key = resolve_gemini_api_key()
    if not api_key:
        raise PermanentServiceError("Missing GEMINI_API_KEY (set env var or .api_keys/Gemini.md)")

    from google import genai

    return genai.Client(api_key=api_key)


def translate_api_error(exc: Exception, description: str) -> ServiceError:
    """Classify an SDK or transport failure into the service error taxonomy."""
    if isinstance(exc, ServiceError):
        return exc
    if isinstance(exc, httpx.TransportError):
        return TransientServiceError(f"{description} transport failure: {exc}")

    status = getattr(exc, "code", None)
    if not isinstance(status, int):
        status = None
    if is_transient_status(status):
        return TransientServiceError(f"{description} failed with status {status}: {exc}")

    message = str(exc)
    if any(marker in message.lower() for marker in POLICY_MARKERS):
        return ContentPolicyError(f"{description} rejected on content policy grounds: {message}")
    return PermanentServiceError(f"{description} failed: {message}")


def _strip_json_fence(text: str) -> str:
    """Remove a surrounding Markdown JSON code fence when present."""
    fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", text, re.DOTALL)
    if fenced:
        return fenced.group(1).strip()
    return text.strip()


def parse_analysis(raw: str) -> AnalysisResult:
    """Parse analyzer output into an ``AnalysisResult``.

    Fenced JSON is tolerated. Output that is not JSON or does not satisfy the
    schema is reported as transient, because a fresh model call can fix it.

    Raises:
        TransientServiceError: If the payload cannot be parsed or validated.
    """
    candidate = _strip_json_fence(raw)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise TransientServiceError(f"Analyzer returned non-JSON output: {exc}") from exc

    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as exc:
        raise TransientServiceError(f"Analyzer output failed schema validation: {exc}") from exc


class GeminiAnalyzer:
    """Score review strangeness and write a comic narrative with a Gemini text model."""

    def __init__(self, model_name: str = DEFAULT_ANALYSIS_MODEL, temperature: float = 0.3):
        self.model_name = model_name
        self.temperature = temperature

    async def analyze(self, texts: list[str]) -> AnalysisResult:
        """Analyze review texts for strangeness.

        Raises:
            InvalidInputError: If no non-blank review text is supplied.
            TransientServiceError: On rate limits, 5xx responses, or unparseable output.
            ContentPolicyError: If the prompt is blocked by safety filters.
        """
        valid = [text for text in texts if isinstance(text, str) and text.strip()]
        if not valid:
            raise InvalidInputError("Reviews list cannot be empty")

        client = _create_client()
        from google.genai import errors, types

        try:
            response = await client.aio.models.generate_content(
                model=self.model_name,
                contents=build_analysis_prompt(valid),
                config=types.GenerateContentConfig(
                    system_instruction=ANALYSIS_SYSTEM_PROMPT,
                    temperature=self.temperature,
                    response_mime_type="application/json",
                ),
            )
        except (errors.APIError, httpx.HTTPError) as exc:
            raise translate_api_error(exc, "Strangeness analysis") from exc

        text = (getattr(response, "text", None) or "").strip()
        if not text:
            feedback = getattr(response, "prompt_feedback", None)
            if feedback is not None and getattr(feedback, "block_reason", None):
                raise ContentPolicyError(f"Analysis prompt blocked: {feedback.block_reason}")
            raise TransientServiceError("Gemini returned an empty analysis response")

        result = parse_analysis(text)
        logger.info(
            "Strangeness analysis complete: model=%s score=%d panels=%d",
            self.model_name,
            result.strangeness_score,
            result.panel_count,
        )
        return result


class GeminiImageGenerator:
    """Render a silent comic strip from a narrative with an Imagen model."""

    def __init__(self, model_name: str = DEFAULT_IMAGE_MODEL, aspect_ratio: str = "1:1"):
        self.model_name = model_name
        self.aspect_ratio = aspect_ratio

    async def generate(self, narrative: str, panel_count: int) -> bytes:
        if not narrative or not narrative.strip():
            raise InvalidInputError("Narrative cannot be empty")
        if not 1 <= panel_count <= 4:
            raise InvalidInputError("Panel count must be between 1 and 4")

        prompt = build_comic_prompt(sanitize_narrative(narrative), panel_count)
        client = _create_client()
        from google.genai import errors, types

        try:
            response = await client.aio.models.generate_images(
                model=self.model_name,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    aspect_ratio=self.aspect_ratio,
                    include_rai_reason=True,
                ),
            )
        except (errors.APIError, httpx.HTTPError) as exc:
            raise translate_api_error(exc, "Image generation") from exc

        images = list(getattr(response, "generated_images", None) or [])
        if not images:
            raise ContentPolicyError("Image generation returned no images; the prompt was likely filtered")

        first = images[0]
        reason = getattr(first, "rai_filtered_reason", None)
        image = getattr(first, "image", None)
        image_bytes = getattr(image, "image_bytes", None)
        if reason and not image_bytes:
            raise ContentPolicyError(f"Image filtered by the service: {reason}")
        if not image_bytes:
            raise TransientServiceError("Image generation returned an empty image")

        logger.info("Generated %d-panel comic image (%s): %d bytes", panel_count, self.model_name, len(image_bytes))
        return image_bytes


STRANGE_WORDS = frozenset(
    {
        "alien", "bizarre", "clown", "creepy", "cult", "dream", "ghost", "haunted",
        "mysterious", "odd", "ritual", "screaming", "strange", "surreal", "unexpected",
        "unusual", "weird", "wizard",
    }
)
WORD_RE = re.compile(r"[a-z']+")


class LocalAnalyzer:
    """Deterministic offline analyzer that scores keyword hits without external calls."""

    async def analyze(self, texts: list[str]) -> AnalysisResult:
        valid = [text.strip() for text in texts if isinstance(text, str) and text.strip()]
        if not valid:
            raise InvalidInputError("Reviews list cannot be empty")

        hits = sum(1 for text in valid for word in WORD_RE.findall(text.lower()) if word in STRANGE_WORDS)
        score = min(100, 10 + hits * 12)
        panel_count = max(1, min(4, (len(valid) + 1) // 2))

        sentences = [re.split(r"(?<=[.!?])\s+", text)[0] for text in valid[:panel_count]]
        narrative = " ".join(sentences)

        return AnalysisResult(strangeness_score=score, panel_count=panel_count, narrative=narrative)


class PlaceholderImageGenerator:
    """Draw empty bordered panels so the pipeline can run without an image model."""

    def __init__(self, size: int = 1024, background: str = "white", border: str = "black"):
        self.size = size
        self.background = background
        self.border = border

    async def generate(self, narrative: str, panel_count: int) -> bytes:
        if not 1 <= panel_count <= 4:
            raise InvalidInputError("Panel count must be between 1 and 4")
        return await asyncio.to_thread(self._draw, panel_count)

    def _draw(self, panel_count: int) -> bytes:
        image = Image.new("RGB", (self.size, self.size), self.background)
        draw = ImageDraw.Draw(image)
        for box in panel_boxes(self.size, self.size, panel_count):
            draw.rectangle(box, outline=self.border, width=6)

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()
