from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, List

import google.generativeai as genai

from .. import prompts as _p
from ..config import CONCEPT_COUNT, Settings, load_settings
from ..errors import GenerationFailure, ImageGenerationFailure
from ..images import image_part, to_data_url
from ..state import Concept, GenerationMode, TEXT_FIELDS
from .backoff import retry_with_backoff

logger = logging.getLogger(__name__)

CONCEPT_TIMEOUT = 180
IMAGE_TIMEOUT = 120


class GeminiClient:
    """Gemini-backed concept and image generation.

    Models can be injected (anything exposing ``generate_content_async``) so the
    backend can be replaced in tests; otherwise they are built from ``settings``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        text_model: Any = None,
        image_model: Any = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self._sleep = sleep
        if text_model is None or image_model is None:
            genai.configure(api_key=settings.api_key)
        self.text_model = text_model or genai.GenerativeModel(
            settings.text_model, system_instruction=_p.CONCEPT_SYSTEM_INSTRUCTION
        )
        self.image_model = image_model or genai.GenerativeModel(settings.image_model)

    @classmethod
    def from_env(cls, **overrides) -> "GeminiClient":
        return cls(load_settings(**overrides))

    async def generate_concepts(
        self,
        images: List[str],
        color_count: int,
        style: str,
        mode: GenerationMode | str = GenerationMode.DIVERSE,
        character: str = "",
    ) -> List[Concept]:
        """Generate a batch of text-only concepts from the reference images.

        Either the full batch comes back or GenerationFailure is raised.
        """
        prompt = _p.build_concept_prompt(color_count, style, GenerationMode(mode), character)
        generation_config = {
            "response_mime_type": "application/json",
            "response_schema": _p.CONCEPT_SCHEMA,
        }
        try:
            contents: List[Any] = [image_part(img) for img in images]
            contents.append({"text": prompt})
            resp = await self.text_model.generate_content_async(
                contents,
                generation_config=generation_config,
                request_options={"timeout": CONCEPT_TIMEOUT},
            )
        except Exception as e:
            logger.error("Error generating concepts: %s", e)
            raise GenerationFailure(str(e) or type(e).__name__) from e

        text = _first_text(resp)
        if not text.strip():
            logger.error("Concept response contained no text")
            raise GenerationFailure("No text response from Gemini")
        return parse_concepts(text)

    async def generate_image(self, concept: Concept) -> str:
        """Render one concept and return it as a data URL."""
        prompt = _p.build_image_prompt(concept)

        async def _call() -> str:
            resp = await self.image_model.generate_content_async(
                prompt, request_options={"timeout": IMAGE_TIMEOUT}
            )
            return first_image_data_url(resp)

        try:
            return await retry_with_backoff(
                _call,
                retries=self.settings.retries,
                delay=self.settings.initial_delay,
                sleep=self._sleep,
            )
        except Exception as e:
            logger.error("Error generating image for concept %r: %s", concept.name, e)
            raise


def parse_concepts(text: str) -> List[Concept]:
    try:
        data = _robust_json(text)
    except ValueError as e:
        raise GenerationFailure(f"Concept response is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise GenerationFailure("Concept response is not a JSON array")
    if len(data) != CONCEPT_COUNT:
        raise GenerationFailure(f"Expected {CONCEPT_COUNT} concepts, got {len(data)}")
    concepts: List[Concept] = []
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise GenerationFailure(f"Concept {i + 1} is not an object")
        missing = [key for _, key in TEXT_FIELDS if not isinstance(item.get(key), str) or not item[key].strip()]
        if missing:
            raise GenerationFailure(f"Concept {i + 1} is missing fields: {', '.join(missing)}")
        concepts.append(Concept.from_record(item))
    return concepts


def first_image_data_url(resp: Any) -> str:
    parts = _content_parts(resp)
    if not parts:
        raise ImageGenerationFailure("No content parts in image response")
    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            mime = getattr(inline, "mime_type", None) or "image/png"
            return to_data_url(inline.data, mime)
    raise ImageGenerationFailure("No image data found in response")


def _content_parts(resp: Any) -> List[Any]:
    cands = getattr(resp, "candidates", None) or []
    if not cands:
        return []
    content = getattr(cands[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def _first_text(resp: Any) -> str:
    # resp.text raises ValueError when the candidate has no text parts
    try:
        text = getattr(resp, "text", None)
    except ValueError:
        text = None
    if text:
        return text
    for part in _content_parts(resp):
        if getattr(part, "text", None):
            return part.text
    return ""


def _robust_json(text: str) -> Any:
    # Try parse whole, then attempt to extract the outermost [...] block
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        start = text.find("[")
        end = text.rfind("]")
        if start != -1 and end > start:
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                pass
        raise ValueError(str(e)) from e

