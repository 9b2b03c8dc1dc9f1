from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest

from amigurumi.config import Settings
from amigurumi.state import Concept

# 1x1 black pixel PNG
PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mP8/xcAAwMB/ax4u6kAAAAASUVORK5CYII="
PNG_DATA_URL = f"data:image/png;base64,{PNG_B64}"


class RateLimited(Exception):
    code = 429


def make_record(i: int, name: str | None = None) -> Dict[str, str]:
    return {
        "name": name or f"Concept {i}",
        "description": f"A round little toy number {i}",
        "colorScheme": "pink, cream, brown",
        "size": "12 cm",
        "yarn": "cotton DK",
        "hook": "2.5 mm",
    }


def make_concepts(n: int = 10, names: List[str] | None = None) -> List[Concept]:
    names = names or [f"Concept {i}" for i in range(n)]
    return [Concept.from_record(make_record(i, name)) for i, name in enumerate(names)]


def text_response(payload: Any) -> SimpleNamespace:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(text=text, candidates=[])


def image_response(data: bytes | str = b"\x89PNG\r\n\x1a\n", mime: str = "image/png") -> SimpleNamespace:
    parts = [
        SimpleNamespace(text="Here is your toy", inline_data=None),
        SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data, mime_type=mime)),
    ]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


class FakeModel:
    """Stands in for genai.GenerativeModel; replays queued results (exceptions are raised)."""

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls: List[Dict[str, Any]] = []

    async def generate_content_async(self, contents, **kwargs):
        self.calls.append({"contents": contents, **kwargs})
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


class FakeClient:
    """Backend for the orchestrator: concept batches and per-concept images."""

    def __init__(self, concepts: List[Concept] | None = None) -> None:
        self.concepts = concepts if concepts is not None else make_concepts()
        self.concept_error: Exception | None = None
        self.image_errors: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.concept_calls: List[tuple] = []
        self.image_calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def generate_concepts(self, images, color_count, style, mode, character):
        self.concept_calls.append((list(images), color_count, style, mode, character))
        await asyncio.sleep(0)
        if self.concept_error is not None:
            raise self.concept_error
        # fresh records per batch, as the real backend does
        return [Concept.from_record(c.to_info()) for c in self.concepts]

    async def generate_image(self, concept: Concept) -> str:
        self.image_calls.append(concept.name)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(concept.name)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
            if concept.name in self.image_errors:
                raise self.image_errors[concept.name]
            return PNG_DATA_URL
        finally:
            self.active -= 1


@pytest.fixture
def settings() -> Settings:
    return Settings(api_key="test-key", retries=3, initial_delay=1.0)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
