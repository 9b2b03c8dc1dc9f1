from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, TypedDict


class ConceptRecord(TypedDict):
    name: str
    description: str
    colorScheme: str
    size: str
    yarn: str
    hook: str


# (attribute, wire key) pairs for the text fields of a concept
TEXT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("name", "name"),
    ("description", "description"),
    ("color_scheme", "colorScheme"),
    ("size", "size"),
    ("yarn", "yarn"),
    ("hook", "hook"),
)


class GenerationStatus(str, Enum):
    IDLE = "IDLE"
    GENERATING_CONCEPTS = "GENERATING_CONCEPTS"
    GENERATING_IMAGES = "GENERATING_IMAGES"  # reserved; image work runs under COMPLETE
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class GenerationMode(str, Enum):
    DIVERSE = "diverse"
    SPECIFIC = "specific"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Concept:
    name: str
    description: str
    color_scheme: str
    size: str
    yarn: str
    hook: str
    image_url: Optional[str] = None
    is_generating_image: bool = False
    id: str = field(default_factory=_new_id, compare=False)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Concept":
        values: Dict[str, str] = {}
        for attr, key in TEXT_FIELDS:
            raw = record.get(key, record.get(attr, ""))
            values[attr] = "" if raw is None else str(raw)
        return cls(**values)

    def to_info(self) -> ConceptRecord:
        """Metadata stored next to the image in the exported archive."""
        return {key: getattr(self, attr) for attr, key in TEXT_FIELDS}  # type: ignore[return-value]

    def with_update(self, **changes: Any) -> "Concept":
        return replace(self, **changes)


def _whole_number(value: Any) -> int:
    # sliders hand back floats such as 3.0; anything with a fraction is rejected
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Color count must be a whole number, got {value!r}") from None
    if not number.is_integer():
        raise ValueError(f"Color count must be a whole number, got {value!r}")
    return int(number)


@dataclass(frozen=True)
class GenerationInputs:
    images: Tuple[str, ...]
    color_count: int
    style: str
    mode: GenerationMode = GenerationMode.DIVERSE
    character: str = ""

    @classmethod
    def build(
        cls,
        images: List[str],
        color_count: int,
        style: str,
        mode: str | GenerationMode = GenerationMode.DIVERSE,
        character: str = "",
    ) -> "GenerationInputs":
        try:
            mode = GenerationMode(mode)
        except ValueError:
            raise ValueError(f"Unknown generation mode: {mode!r}") from None
        inputs = cls(
            images=tuple(images or ()),
            color_count=_whole_number(color_count),
            style=(style or "").strip(),
            mode=mode,
            character=(character or "").strip(),
        )
        inputs.validate()
        return inputs

    def validate(self) -> None:
        if not self.images:
            raise ValueError("At least one reference image is required")
        if self.color_count < 1:
            raise ValueError("Color count must be a positive number")
        if self.mode is GenerationMode.SPECIFIC and not self.character:
            raise ValueError("A target character is required in specific mode")


@dataclass(frozen=True)
class GenerationRun:
    status: GenerationStatus = GenerationStatus.IDLE
    inputs: Optional[GenerationInputs] = None
    concepts: Tuple[Concept, ...] = ()
    error: Optional[str] = None
    batch_id: str = field(default_factory=_new_id)

    @property
    def is_generating_images(self) -> bool:
        return any(c.is_generating_image for c in self.concepts)

    @property
    def missing_images(self) -> int:
        return sum(1 for c in self.concepts if not c.image_url)

    @property
    def summary(self) -> str:
        if self.inputs is None:
            return ""
        return (
            f"Based on {len(self.inputs.images)} references • "
            f"{self.inputs.style} theme • {self.inputs.color_count} colors"
        )

    def index_of(self, concept_id: str) -> int:
        for i, c in enumerate(self.concepts):
            if c.id == concept_id:
                return i
        return -1

    def replace_concept(self, concept_id: str, **changes: Any) -> "GenerationRun":
        """Return a run whose batch has one concept updated; unknown ids leave it unchanged."""
        idx = self.index_of(concept_id)
        if idx < 0:
            return self
        concepts = list(self.concepts)
        concepts[idx] = concepts[idx].with_update(**changes)
        return replace(self, concepts=tuple(concepts))
