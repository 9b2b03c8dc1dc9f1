from __future__ import annotations

from .config import CONCEPT_COUNT
from .state import Concept, GenerationMode, TEXT_FIELDS


CONCEPT_SYSTEM_INSTRUCTION = (
    "You are an expert amigurumi designer. You specialize in synthesizing styles from multiple "
    "references to create perfectly cohesive new collections."
)

# Structured-output shape: an array of objects with the concept text fields, all required strings
CONCEPT_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {key: {"type": "STRING"} for _, key in TEXT_FIELDS},
        "required": [key for _, key in TEXT_FIELDS],
    },
}


def build_similarity_rule() -> str:
    # Shared across modes: the references collectively define the design language
    return (
        "STRICT DESIGN RULE: 60% COLLECTIVE SIMILARITY\n"
        "Analyze ALL attached SAMPLE IMAGES. Identify the shared stylistic patterns across all of them "
        "(their collective \"Design Language\"):\n"
        "1. Stitch style and density: how the stitches look (tight, fluffy, chunky).\n"
        "2. Aesthetic soul: the shared way eyes are placed, face proportions, and general vibe "
        "(minimalist, detailed, chibi, etc.).\n"
        "3. Proportions: the signature body-to-head ratios used across the samples.\n"
        "4. Color harmony: the types of palettes usually preferred in these samples.\n"
        "Create designs that are 60% identical to this synthesized design DNA. The remaining 40% should be "
        "the unique character features or accessories of the new concepts. The resulting collection must look "
        "like it belongs to the same brand or artist portfolio as the samples."
    )


def build_concept_prompt(
    color_count: int,
    style: str,
    mode: GenerationMode = GenerationMode.DIVERSE,
    character: str = "",
) -> str:
    rule = build_similarity_rule()
    if GenerationMode(mode) is GenerationMode.SPECIFIC:
        return (
            "You are a Master Amigurumi Artist.\n"
            f"Create {CONCEPT_COUNT} unique variations of a specific character: {character}.\n\n"
            f"{rule}\n\n"
            f"THEME: \"{style}\"\n\n"
            "INSTRUCTION:\n"
            f"- The character must be a {character}, but it must inherit the \"genetic code\" synthesized "
            "from ALL provided sample images.\n"
            f"- Apply the theme \"{style}\" to these variations while keeping the {character} recognizable "
            "and stylistically consistent.\n\n"
            "Parameters:\n"
            f"- TARGET CHARACTER: {character}\n"
            f"- COLOR_COUNT: {color_count}\n\n"
            f"Return a JSON array of {CONCEPT_COUNT} items."
        )
    return (
        "You are a Master Amigurumi Artist and Brand Manager.\n"
        f"Create a collection of {CONCEPT_COUNT} distinct characters that belong to the SAME PRODUCT LINE "
        "defined by the sample images.\n\n"
        f"{rule}\n\n"
        f"THEME: \"{style}\"\n\n"
        "INSTRUCTION:\n"
        f"- All {CONCEPT_COUNT} concepts MUST strictly follow the theme: \"{style}\".\n"
        "- Even if the character changes, the crochet language must be a perfect synthesis of the provided samples.\n"
        f"- Ensure all {CONCEPT_COUNT} items look like they come from the same workshop.\n\n"
        "Parameters:\n"
        f"- COLOR_COUNT: {color_count}\n\n"
        f"Return a JSON array of {CONCEPT_COUNT} items."
    )


def build_image_prompt(concept: Concept) -> str:
    return (
        "High quality amigurumi crochet toy photography. Professional studio lighting.\n"
        f"Character: {concept.name}.\n"
        f"Details: {concept.description}.\n"
        f"Colors: {concept.color_scheme}.\n\n"
        "Style Requirements:\n"
        "- Visual consistency with a professional, handcrafted amigurumi style.\n"
        "- CLEAR crochet stitch texture (avoid smooth/plastic looks).\n"
        "- Soft matte yarn texture.\n"
        "- Neutral light background.\n"
        "- Full body shot.\n\n"
        "No text, no watermarks, no hands."
    )
