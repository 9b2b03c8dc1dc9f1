from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()  # searches for .env in CWD/parents


CONCEPT_COUNT = 10
DEFAULT_COLOR_COUNT = 3
DEFAULT_STYLE = "Kawaii, Soft, Round"

CONCEPT_PRESETS: List[str] = [
    "Valentine's Day",
    "Amigurumi Classic",
    "Spring / Easter",
    "Christmas / Holiday",
    "Couple / Best Friend",
    "Scandinavian Minimalist",
    "Modern Art Toy",
    "Baby Concept (Newborn Safe)",
]

ARCHIVE_NAME = "Amigurumi_Concepts.zip"
UNTITLED_FOLDER = "untitled_concept"

DEFAULT_TEXT_MODEL = "gemini-3-flash-preview"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"

DEFAULT_RETRIES = 3
DEFAULT_INITIAL_DELAY = 1.0  # seconds

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


@dataclass
class Settings:
    api_key: str
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    retries: int = DEFAULT_RETRIES
    initial_delay: float = DEFAULT_INITIAL_DELAY
    output_dir: Optional[str] = None


def get_api_key() -> Optional[str]:
    key = os.getenv("GEMINI_API_KEY")
    if key:
        return key
    # Optional: read from ~/.config/gemini/api_key
    cfg_path = Path.home() / ".config" / "gemini" / "api_key"
    try:
        if cfg_path.exists():
            return cfg_path.read_text().strip() or None
    except OSError:
        return None
    return None


def load_settings(**overrides) -> Settings:
    """Build settings for a Gemini-backed session.

    The API key is the only value taken from the environment; everything else
    comes from module defaults or explicit overrides.
    """
    api_key = overrides.pop("api_key", None) or get_api_key()
    if not api_key:
        raise RuntimeError(
            "GEMINI_API_KEY is not set. Export it, add it to a .env file, "
            "or write it to ~/.config/gemini/api_key."
        )
    return Settings(api_key=api_key, **overrides)


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure and return the package-level logger."""
    logger = logging.getLogger("amigurumi")
    if logger.handlers:
        return logger

    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(handler)
    return logger
