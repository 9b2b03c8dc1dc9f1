from __future__ import annotations

import io
import json
import logging
import re
import zipfile
from pathlib import Path
from typing import Iterable, List, Sequence

from .config import ARCHIVE_NAME, UNTITLED_FOLDER
from .errors import ExportFailure
from .images import decode_data_url, extension_for
from .state import Concept

logger = logging.getLogger(__name__)

_INVALID_CHARS = re.compile(r"[^a-z0-9\s\-_]", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def sanitize_filename(name: str) -> str:
    cleaned = _INVALID_CHARS.sub("", name)
    return _WHITESPACE.sub("_", cleaned).lower()


def folder_names(concepts: Iterable[Concept]) -> List[str]:
    """One unique folder name per concept, suffixed ``_1``, ``_2``... on collision."""
    used: set[str] = set()
    names: List[str] = []
    for concept in concepts:
        base = sanitize_filename(concept.name or "") or UNTITLED_FOLDER
        name = base
        suffix = 0
        while name in used:
            suffix += 1
            name = f"{base}_{suffix}"
        used.add(name)
        names.append(name)
    return names


def _write_image(zf: zipfile.ZipFile, folder: str, concept: Concept) -> None:
    try:
        raw, mime = decode_data_url(concept.image_url or "")
        zf.writestr(f"{folder}/image.{extension_for(mime)}", raw)
    except (ValueError, OSError, zipfile.BadZipFile) as e:
        logger.warning("Could not add image for concept %r: %s", concept.name, e)


def build_archive(concepts: Sequence[Concept]) -> bytes:
    """Zip every concept into its own folder: image.<ext> (when present) and info.json."""
    buf = io.BytesIO()
    try:
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for folder, concept in zip(folder_names(concepts), concepts):
                if concept.image_url:
                    _write_image(zf, folder, concept)
                info = json.dumps(concept.to_info(), ensure_ascii=False, indent=2)
                zf.writestr(f"{folder}/info.json", info)
    except (OSError, ValueError, zipfile.BadZipFile) as e:
        raise ExportFailure(f"Failed to create zip file: {e}") from e
    return buf.getvalue()


def write_archive(concepts: Sequence[Concept], outdir: str | Path) -> Path:
    data = build_archive(concepts)
    out = Path(outdir)
    try:
        out.mkdir(parents=True, exist_ok=True)
        dst = out / ARCHIVE_NAME
        dst.write_bytes(data)
    except OSError as e:
        raise ExportFailure(f"Failed to write {ARCHIVE_NAME}: {e}") from e
    logger.info("Exported %d concepts to %s", len(concepts), dst)
    return dst
