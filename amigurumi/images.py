from __future__ import annotations

import base64
import binascii
import io
import mimetypes
import re
from pathlib import Path
from typing import Tuple

from PIL import Image

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?:;[^,]*)?;base64,(?P<data>.*)$", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")

DEFAULT_MIME = "image/jpeg"


def to_data_url(data: bytes | str, mime: str) -> str:
    # some SDK versions hand back base64 text instead of raw bytes
    if isinstance(data, bytes):
        encoded = base64.b64encode(data).decode("ascii")
    else:
        encoded = data
    return f"data:{mime};base64,{encoded}"


def split_data_url(data_url: str, default_mime: str = DEFAULT_MIME) -> Tuple[str, str]:
    """Return (mime, base64 payload); a bare base64 string is accepted as-is."""
    m = _DATA_URL_RE.match(data_url or "")
    if not m:
        return default_mime, data_url or ""
    return (m.group("mime") or default_mime), m.group("data")


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """Decode an embedded image into (raw bytes, mime).

    Raises ValueError when the string is not a base64 data URL.
    """
    m = _DATA_URL_RE.match(data_url or "")
    if not m:
        raise ValueError("Invalid data URL")
    try:
        raw = base64.b64decode(_WHITESPACE.sub("", m.group("data")), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e
    return raw, m.group("mime") or ""


def extension_for(mime: str, default: str = "png") -> str:
    subtype = mime.split("/", 1)[1] if "/" in mime else ""
    return subtype or default


def image_part(data_url: str) -> dict:
    # google-generativeai accepts dict with mime_type and data bytes for images
    mime, payload = split_data_url(data_url)
    return {"mime_type": mime, "data": base64.b64decode(payload)}


def data_url_from_path(path: str | Path) -> str:
    p = Path(path)
    mime = mimetypes.guess_type(p.name)[0] or ("image/png" if p.suffix.lower() == ".png" else DEFAULT_MIME)
    return to_data_url(p.read_bytes(), mime)


def is_image_file(path: str | Path) -> bool:
    mime = mimetypes.guess_type(Path(path).name)[0] or ""
    return mime.startswith("image/")


def to_pil(data_url: str) -> Image.Image:
    raw, _ = decode_data_url(data_url)
    img = Image.open(io.BytesIO(raw))
    img.load()
    return img
