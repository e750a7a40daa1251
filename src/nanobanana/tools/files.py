from __future__ import annotations

import os
from pathlib import Path

from .errors import InputNotFoundError

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}

# Pillow format names keyed by output extension.
_SAVE_FORMATS = {
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".webp": "WEBP",
}


def mime_type_for(path: str) -> str:
    return _MIME_TYPES.get(os.path.splitext(path)[1].lower(), "image/png")


def save_format_for(path: str) -> str:
    return _SAVE_FORMATS.get(os.path.splitext(path)[1].lower(), "PNG")


def require_input(path: str) -> Path:
    p = Path(path)
    if not p.is_file():
        raise InputNotFoundError(path)
    return p


def prepare_output(path: str) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def write_bytes(path: str, data: bytes) -> Path:
    p = prepare_output(path)
    p.write_bytes(data)
    return p
