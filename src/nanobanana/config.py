from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

API_KEY_ENV = "GEMINI_API_KEY"
API_KEY_HELP = "Get your API key from https://aistudio.google.com/app/apikey"

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass(frozen=True)
class GeminiConfig:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 120.0   # seconds; generation round-trips are slow

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)


def _validate(raw: dict[str, Any]) -> dict[str, Any]:
    defaults = GeminiConfig().__dict__.copy()
    merged = {**defaults, **raw}
    merged["api_key"] = str(merged.get("api_key") or "").strip()
    if not isinstance(merged["model"], str) or not merged["model"].strip():
        merged["model"] = defaults["model"]
    if not isinstance(merged["base_url"], str) or not merged["base_url"].strip():
        merged["base_url"] = defaults["base_url"]
    merged["base_url"] = merged["base_url"].rstrip("/")
    try:
        timeout = float(merged["timeout"])
    except (TypeError, ValueError):
        timeout = defaults["timeout"]
    merged["timeout"] = timeout if timeout > 0 else defaults["timeout"]
    return merged


def load_gemini_config(environ: Mapping[str, str] | None = None) -> GeminiConfig:
    """Read the generation settings from the environment.

    A missing API key is not an error here; it surfaces when a generation
    tool is first called.
    """
    env = os.environ if environ is None else environ
    raw: dict[str, Any] = {"api_key": env.get(API_KEY_ENV, "")}
    if env.get("GEMINI_MODEL"):
        raw["model"] = env["GEMINI_MODEL"]
    if env.get("GEMINI_BASE_URL"):
        raw["base_url"] = env["GEMINI_BASE_URL"]
    if env.get("GEMINI_TIMEOUT"):
        raw["timeout"] = env["GEMINI_TIMEOUT"]
    return GeminiConfig(**_validate(raw))


def log_level(environ: Mapping[str, str] | None = None) -> int:
    env = os.environ if environ is None else environ
    name = str(env.get("NANOBANANA_LOG_LEVEL", "INFO")).strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(environ: Mapping[str, str] | None = None) -> None:
    # stdout carries protocol frames, so everything goes to stderr.
    logging.basicConfig(level=log_level(environ), format=_LOG_FORMAT, stream=sys.stderr)
