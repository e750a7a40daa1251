from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

import httpx

from ..config import API_KEY_ENV, API_KEY_HELP, GeminiConfig
from .errors import ConfigurationError, DelegationError

log = logging.getLogger("nanobanana.gemini")


def text_part(text: str) -> dict[str, Any]:
    return {"text": text}


def image_part(data: bytes, mime_type: str) -> dict[str, Any]:
    return {
        "inlineData": {
            "mimeType": mime_type,
            "data": base64.standard_b64encode(data).decode("ascii"),
        }
    }


class GeminiClient:
    """Minimal ``generateContent`` client returning the first generated image."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        base_url: str,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout, connect=15.0)
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as exc:
            raise DelegationError("Request to Gemini API timed out") from exc
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:300]
            raise DelegationError(
                f"HTTP {exc.response.status_code} from Gemini API: {body}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise DelegationError(f"Network error calling Gemini API: {exc}") from exc
        except ValueError as exc:
            raise DelegationError("Malformed response from Gemini API") from exc

    async def generate_image(
        self,
        parts: list[dict[str, Any]],
        *,
        aspect_ratio: str | None = None,
    ) -> bytes:
        payload: dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if aspect_ratio:
            payload["generationConfig"] = {"imageConfig": {"aspectRatio": aspect_ratio}}
        log.debug("generateContent model=%s parts=%d", self.model, len(parts))
        return extract_image(await self._request(payload))


def extract_image(response: dict[str, Any]) -> bytes:
    """Decode the first inline image of the first candidate.

    Any additional candidates or parts (text commentary, extra images) are
    ignored.
    """
    candidates = response.get("candidates") if isinstance(response, dict) else None
    if not candidates:
        raise DelegationError("No candidates returned from Gemini API")
    content = candidates[0].get("content") or {}
    parts = content.get("parts")
    if not parts:
        raise DelegationError("No content in response from Gemini API")
    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            try:
                return base64.b64decode(inline["data"], validate=True)
            except (binascii.Error, ValueError) as exc:
                raise DelegationError("Invalid image data returned from Gemini API") from exc
    raise DelegationError("No image data returned from Gemini API")


class GeminiClientProvider:
    """Holds the process-wide client, built on first use from ``config``."""

    def __init__(
        self,
        config: GeminiConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: GeminiClient | None = None

    @property
    def configured(self) -> bool:
        return self.config.has_api_key

    def get(self) -> GeminiClient:
        if self._client is None:
            if not self.config.has_api_key:
                raise ConfigurationError(f"{API_KEY_ENV} environment variable is required. {API_KEY_HELP}")
            self._client = GeminiClient(
                self.config.api_key,
                model=self.config.model,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client
