"""
Gemini generation tools - exercised against an in-process httpx transport.

No network access: every test wires a ``httpx.MockTransport`` into the
client provider and inspects the outgoing ``generateContent`` payloads.
"""
from __future__ import annotations

import base64
import json
import sys
from pathlib import Path
from typing import Any

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from nanobanana.config import DEFAULT_BASE_URL, DEFAULT_MODEL, GeminiConfig, load_gemini_config, log_level
from nanobanana.dispatcher import Dispatcher
from nanobanana.registry import ToolRequest
from nanobanana.tools.errors import ConfigurationError, DelegationError
from nanobanana.tools.gemini import GeminiClientProvider, extract_image
from nanobanana.tools.generation import build_generation_registry

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-payload"


def _image_response(data: bytes = PNG_BYTES, *, with_text: bool = False) -> dict[str, Any]:
    parts: list[dict[str, Any]] = []
    if with_text:
        parts.append({"text": "Here is your image"})
    parts.append({"inlineData": {"mimeType": "image/png", "data": base64.b64encode(data).decode("ascii")}})
    return {"candidates": [{"content": {"role": "model", "parts": parts}}]}


class _FakeGemini:
    def __init__(self, status: int = 200, body: Any = None) -> None:
        self.status = status
        self.body = _image_response() if body is None else body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status, json=self.body)
        return httpx.Response(self.status, text=str(self.body))

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


def _dispatcher(fake: _FakeGemini, *, api_key: str = "test-key") -> Dispatcher:
    provider = GeminiClientProvider(GeminiConfig(api_key=api_key), transport=httpx.MockTransport(fake))
    return Dispatcher(build_generation_registry(provider))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = load_gemini_config({})
        assert cfg.api_key == ""
        assert cfg.has_api_key is False
        assert cfg.model == DEFAULT_MODEL
        assert cfg.base_url == DEFAULT_BASE_URL
        assert cfg.timeout == 120.0

    def test_environment_overrides(self) -> None:
        cfg = load_gemini_config({
            "GEMINI_API_KEY": " abc ",
            "GEMINI_MODEL": "gemini-2.5-flash-image",
            "GEMINI_BASE_URL": "http://localhost:9000/v1beta/",
            "GEMINI_TIMEOUT": "30",
        })
        assert cfg.api_key == "abc"
        assert cfg.model == "gemini-2.5-flash-image"
        assert cfg.base_url == "http://localhost:9000/v1beta"
        assert cfg.timeout == 30.0

    @pytest.mark.parametrize("raw", ["-5", "0", "soon"])
    def test_bad_timeout_falls_back(self, raw: str) -> None:
        assert load_gemini_config({"GEMINI_TIMEOUT": raw}).timeout == 120.0

    def test_log_level(self) -> None:
        assert log_level({"NANOBANANA_LOG_LEVEL": "debug"}) == 10
        assert log_level({"NANOBANANA_LOG_LEVEL": "chatty"}) == 20
        assert log_level({}) == 20


class TestProvider:
    def test_missing_key_raises_on_first_use(self) -> None:
        provider = GeminiClientProvider(GeminiConfig())
        assert provider.configured is False
        with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
            provider.get()

    def test_client_is_memoized(self) -> None:
        provider = GeminiClientProvider(GeminiConfig(api_key="k"))
        assert provider.get() is provider.get()


# ---------------------------------------------------------------------------
# Response extraction
# ---------------------------------------------------------------------------

class TestExtractImage:
    def test_first_inline_part_wins(self) -> None:
        body = _image_response(b"first", with_text=True)
        body["candidates"][0]["content"]["parts"].append(
            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(b"second").decode()}}
        )
        body["candidates"].append(_image_response(b"other-candidate")["candidates"][0])
        assert extract_image(body) == b"first"

    def test_snake_case_inline_data(self) -> None:
        body = {"candidates": [{"content": {"parts": [{"inline_data": {"data": base64.b64encode(b"x").decode()}}]}}]}
        assert extract_image(body) == b"x"

    @pytest.mark.parametrize(
        ("body", "message"),
        [
            ({}, "No candidates returned from Gemini API"),
            ({"candidates": []}, "No candidates returned from Gemini API"),
            ({"candidates": [{"finishReason": "SAFETY"}]}, "No content in response from Gemini API"),
            ({"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]}, "No image data returned from Gemini API"),
            (
                {"candidates": [{"content": {"parts": [{"inlineData": {"data": "!!not base64!!"}}]}}]},
                "Invalid image data returned from Gemini API",
            ),
        ],
    )
    def test_unusable_responses(self, body: dict, message: str) -> None:
        with pytest.raises(DelegationError, match=message):
            extract_image(body)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_image_writes_output(tmp_path: Path) -> None:
    fake = _FakeGemini()
    out = tmp_path / "nested" / "dir" / "cat.png"
    response = await _dispatcher(fake).handle(
        ToolRequest("generate_image", {"prompt": "a red circle", "outputPath": str(out), "aspectRatio": "16:9"})
    )
    assert response.is_error is False
    assert response.text == f"Generated image saved to: {out}\nAspect ratio: 16:9\nPrompt: a red circle"
    assert out.read_bytes() == PNG_BYTES

    request = fake.requests[0]
    assert request.url.path.endswith(f"/models/{DEFAULT_MODEL}:generateContent")
    assert request.headers["x-goog-api-key"] == "test-key"
    payload = fake.payloads[0]
    assert payload["contents"][0]["parts"] == [{"text": "a red circle"}]
    assert payload["generationConfig"]["imageConfig"]["aspectRatio"] == "16:9"


@pytest.mark.asyncio
async def test_generate_image_default_aspect_ratio(tmp_path: Path) -> None:
    fake = _FakeGemini()
    response = await _dispatcher(fake).handle(
        ToolRequest("generate_image", {"prompt": "p", "outputPath": str(tmp_path / "o.png")})
    )
    assert "Aspect ratio: 1:1" in response.text
    assert fake.payloads[0]["generationConfig"]["imageConfig"]["aspectRatio"] == "1:1"


@pytest.mark.asyncio
async def test_generate_image_without_key(tmp_path: Path) -> None:
    fake = _FakeGemini()
    response = await _dispatcher(fake, api_key="").handle(
        ToolRequest("generate_image", {"prompt": "a red circle", "outputPath": str(tmp_path / "out.png")})
    )
    assert response.is_error is True
    assert "GEMINI_API_KEY" in response.text
    assert fake.requests == []


@pytest.mark.asyncio
async def test_generate_image_http_error(tmp_path: Path) -> None:
    fake = _FakeGemini(status=403, body={"error": {"message": "API key not valid"}})
    out = tmp_path / "out.png"
    response = await _dispatcher(fake).handle(ToolRequest("generate_image", {"prompt": "p", "outputPath": str(out)}))
    assert response.is_error is True
    assert response.text.startswith("Error: HTTP 403 from Gemini API")
    assert "API key not valid" in response.text
    assert not out.exists()


@pytest.mark.asyncio
async def test_generate_image_no_image_in_response(tmp_path: Path) -> None:
    fake = _FakeGemini(body={"candidates": [{"content": {"parts": [{"text": "I can't draw that"}]}}]})
    response = await _dispatcher(fake).handle(
        ToolRequest("generate_image", {"prompt": "p", "outputPath": str(tmp_path / "o.png")})
    )
    assert response.text == "Error: No image data returned from Gemini API"


@pytest.mark.asyncio
async def test_network_error_is_reported(tmp_path: Path) -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = GeminiClientProvider(GeminiConfig(api_key="k"), transport=httpx.MockTransport(_refuse))
    response = await Dispatcher(build_generation_registry(provider)).handle(
        ToolRequest("generate_image", {"prompt": "p", "outputPath": str(tmp_path / "o.png")})
    )
    assert response.is_error is True
    assert "Network error calling Gemini API" in response.text


@pytest.mark.asyncio
async def test_edit_image_sends_input_inline(tmp_path: Path) -> None:
    source = tmp_path / "photo.JPG"
    source.write_bytes(b"jpeg-bytes")
    out = tmp_path / "edited.png"
    fake = _FakeGemini()
    response = await _dispatcher(fake).handle(
        ToolRequest("edit_image", {"inputPath": str(source), "prompt": "add a hat", "outputPath": str(out)})
    )
    assert response.is_error is False
    assert response.text == f"Edited image saved to: {out}\nInput: {source}\nEdit: add a hat"
    parts = fake.payloads[0]["contents"][0]["parts"]
    assert parts[0] == {"text": "add a hat"}
    assert parts[1]["inlineData"]["mimeType"] == "image/jpeg"
    assert base64.b64decode(parts[1]["inlineData"]["data"]) == b"jpeg-bytes"
    # No aspect ratio requested: output follows the input.
    assert "generationConfig" not in fake.payloads[0]


@pytest.mark.asyncio
async def test_edit_image_missing_input(tmp_path: Path) -> None:
    fake = _FakeGemini()
    missing = tmp_path / "missing.png"
    response = await _dispatcher(fake).handle(
        ToolRequest("edit_image", {"inputPath": str(missing), "prompt": "p", "outputPath": str(tmp_path / "o.png")})
    )
    assert response.is_error is True
    assert response.text == f"Error: Input file not found: {missing}"
    assert fake.requests == []


@pytest.mark.asyncio
async def test_composite_images(tmp_path: Path) -> None:
    paths = []
    for name, data in (("a.png", b"A"), ("b.webp", b"B"), ("c.unknown", b"C")):
        p = tmp_path / name
        p.write_bytes(data)
        paths.append(str(p))
    out = tmp_path / "combo.png"
    fake = _FakeGemini()
    response = await _dispatcher(fake).handle(
        ToolRequest("composite_images", {"imagePaths": paths, "prompt": "put them together", "outputPath": str(out)})
    )
    assert response.is_error is False
    assert response.text == (
        f"Composite image saved to: {out}\n"
        f"Input images: {', '.join(paths)}\n"
        f"Composition: put them together"
    )
    parts = fake.payloads[0]["contents"][0]["parts"]
    assert parts[0] == {"text": "put them together"}
    assert [p["inlineData"]["mimeType"] for p in parts[1:]] == ["image/png", "image/webp", "image/png"]
    assert out.read_bytes() == PNG_BYTES


@pytest.mark.asyncio
async def test_composite_images_warns_above_three(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    paths = []
    for i in range(4):
        p = tmp_path / f"{i}.png"
        p.write_bytes(b"x")
        paths.append(str(p))
    with caplog.at_level("WARNING", logger="nanobanana.generation"):
        response = await _dispatcher(_FakeGemini()).handle(
            ToolRequest("composite_images", {"imagePaths": paths, "prompt": "p", "outputPath": str(tmp_path / "o.png")})
        )
    assert response.is_error is False
    assert "works best with up to 3 images" in caplog.text


@pytest.mark.asyncio
async def test_composite_images_missing_input_names_path(tmp_path: Path) -> None:
    present = tmp_path / "here.png"
    present.write_bytes(b"x")
    fake = _FakeGemini()
    response = await _dispatcher(fake).handle(
        ToolRequest(
            "composite_images",
            {"imagePaths": [str(present), str(tmp_path / "gone.png")], "prompt": "p", "outputPath": str(tmp_path / "o.png")},
        )
    )
    assert response.is_error is True
    assert "gone.png" in response.text
    assert fake.requests == []


@pytest.mark.asyncio
async def test_composite_images_empty_list(tmp_path: Path) -> None:
    response = await _dispatcher(_FakeGemini()).handle(
        ToolRequest("composite_images", {"imagePaths": [], "prompt": "p", "outputPath": str(tmp_path / "o.png")})
    )
    assert response.is_error is True
    assert "at least one image" in response.text
