"""
MCP (Model Context Protocol) servers for nanobanana.

Two servers share this transport:

- ``gemini``: generate_image, edit_image and composite_images, backed by the
  Google Gemini image model (requires ``GEMINI_API_KEY``).
- ``canvas``: create_image, draw_text, draw_rectangle, resize_image,
  apply_filter and composite_images, rendered locally with Pillow.

Protocol: JSON-RPC 2.0 over stdio (one JSON object per line).  Requests are
handled one at a time; stdout carries nothing but protocol frames and all
diagnostics go to stderr.

Usage
-----
Run directly:
    python -m nanobanana.mcp_server            # gemini
    python -m nanobanana.mcp_server canvas

Or via the CLI:
    nanobanana gemini
    nanobanana canvas

MCP client entry
----------------
{
  "mcpServers": {
    "nanobanana": {
      "command": "nanobanana-mcp",
      "env": {"GEMINI_API_KEY": "<your key>"}
    }
  }
}
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from typing import Any, TextIO

from . import __version__
from .config import API_KEY_ENV, configure_logging, load_gemini_config
from .dispatcher import Dispatcher
from .registry import ToolRegistry, ToolRequest
from .tools.canvas import build_canvas_registry
from .tools.gemini import GeminiClientProvider
from .tools.generation import build_generation_registry

log = logging.getLogger("nanobanana.mcp")

PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")
DEFAULT_PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 helpers
# ---------------------------------------------------------------------------

def _ok(request_id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _err(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


class McpServer:
    """Binds a dispatcher to newline-delimited JSON-RPC on a pair of streams."""

    def __init__(
        self,
        name: str,
        registry: ToolRegistry,
        *,
        title: str | None = None,
        out: TextIO | None = None,
    ) -> None:
        self.name = name
        self.title = title or name
        self.registry = registry.freeze()
        self.dispatcher = Dispatcher(self.registry)
        self._out = out

    def _write(self, obj: dict) -> None:
        out = self._out or sys.stdout
        out.write(json.dumps(obj) + "\n")
        out.flush()

    def server_info(self) -> dict[str, Any]:
        return {"name": self.name, "version": __version__}

    # -----------------------------------------------------------------------
    # Request handling
    # -----------------------------------------------------------------------

    async def handle_line(self, line: str) -> None:
        try:
            req = json.loads(line)
        except json.JSONDecodeError:
            self._write(_err(None, PARSE_ERROR, "Parse error"))
            return
        if not isinstance(req, dict):
            self._write(_err(None, INVALID_REQUEST, "Invalid Request"))
            return

        req_id = req.get("id")
        method = req.get("method", "")
        params = req.get("params") or {}
        if not isinstance(method, str):
            if req_id is not None:
                self._write(_err(req_id, INVALID_REQUEST, "Invalid Request"))
            return
        if not isinstance(params, dict):
            if req_id is not None:
                self._write(_err(req_id, INVALID_PARAMS, "params must be an object"))
            return
        try:
            response = await self.handle_request(method, params, req_id)
        except Exception as exc:
            log.exception("Unhandled error in %s", method)
            response = _err(req_id, INTERNAL_ERROR, f"Internal error: {exc}")
        # Notifications (no id) never get a reply.
        if response is not None and req_id is not None:
            self._write(response)

    async def handle_request(self, method: str, params: dict[str, Any], req_id: Any) -> dict | None:
        if method == "initialize":
            client_ver = params.get("protocolVersion", DEFAULT_PROTOCOL_VERSION)
            agreed_ver = client_ver if client_ver in PROTOCOL_VERSIONS else DEFAULT_PROTOCOL_VERSION
            return _ok(req_id, {
                "protocolVersion": agreed_ver,
                "capabilities": {"tools": {}},
                "serverInfo": self.server_info(),
            })

        if method.startswith("notifications/"):
            return None

        if method == "ping":
            return _ok(req_id, {})

        if method == "tools/list":
            return _ok(req_id, {"tools": [d.to_dict() for d in self.registry.list_tools()]})

        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str) or not name:
                return _err(req_id, INVALID_PARAMS, "tools/call requires a tool name")
            request = ToolRequest(name=name, arguments=params.get("arguments") or {})
            response = await self.dispatcher.handle(request)
            return _ok(req_id, response.to_dict())

        return _err(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    # -----------------------------------------------------------------------
    # Stdio loop
    # -----------------------------------------------------------------------

    def announce(self) -> None:
        # Emitted regardless of NANOBANANA_LOG_LEVEL.
        print(f"{self.title} MCP Server running on stdio", file=sys.stderr, flush=True)

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)
        self.announce()

        while True:
            line_bytes = await reader.readline()
            if not line_bytes:
                break
            line = line_bytes.decode(errors="replace").strip()
            if line:
                await self.handle_line(line)


# ---------------------------------------------------------------------------
# Server factories
# ---------------------------------------------------------------------------

def build_gemini_server(provider: GeminiClientProvider | None = None) -> McpServer:
    provider = provider or GeminiClientProvider(load_gemini_config())
    if not provider.configured:
        log.warning("%s is not set; generation tools will fail until it is provided", API_KEY_ENV)
    log.info("Using Google Gemini image model %s", provider.config.model)
    return McpServer("nanobanana-mcp", build_generation_registry(provider), title="Nanobanana")


def build_canvas_server() -> McpServer:
    return McpServer("nanobanana-canvas-mcp", build_canvas_registry(), title="Nanobanana Canvas")


SERVERS: dict[str, Callable[[], McpServer]] = {
    "gemini": build_gemini_server,
    "canvas": build_canvas_server,
}


def serve(variant: str = "gemini") -> None:
    if variant not in SERVERS:
        raise SystemExit(f"Unknown server: {variant} (choose from {', '.join(SERVERS)})")
    configure_logging()
    try:
        server = SERVERS[variant]()
        asyncio.run(server.run())
    except KeyboardInterrupt:
        pass
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def main() -> None:
    serve("gemini")


def canvas_main() -> None:
    serve("canvas")


if __name__ == "__main__":
    serve(sys.argv[1] if len(sys.argv) > 1 else "gemini")
