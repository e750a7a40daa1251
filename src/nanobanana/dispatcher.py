"""Routes a tool request to its handler and frames the outcome."""
from __future__ import annotations

import logging

from .registry import ToolRegistry, ToolRequest, ToolResponse, error_response
from .tool_args import validate_arguments
from .tools.errors import ToolError

log = logging.getLogger("nanobanana.dispatcher")


class Dispatcher:
    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def handle(self, request: ToolRequest) -> ToolResponse:
        """Run one tool call.  Never raises: every failure becomes an error response."""
        tool = self.registry.get(request.name)
        if tool is None:
            log.warning("Unknown tool requested: %s", request.name)
            return error_response(f"Unknown tool: {request.name}")

        log.debug("Calling tool %s", request.name)
        try:
            args = validate_arguments(tool.descriptor, request.arguments)
            return await tool.execute(args)
        except ToolError as exc:
            log.warning("Tool %s failed: %s", request.name, exc)
            return error_response(f"Error: {exc}")
        except Exception as exc:
            log.exception("Tool %s raised unexpectedly", request.name)
            return error_response(f"Error: {exc}")
