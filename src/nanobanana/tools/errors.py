from __future__ import annotations


class ToolError(RuntimeError):
    """Base class for failures a tool reports back to the caller."""


class ConfigurationError(ToolError):
    pass


class ToolArgumentError(ToolError):
    pass


class InputNotFoundError(ToolError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Input file not found: {path}")
        self.path = path


class UnknownFilterError(ToolError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown filter: {name}")
        self.name = name


class DelegationError(ToolError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
