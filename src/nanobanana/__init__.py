"""MCP servers exposing image generation and raster editing as tools."""

__version__ = "0.1.0"
