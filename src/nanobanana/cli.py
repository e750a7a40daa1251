from __future__ import annotations

import argparse
import sys

from .mcp_server import serve


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nanobanana",
        description="MCP servers for image generation (Gemini) and local image editing (Pillow).",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser(
        "gemini",
        help=(
            "Run the Gemini image generation MCP server over stdio (default). "
            "Requires the GEMINI_API_KEY environment variable."
        ),
    )
    subparsers.add_parser(
        "canvas",
        help="Run the local image editing MCP server over stdio.",
    )
    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    if args.command in (None, "gemini"):
        serve("gemini")
        return
    if args.command == "canvas":
        serve("canvas")
        return
    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
