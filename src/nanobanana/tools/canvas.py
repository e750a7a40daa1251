"""
Local raster tools backed by Pillow.

Every tool reads zero or more images from disk, applies one operation and
writes exactly one output image.  The output encoding follows the output
file extension (``.png``, ``.jpg``/``.jpeg``, ``.webp``; anything else is
written as PNG).
"""
from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont, ImageOps

from ..registry import ToolDescriptor, ToolRegistry, ToolResponse, text_response
from .errors import ToolArgumentError, UnknownFilterError
from .files import prepare_output, require_input, save_format_for

log = logging.getLogger("nanobanana.canvas")

IMAGE_FORMATS = {"png": "PNG", "jpeg": "JPEG", "webp": "WEBP"}
FIT_MODES = ["cover", "contain", "fill", "inside", "outside"]
DEFAULT_FONT = "DejaVuSans"
_TRANSPARENT = (0, 0, 0, 0)


# ---------------------------------------------------------------------------
# Pillow helpers
# ---------------------------------------------------------------------------

def _color(value: str, field: str) -> tuple[int, ...]:
    if value.strip().lower() == "transparent":
        return _TRANSPARENT
    try:
        return ImageColor.getcolor(value, "RGBA")
    except ValueError as exc:
        raise ToolArgumentError(f"Invalid color for '{field}': {value!r}") from exc


def _open(path: str) -> Image.Image:
    source = require_input(path)
    with Image.open(source) as src:
        return src.convert("RGBA")


def _save(img: Image.Image, path: str, fmt: str | None = None) -> str:
    fmt = fmt or save_format_for(path)
    if fmt == "JPEG" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    img.save(prepare_output(path), format=fmt)
    return fmt


def _load_font(family: str, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    for candidate in (family, f"{family}.ttf"):
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    log.debug("Font %r not found, using Pillow's default font", family)
    return ImageFont.load_default(size=size)


def _overlay(img: Image.Image, paint: Callable[[ImageDraw.ImageDraw], None]) -> Image.Image:
    # Draw on a transparent layer so translucent colours blend instead of replacing pixels.
    layer = Image.new("RGBA", img.size, _TRANSPARENT)
    paint(ImageDraw.Draw(layer))
    return Image.alpha_composite(img, layer)


def _keep_alpha(img: Image.Image, op: Callable[[Image.Image], Image.Image]) -> Image.Image:
    alpha = img.getchannel("A")
    result = op(img.convert("RGB")).convert("RGBA")
    result.putalpha(alpha)
    return result


def _option(options: dict[str, Any], key: str, default: float) -> float:
    value = options.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ToolArgumentError(f"Filter option '{key}' must be a number, got {value!r}") from exc


def _summary(verb: str, path: str, img: Image.Image, fmt: str) -> str:
    return f"{verb} saved to: {path}\nSize: {img.width}×{img.height}\nFormat: {fmt}"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def _blur(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    return img.filter(ImageFilter.GaussianBlur(radius=_option(options, "sigma", 3)))


def _sharpen(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    return img.filter(ImageFilter.UnsharpMask(radius=_option(options, "sigma", 1), percent=150, threshold=3))


def _grayscale(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    return _keep_alpha(img, ImageOps.grayscale)


def _negate(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    return _keep_alpha(img, ImageOps.invert)


def _normalize(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    return _keep_alpha(img, ImageOps.autocontrast)


def _threshold(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    level = _option(options, "threshold", 128)
    return _keep_alpha(img, lambda rgb: ImageOps.grayscale(rgb).point(lambda v: 255 if v >= level else 0))


def _rotate(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    # Positive angles turn clockwise; Pillow's rotate() is counter-clockwise.
    angle = _option(options, "angle", 90)
    return img.rotate(-angle, expand=True, fillcolor=_TRANSPARENT)


def _flip(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    return ImageOps.flip(img)


def _flop(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    return ImageOps.mirror(img)


def _median(img: Image.Image, options: dict[str, Any]) -> Image.Image:
    size = int(_option(options, "size", 3))
    if size < 1 or size % 2 == 0:
        raise ToolArgumentError(f"Filter option 'size' must be a positive odd number, got {size}")
    return img.filter(ImageFilter.MedianFilter(size))


FILTERS: dict[str, Callable[[Image.Image, dict[str, Any]], Image.Image]] = {
    "blur": _blur,
    "sharpen": _sharpen,
    "grayscale": _grayscale,
    "negate": _negate,
    "normalize": _normalize,
    "threshold": _threshold,
    "rotate": _rotate,
    "flip": _flip,
    "flop": _flop,
    "median": _median,
}


# ---------------------------------------------------------------------------
# Resizing
# ---------------------------------------------------------------------------

def resized(img: Image.Image, width: int | None, height: int | None, fit: str) -> Image.Image:
    """Resize ``img`` to the requested box.

    With one dimension the other follows the aspect ratio and ``fit`` is
    ignored.  With both:

    - ``fill``: stretch to exactly width×height
    - ``cover``: scale to cover the box, cropping the overflow (centred)
    - ``contain``: scale to fit inside the box, padding with transparency
    - ``inside``: scale to fit inside the box, no padding
    - ``outside``: scale so the box fits inside the image, no cropping
    """
    src_w, src_h = img.size
    if width is None and height is None:
        raise ToolArgumentError("At least one of 'width' or 'height' is required")
    if height is None:
        return img.resize((width, max(1, round(src_h * width / src_w))), Image.LANCZOS)
    if width is None:
        return img.resize((max(1, round(src_w * height / src_h)), height), Image.LANCZOS)

    if fit == "fill":
        return img.resize((width, height), Image.LANCZOS)
    if fit == "cover":
        return ImageOps.fit(img, (width, height), method=Image.LANCZOS)
    if fit == "contain":
        return ImageOps.pad(img, (width, height), method=Image.LANCZOS, color=_TRANSPARENT)
    if fit == "inside":
        return ImageOps.contain(img, (width, height), method=Image.LANCZOS)
    if fit == "outside":
        scale = max(width / src_w, height / src_h)
        return img.resize((max(1, round(src_w * scale)), max(1, round(src_h * scale))), Image.LANCZOS)
    raise ToolArgumentError(f"Unknown fit mode: {fit}")


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

def _path(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


_OUTPUT_PATH = _path("Path to save the output image (.png, .jpg, .jpeg or .webp)")

CREATE_IMAGE = ToolDescriptor(
    name="create_image",
    description="Create a new blank image filled with a background color.",
    properties={
        "width": {"type": "integer", "minimum": 1, "description": "Image width in pixels"},
        "height": {"type": "integer", "minimum": 1, "description": "Image height in pixels"},
        "backgroundColor": {
            "type": "string",
            "description": "Background color (CSS color, hex or 'transparent'; default: #ffffff)",
            "default": "#ffffff",
        },
        "format": {
            "type": "string",
            "enum": list(IMAGE_FORMATS),
            "description": "Output image format (default: png)",
            "default": "png",
        },
        "outputPath": _path("Path to save the created image"),
    },
    required=("width", "height", "outputPath"),
)

DRAW_TEXT = ToolDescriptor(
    name="draw_text",
    description=(
        "Draw text onto an existing image, or onto a new white canvas of width×height when "
        "no inputPath is given."
    ),
    properties={
        "inputPath": _path("Optional path to the image to draw on"),
        "outputPath": _OUTPUT_PATH,
        "text": {"type": "string", "description": "Text to draw (newlines start new lines)"},
        "x": {"type": "number", "description": "X coordinate of the text's top-left corner (default: 0)", "default": 0},
        "y": {"type": "number", "description": "Y coordinate of the text's top-left corner (default: 0)", "default": 0},
        "fontSize": {"type": "number", "minimum": 1, "description": "Font size in pixels (default: 24)", "default": 24},
        "fontFamily": {
            "type": "string",
            "description": "Font family name or path to a .ttf/.otf file (default: DejaVuSans)",
            "default": DEFAULT_FONT,
        },
        "color": {"type": "string", "description": "Text color (default: #000000)", "default": "#000000"},
        "width": {
            "type": "integer",
            "minimum": 1,
            "description": "Canvas width when creating a new image (default: 800)",
            "default": 800,
        },
        "height": {
            "type": "integer",
            "minimum": 1,
            "description": "Canvas height when creating a new image (default: 600)",
            "default": 600,
        },
    },
    required=("outputPath", "text"),
)

DRAW_RECTANGLE = ToolDescriptor(
    name="draw_rectangle",
    description="Draw a filled and/or outlined rectangle onto an image.",
    properties={
        "inputPath": _path("Path to the image to draw on"),
        "outputPath": _OUTPUT_PATH,
        "x": {"type": "number", "description": "X coordinate of the top-left corner"},
        "y": {"type": "number", "description": "Y coordinate of the top-left corner"},
        "width": {"type": "number", "minimum": 1, "description": "Rectangle width in pixels"},
        "height": {"type": "number", "minimum": 1, "description": "Rectangle height in pixels"},
        "fillColor": {"type": "string", "description": "Fill color (omit for no fill)"},
        "strokeColor": {"type": "string", "description": "Outline color (omit for no outline)"},
        "lineWidth": {"type": "integer", "minimum": 1, "description": "Outline width in pixels (default: 1)", "default": 1},
    },
    required=("inputPath", "outputPath", "x", "y", "width", "height"),
)

RESIZE_IMAGE = ToolDescriptor(
    name="resize_image",
    description=(
        "Resize an image. Give width, height or both; with a single dimension the aspect "
        "ratio is preserved."
    ),
    properties={
        "inputPath": _path("Path to the input image"),
        "outputPath": _OUTPUT_PATH,
        "width": {"type": "integer", "minimum": 1, "description": "Target width in pixels"},
        "height": {"type": "integer", "minimum": 1, "description": "Target height in pixels"},
        "fit": {
            "type": "string",
            "enum": FIT_MODES,
            "description": "How to fit the image when both dimensions are given (default: cover)",
            "default": "cover",
        },
    },
    required=("inputPath", "outputPath"),
)

APPLY_FILTER = ToolDescriptor(
    name="apply_filter",
    description=(
        "Apply a filter to an image: blur, sharpen, grayscale, negate, normalize, threshold, "
        "rotate, flip, flop or median."
    ),
    properties={
        "inputPath": _path("Path to the input image"),
        "outputPath": _OUTPUT_PATH,
        "filter": {"type": "string", "description": f"Filter to apply: {', '.join(FILTERS)}"},
        "options": {
            "type": "object",
            "description": (
                "Filter options: sigma (blur, sharpen), threshold (threshold, 0-255), "
                "angle (rotate, degrees clockwise), size (median, odd)"
            ),
        },
    },
    required=("inputPath", "outputPath", "filter"),
)

COMPOSITE_IMAGES = ToolDescriptor(
    name="composite_images",
    description="Place an overlay image on top of a background image at the given offset.",
    properties={
        "backgroundPath": _path("Path to the background image"),
        "overlayPath": _path("Path to the overlay image"),
        "outputPath": _OUTPUT_PATH,
        "x": {"type": "integer", "description": "Overlay X offset (default: 0)", "default": 0},
        "y": {"type": "integer", "description": "Overlay Y offset (default: 0)", "default": 0},
    },
    required=("backgroundPath", "overlayPath", "outputPath"),
)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def create_image(args: dict[str, Any]) -> ToolResponse:
    output_path = args["outputPath"]
    background = _color(args["backgroundColor"], "backgroundColor")
    img = Image.new("RGBA", (args["width"], args["height"]), background)
    fmt = _save(img, output_path, IMAGE_FORMATS[args["format"]])
    return text_response(_summary("Image", output_path, img, fmt))


async def draw_text(args: dict[str, Any]) -> ToolResponse:
    output_path = args["outputPath"]
    color = _color(args["color"], "color")
    if args.get("inputPath"):
        img = _open(args["inputPath"])
    else:
        img = Image.new("RGBA", (args["width"], args["height"]), (255, 255, 255, 255))
    font = _load_font(args["fontFamily"], max(1, round(args["fontSize"])))
    img = _overlay(img, lambda draw: draw.text((args["x"], args["y"]), args["text"], fill=color, font=font))
    fmt = _save(img, output_path)
    return text_response(_summary("Text image", output_path, img, fmt) + f"\nText: {args['text']}")


async def draw_rectangle(args: dict[str, Any]) -> ToolResponse:
    output_path = args["outputPath"]
    fill = _color(args["fillColor"], "fillColor") if args.get("fillColor") else None
    stroke = _color(args["strokeColor"], "strokeColor") if args.get("strokeColor") else None
    if fill is None and stroke is None:
        fill = (0, 0, 0, 255)
    img = _open(args["inputPath"])
    x, y = args["x"], args["y"]
    box = [x, y, x + args["width"] - 1, y + args["height"] - 1]
    img = _overlay(img, lambda draw: draw.rectangle(box, fill=fill, outline=stroke, width=args["lineWidth"]))
    fmt = _save(img, output_path)
    return text_response(_summary("Rectangle image", output_path, img, fmt))


async def resize_image(args: dict[str, Any]) -> ToolResponse:
    output_path = args["outputPath"]
    width, height = args.get("width"), args.get("height")
    if width is None and height is None:
        raise ToolArgumentError("At least one of 'width' or 'height' is required")
    img = _open(args["inputPath"])
    original = img.size
    img = resized(img, width, height, args["fit"])
    fmt = _save(img, output_path)
    return text_response(
        _summary("Resized image", output_path, img, fmt)
        + f"\nOriginal size: {original[0]}×{original[1]}"
    )


async def apply_filter(args: dict[str, Any]) -> ToolResponse:
    output_path = args["outputPath"]
    name = args["filter"]
    op = FILTERS.get(name)
    if op is None:
        raise UnknownFilterError(name)
    img = op(_open(args["inputPath"]), args.get("options") or {})
    fmt = _save(img, output_path)
    return text_response(_summary("Filtered image", output_path, img, fmt) + f"\nFilter: {name}")


async def composite_images(args: dict[str, Any]) -> ToolResponse:
    output_path = args["outputPath"]
    background = _open(args["backgroundPath"])
    overlay = _open(args["overlayPath"])
    layer = Image.new("RGBA", background.size, _TRANSPARENT)
    layer.paste(overlay, (args["x"], args["y"]))
    img = Image.alpha_composite(background, layer)
    fmt = _save(img, output_path)
    return text_response(
        _summary("Composite image", output_path, img, fmt)
        + f"\nBackground: {os.path.basename(args['backgroundPath'])}"
        + f"\nOverlay: {os.path.basename(args['overlayPath'])} at ({args['x']}, {args['y']})"
    )


def build_canvas_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(CREATE_IMAGE, create_image)
    registry.register(DRAW_TEXT, draw_text)
    registry.register(DRAW_RECTANGLE, draw_rectangle)
    registry.register(RESIZE_IMAGE, resize_image)
    registry.register(APPLY_FILTER, apply_filter)
    registry.register(COMPOSITE_IMAGES, composite_images)
    return registry.freeze()
