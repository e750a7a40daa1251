"""
Gemini-backed tools: generate, edit and composite images from text prompts.

Each handler reads its inputs, makes a single ``generateContent`` call and
writes the returned image bytes to ``outputPath``.
"""
from __future__ import annotations

import logging
from typing import Any

from ..registry import ToolDescriptor, ToolRegistry, ToolResponse, text_response
from .errors import ToolArgumentError
from .files import mime_type_for, require_input, write_bytes
from .gemini import GeminiClientProvider, image_part, text_part

log = logging.getLogger("nanobanana.generation")

ASPECT_RATIOS = ["1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9"]

# The model handles up to three reference images well; more is allowed.
RECOMMENDED_MAX_IMAGES = 3


def _aspect_ratio(description: str, default: str | None = None) -> dict[str, Any]:
    prop: dict[str, Any] = {"type": "string", "enum": ASPECT_RATIOS, "description": description}
    if default is not None:
        prop["default"] = default
    return prop


GENERATE_IMAGE = ToolDescriptor(
    name="generate_image",
    description=(
        "Generate a new image from a text prompt using Google's Gemini 2.5 Flash Image model "
        "(nanobanana). Perfect for creating photorealistic scenes, illustrations, logos, "
        "product mockups, and more."
    ),
    properties={
        "prompt": {
            "type": "string",
            "description": (
                "Detailed text description of the image to generate. Be specific about style, "
                "composition, lighting, colors, and mood."
            ),
        },
        "outputPath": {
            "type": "string",
            "description": "Path to save the generated image file (PNG format)",
        },
        "aspectRatio": _aspect_ratio("Aspect ratio for the generated image (default: 1:1)", "1:1"),
    },
    required=("prompt", "outputPath"),
)

EDIT_IMAGE = ToolDescriptor(
    name="edit_image",
    description=(
        "Edit an existing image using text prompts with Google's Gemini 2.5 Flash Image model. "
        "Add, remove, or modify elements while preserving the original style and composition."
    ),
    properties={
        "inputPath": {"type": "string", "description": "Path to the input image file"},
        "prompt": {
            "type": "string",
            "description": (
                "Detailed description of what to change, add, or remove from the image. "
                "Be specific about preserving unchanged elements."
            ),
        },
        "outputPath": {
            "type": "string",
            "description": "Path to save the edited image file (PNG format)",
        },
        "aspectRatio": _aspect_ratio("Aspect ratio for the output image (default: matches input)"),
    },
    required=("inputPath", "prompt", "outputPath"),
)

COMPOSITE_IMAGES = ToolDescriptor(
    name="composite_images",
    description=(
        "Combine multiple images into a single composition using text prompts with Google's "
        "Gemini 2.5 Flash Image model. Perfect for product mockups, style transfer, and "
        "creative collages."
    ),
    properties={
        "imagePaths": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Array of paths to input images (up to 3 images recommended)",
        },
        "prompt": {
            "type": "string",
            "description": (
                "Detailed description of how to combine the images. Reference images by their "
                "order (first, second, third)."
            ),
        },
        "outputPath": {
            "type": "string",
            "description": "Path to save the composite image file (PNG format)",
        },
        "aspectRatio": _aspect_ratio("Aspect ratio for the output image (default: 1:1)", "1:1"),
    },
    required=("imagePaths", "prompt", "outputPath"),
)


class GenerationTools:
    def __init__(self, provider: GeminiClientProvider) -> None:
        self.provider = provider

    async def generate_image(self, args: dict[str, Any]) -> ToolResponse:
        prompt = args["prompt"]
        output_path = args["outputPath"]
        aspect_ratio = args.get("aspectRatio", "1:1")

        client = self.provider.get()
        data = await client.generate_image([text_part(prompt)], aspect_ratio=aspect_ratio)
        write_bytes(output_path, data)
        log.info("Generated image written to %s (%d bytes)", output_path, len(data))
        return text_response(
            f"Generated image saved to: {output_path}\n"
            f"Aspect ratio: {aspect_ratio}\n"
            f"Prompt: {prompt}"
        )

    async def edit_image(self, args: dict[str, Any]) -> ToolResponse:
        input_path = args["inputPath"]
        prompt = args["prompt"]
        output_path = args["outputPath"]

        source = require_input(input_path)
        parts = [text_part(prompt), image_part(source.read_bytes(), mime_type_for(input_path))]
        client = self.provider.get()
        data = await client.generate_image(parts, aspect_ratio=args.get("aspectRatio"))
        write_bytes(output_path, data)
        log.info("Edited image written to %s (%d bytes)", output_path, len(data))
        return text_response(
            f"Edited image saved to: {output_path}\n"
            f"Input: {input_path}\n"
            f"Edit: {prompt}"
        )

    async def composite_images(self, args: dict[str, Any]) -> ToolResponse:
        image_paths: list[str] = args["imagePaths"]
        prompt = args["prompt"]
        output_path = args["outputPath"]

        if not image_paths:
            raise ToolArgumentError("'imagePaths' must contain at least one image")
        sources = [require_input(p) for p in image_paths]
        if len(image_paths) > RECOMMENDED_MAX_IMAGES:
            log.warning(
                "More than %d images provided (%d). Model works best with up to %d images.",
                RECOMMENDED_MAX_IMAGES, len(image_paths), RECOMMENDED_MAX_IMAGES,
            )

        client = self.provider.get()
        parts = [text_part(prompt)]
        parts.extend(image_part(src.read_bytes(), mime_type_for(p)) for src, p in zip(sources, image_paths))
        data = await client.generate_image(parts, aspect_ratio=args.get("aspectRatio", "1:1"))
        write_bytes(output_path, data)
        log.info("Composite image written to %s from %d inputs", output_path, len(sources))
        return text_response(
            f"Composite image saved to: {output_path}\n"
            f"Input images: {', '.join(image_paths)}\n"
            f"Composition: {prompt}"
        )


def build_generation_registry(provider: GeminiClientProvider) -> ToolRegistry:
    tools = GenerationTools(provider)
    registry = ToolRegistry()
    registry.register(GENERATE_IMAGE, tools.generate_image)
    registry.register(EDIT_IMAGE, tools.edit_image)
    registry.register(COMPOSITE_IMAGES, tools.composite_images)
    return registry.freeze()
