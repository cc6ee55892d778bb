"""Resize stage.

Directives: ``w``, ``h``, ``aspect`` (``16:9`` or ``1.777``), ``fit``,
``allowUpscale`` and ``basePixels``. The target size is computed from the
current metadata record, then the pixels are resampled once.
"""

from __future__ import annotations

import math
from typing import Optional

from ..codec import resize as _resize
from ..context import TransformContext
from ..directives import ImageConfig
from ..metadata import ImageHandle, set_metadata
from .options import get_background, get_fit, get_kernel, get_position, parse_float, parse_int


def parse_aspect(aspect: Optional[str]) -> Optional[float]:
    if not aspect:
        return None
    parts = aspect.split(":")
    if len(parts) == 1:
        ratio = parse_float(parts[0])
    elif len(parts) == 2:
        width, height = parse_int(parts[0]), parse_int(parts[1])
        if not width or not height:
            return None
        ratio = width / height
    else:
        return None
    if not ratio or ratio <= 0:
        return None
    return ratio


def format_density(width: int, base_pixels: int) -> str:
    ratio = width / base_pixels
    return f"{int(ratio) if ratio.is_integer() else ratio}x"


def target_size(
    original_width: int,
    original_height: int,
    width: Optional[int],
    height: Optional[int],
    aspect: Optional[float],
    fit: Optional[str],
):
    """Final ``(width, height, aspect)`` before the upscale check and rounding."""

    original_aspect = original_width / original_height
    final_width, final_height, final_aspect = width, height, aspect

    if aspect and not width and not height:
        # crop the dimension that is too long for the requested aspect
        if aspect > original_aspect:
            final_width = original_width
            final_height = original_width / aspect
        else:
            final_width = original_height * aspect
            final_height = original_height
    elif width and height:
        if fit == "inside":
            if width / height < original_aspect:
                final_height = width / original_aspect
            else:
                final_width = height * original_aspect
        elif fit == "outside":
            if width / height > original_aspect:
                final_height = width / original_aspect
            else:
                final_width = height * original_aspect
        final_aspect = final_width / final_height
    elif not height:
        final_aspect = aspect or original_aspect
        final_height = width / final_aspect
    else:
        final_aspect = aspect or original_aspect
        final_width = height * final_aspect

    return final_width, final_height, final_aspect


def factory(config: ImageConfig, context: Optional[TransformContext] = None):
    context = context or TransformContext()
    width = parse_int(config.value("w"))
    height = parse_int(config.value("h"))
    aspect = parse_aspect(config.value("aspect"))
    allow_upscale = config.flag("allowUpscale")
    base_pixels = parse_int(config.value("basePixels"))

    if not width and not height and not aspect:
        return None

    def resize_transform(image: ImageHandle) -> ImageHandle:
        fit = get_fit(config, image)
        original_width = image.metadata["width"]
        original_height = image.metadata["height"]

        final_width, final_height, final_aspect = target_size(
            original_width, original_height, width, height, aspect, fit
        )

        if not allow_upscale and (final_height > original_height or final_width > original_width):
            final_width = original_width
            final_height = original_height
            final_aspect = original_width / original_height
            if "w" in context.manual_search_params or "h" in context.manual_search_params:
                context.logger.info(
                    "allowUpscale not enabled. Image width, height and aspect ratio reverted to original values"
                )

        # half-up rounding
        final_width = int(math.floor(final_width + 0.5))
        final_height = int(math.floor(final_height + 0.5))

        set_metadata(image, "width", final_width)
        set_metadata(image, "height", final_height)
        set_metadata(image, "aspect", final_aspect)
        set_metadata(image, "allowUpscale", allow_upscale)
        set_metadata(
            image,
            "pixelDensityDescriptor",
            format_density(final_width, base_pixels) if base_pixels and base_pixels > 0 else None,
        )

        image.image = _resize(
            image.image,
            final_width,
            final_height,
            fit=fit,
            position=get_position(config, image),
            kernel=get_kernel(config, image),
            background=get_background(config, image),
        )
        return image

    return resize_transform
