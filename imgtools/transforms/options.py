"""Option resolvers shared by several stages.

Each resolver reads one setting from the configuration, validates it and,
when it yields a value, records that value on the handle's metadata.
Invalid values are ignored rather than rejected.
"""

from __future__ import annotations

from typing import Optional

from ..directives import ImageConfig
from ..metadata import ImageHandle, get_metadata, set_metadata

FIT_VALUES = ("cover", "contain", "fill", "inside", "outside")

KERNEL_VALUES = ("nearest", "cubic", "mitchell", "lanczos2", "lanczos3")

POSITION_VALUES = (
    "top",
    "right top",
    "right",
    "right bottom",
    "bottom",
    "left bottom",
    "left",
    "left top",
    "north",
    "northeast",
    "east",
    "southeast",
    "south",
    "southwest",
    "west",
    "northwest",
    "center",
    "centre",
    "entropy",
    "attention",
)

POSITION_SHORTHANDS = POSITION_VALUES[:8]

FORMAT_TO_EFFORT_RANGE = {
    "avif": (0, 9),
    "gif": (1, 10),
    "heif": (0, 9),
    "jxl": (3, 9),
    "png": (1, 10),
    "webp": (0, 6),
}


def parse_int(text: Optional[str]) -> Optional[int]:
    """Leading-integer parse: ``"12px"`` -> 12, ``"abc"`` -> None."""

    if not text:
        return None
    text = text.strip()
    end = 1 if text[:1] in "+-" else 0
    while end < len(text) and text[end].isdigit():
        end += 1
    digits = text[:end]
    if not digits or digits in "+-":
        return None
    return int(digits)


def parse_float(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        n = parse_int(text)
        return float(n) if n is not None else None


def _shorthand(config: ImageConfig, allowed) -> Optional[str]:
    return next((k for k in config.flag_keys() if k in allowed and config.flag(k)), None)


def get_fit(config: ImageConfig, image: ImageHandle) -> Optional[str]:
    fit = config.value("fit")
    if fit not in FIT_VALUES:
        fit = _shorthand(config, FIT_VALUES)
    if not fit:
        return None
    set_metadata(image, "fit", fit)
    return fit


def get_position(config: ImageConfig, image: ImageHandle) -> Optional[str]:
    position = config.value("position")
    if position not in POSITION_VALUES:
        position = _shorthand(config, POSITION_SHORTHANDS)
    if not position:
        return None
    set_metadata(image, "position", position)
    return position


def get_kernel(config: ImageConfig, image: ImageHandle) -> Optional[str]:
    kernel = config.value("kernel")
    if kernel not in KERNEL_VALUES:
        return None
    set_metadata(image, "kernel", kernel)
    return kernel


def get_background(config: ImageConfig, image: ImageHandle) -> Optional[str]:
    background = config.value("background")
    if not background:
        return None
    set_metadata(image, "backgroundDirective", background)
    return background


def get_quality(config: ImageConfig, image: ImageHandle) -> Optional[int]:
    quality = parse_int(config.value("quality"))
    if not quality:
        return None
    set_metadata(image, "quality", quality)
    return quality


def get_progressive(config: ImageConfig, image: ImageHandle) -> Optional[bool]:
    if not config.flag("progressive"):
        return None
    set_metadata(image, "progressive", True)
    return True


def get_lossless(config: ImageConfig, image: ImageHandle) -> Optional[bool]:
    if not config.flag("lossless"):
        return None
    set_metadata(image, "lossless", True)
    return True


def parse_effort(effort: str, fmt: str) -> Optional[int]:
    if effort in ("min", "max"):
        bounds = FORMAT_TO_EFFORT_RANGE.get(fmt)
        if bounds is None:
            return None
        return bounds[0] if effort == "min" else bounds[1]
    return parse_int(effort)


def get_effort(config: ImageConfig, image: ImageHandle) -> Optional[int]:
    """Encoder effort for the format already recorded on ``image``."""

    raw = config.value("effort")
    if not raw:
        return None
    effort = parse_effort(raw, get_metadata(image, "format") or "")
    if effort is None:
        return None
    set_metadata(image, "effort", effort)
    return effort
