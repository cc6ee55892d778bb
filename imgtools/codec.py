"""Thin Pillow/numpy layer used by the transform stages.

Everything that touches pixels lives here, so the stages only decide *what*
to apply and this module decides *how*. Codec errors (unreadable sources,
unknown encoders) are left to propagate.
"""

from __future__ import annotations

import io
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageColor, ImageFilter, ImageOps

PIL_FORMATS = {
    "jpeg": "JPEG",
    "jpg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "avif": "AVIF",
    "gif": "GIF",
    "tiff": "TIFF",
    "tif": "TIFF",
    "heif": "HEIF",
    "heic": "HEIF",
    "jxl": "JXL",
}

KERNELS = {
    "nearest": Image.Resampling.NEAREST,
    "cubic": Image.Resampling.BICUBIC,
    # no mitchell filter in Pillow, bicubic is the closest
    "mitchell": Image.Resampling.BICUBIC,
    "lanczos2": Image.Resampling.LANCZOS,
    "lanczos3": Image.Resampling.LANCZOS,
}

CENTERING = {
    "top": (0.5, 0.0),
    "north": (0.5, 0.0),
    "right top": (1.0, 0.0),
    "northeast": (1.0, 0.0),
    "right": (1.0, 0.5),
    "east": (1.0, 0.5),
    "right bottom": (1.0, 1.0),
    "southeast": (1.0, 1.0),
    "bottom": (0.5, 1.0),
    "south": (0.5, 1.0),
    "left bottom": (0.0, 1.0),
    "southwest": (0.0, 1.0),
    "left": (0.0, 0.5),
    "west": (0.0, 0.5),
    "left top": (0.0, 0.0),
    "northwest": (0.0, 0.0),
}

# provenance fields as they appear in ``Image.info`` -> metadata record names
PROVENANCE_FIELDS = {
    "exif": "exif",
    "icc_profile": "icc",
    "xmp": "xmp",
    "iptc": "iptc",
    "photoshop": "tifftagPhotoshop",
}

_HEX = re.compile(r"[0-9a-fA-F]{3,8}")


def decode(source: Union[bytes, str, Path]) -> Image.Image:
    """Open and fully load an image from bytes or a path."""

    fp = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    img = Image.open(fp)
    img.load()
    return img


def normalize_format(fmt: Optional[str]) -> Optional[str]:
    if not fmt:
        return None
    fmt = fmt.lower()
    return "jpeg" if fmt == "jpg" else fmt


def read_metadata(img: Image.Image) -> Dict[str, Any]:
    """Intrinsic attributes of a decoded image."""

    bands = img.getbands()
    meta: Dict[str, Any] = {
        "format": normalize_format(img.format),
        "width": img.width,
        "height": img.height,
        "space": img.mode,
        "channels": len(bands),
        "hasAlpha": "A" in bands or "transparency" in img.info,
    }
    dpi = img.info.get("dpi")
    if dpi:
        meta["density"] = float(dpi[0])
    for info_key, name in PROVENANCE_FIELDS.items():
        if info_key in img.info:
            meta[name] = img.info[info_key]
    return meta


def read_file_metadata(path: Union[str, Path]) -> Dict[str, Any]:
    """Metadata of an encoded file, read from its header only."""

    with Image.open(path) as img:
        return read_metadata(img)


def mime_type(fmt: Optional[str]) -> str:
    return f"image/{normalize_format(fmt) or 'octet-stream'}"


def parse_color(color: Optional[str], mode: str = "RGBA") -> Optional[Union[int, Tuple[int, ...]]]:
    if not color:
        return None
    if _HEX.fullmatch(color):
        color = "#" + color
    return ImageColor.getcolor(color, mode)


def _split_alpha(img: Image.Image) -> Tuple[Image.Image, Optional[Image.Image]]:
    """Colour part (``L`` or ``RGB``) and alpha channel, if any."""

    if img.mode in ("RGB", "L"):
        return img, None
    if img.mode == "RGBA":
        return img.convert("RGB"), img.getchannel("A")
    if img.mode == "LA":
        return img.convert("L"), img.getchannel("A")
    if img.mode == "PA" or "transparency" in img.info:
        rgba = img.convert("RGBA")
        return rgba.convert("RGB"), rgba.getchannel("A")
    return img.convert("RGB"), None


def _from_channels(mode: str, arr: np.ndarray) -> Image.Image:
    bands = [Image.fromarray(np.ascontiguousarray(arr[..., i])) for i in range(arr.shape[-1])]
    return Image.merge(mode, bands).convert("RGB")


def _join_alpha(base: Image.Image, alpha: Optional[Image.Image]) -> Image.Image:
    if alpha is None:
        return base
    out = base.convert("LA" if base.mode == "L" else "RGBA")
    out.putalpha(alpha)
    return out


def blur(img: Image.Image, sigma: Union[float, bool]) -> Image.Image:
    if sigma is True:
        # mild 3x3 box blur, same as an argument-less blur in most toolkits
        return img.filter(ImageFilter.BoxBlur(1))
    return img.filter(ImageFilter.GaussianBlur(float(sigma)))


def flatten(img: Image.Image, background: Optional[str] = None) -> Image.Image:
    _, alpha = _split_alpha(img)
    if alpha is None:
        return img
    base = Image.new("RGBA", img.size, parse_color(background) or (0, 0, 0, 255))
    return Image.alpha_composite(base, img.convert("RGBA")).convert("RGB")


def grayscale(img: Image.Image) -> Image.Image:
    _, alpha = _split_alpha(img)
    return img.convert("LA" if alpha is not None else "L")


def modulate(img: Image.Image, hue: float = 0, saturation: float = 1, brightness: float = 1) -> Image.Image:
    rgb, alpha = _split_alpha(img)
    hsv = np.asarray(rgb.convert("RGB").convert("HSV"), dtype=np.float32).copy()
    hsv[..., 0] = np.mod(hsv[..., 0] + hue * 256.0 / 360.0, 256.0)
    hsv[..., 1] = np.clip(hsv[..., 1] * saturation, 0, 255)
    hsv[..., 2] = np.clip(hsv[..., 2] * brightness, 0, 255)
    out = _from_channels("HSV", hsv.astype(np.uint8))
    return _join_alpha(out, alpha)


def negate(img: Image.Image) -> Image.Image:
    rgb, alpha = _split_alpha(img)
    return _join_alpha(ImageOps.invert(rgb), alpha)


def median(img: Image.Image, size: int) -> Image.Image:
    if size % 2 == 0:
        size += 1
    if img.mode == "P":
        img = img.convert("RGBA")
    return img.filter(ImageFilter.MedianFilter(size))


def normalize(img: Image.Image) -> Image.Image:
    rgb, alpha = _split_alpha(img)
    return _join_alpha(ImageOps.autocontrast(rgb, cutoff=1, preserve_tone=True), alpha)


def tint(img: Image.Image, color: str) -> Image.Image:
    """Keep the luminance of ``img`` and take the chroma of ``color``."""

    rgb, alpha = _split_alpha(img)
    r, g, b = parse_color(color, "RGB")
    _, cb, cr = Image.new("RGB", (1, 1), (r, g, b)).convert("YCbCr").getpixel((0, 0))
    ycc = np.asarray(rgb.convert("RGB").convert("YCbCr"), dtype=np.uint8).copy()
    ycc[..., 1] = cb
    ycc[..., 2] = cr
    out = _from_channels("YCbCr", ycc)
    return _join_alpha(out, alpha)


def rotate(img: Image.Image, angle: int, background: Optional[str] = None) -> Image.Image:
    if img.mode == "P":
        img = img.convert("RGBA")
    fill = parse_color(background, img.mode) if background else None
    # positive angles turn clockwise, Pillow turns counter-clockwise
    return img.rotate(-angle, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=fill)


def resize(
    img: Image.Image,
    width: int,
    height: int,
    fit: Optional[str] = None,
    position: Optional[str] = None,
    kernel: Optional[str] = None,
    background: Optional[str] = None,
) -> Image.Image:
    size = (max(1, int(width)), max(1, int(height)))
    method = KERNELS.get(kernel or "", Image.Resampling.LANCZOS)
    centering = CENTERING.get(position or "", (0.5, 0.5))
    if img.mode == "P":
        img = img.convert("RGBA")
    fit = fit or "cover"
    if fit == "cover":
        return ImageOps.fit(img, size, method=method, centering=centering)
    if fit == "contain":
        color = parse_color(background, img.mode) if background else None
        return ImageOps.pad(img, size, method=method, color=color, centering=centering)
    return img.resize(size, method)


def _save_params(fmt: str, options: Dict[str, Any]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    quality = options.get("quality")
    effort = options.get("effort")
    if fmt in ("jpeg", "webp", "avif", "heif", "tiff") and quality:
        params["quality"] = quality
    if fmt == "jpeg" and options.get("progressive"):
        params["progressive"] = True
    if fmt == "png":
        if options.get("progressive"):
            params["interlace"] = 1
        if effort is not None:
            params["compress_level"] = min(9, effort)
    if fmt in ("webp", "avif", "heif", "jxl") and options.get("lossless"):
        params["lossless"] = True
    if fmt == "webp" and effort is not None:
        params["method"] = effort
    if fmt == "avif" and effort is not None:
        params["speed"] = max(0, 9 - effort)
    if fmt == "heif" and options.get("compression"):
        params["compression"] = options["compression"]
    return params


def encode(img: Image.Image, fmt: str, options: Optional[Dict[str, Any]] = None, provenance: Optional[Dict[str, Any]] = None) -> bytes:
    """Encode ``img`` to ``fmt``; ``provenance`` holds fields to embed again."""

    fmt = normalize_format(fmt) or "png"
    pil_format = PIL_FORMATS.get(fmt, fmt.upper())
    params = _save_params(fmt, options or {})
    for info_key, name in PROVENANCE_FIELDS.items():
        if provenance and provenance.get(name) is not None and info_key in ("exif", "icc_profile", "xmp"):
            params[info_key] = provenance[name]

    if pil_format == "JPEG" and img.mode not in ("RGB", "L", "CMYK"):
        img = img.convert("RGB")
    elif pil_format in ("WEBP", "AVIF", "HEIF") and img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")

    buf = io.BytesIO()
    img.save(buf, pil_format, **params)
    return buf.getvalue()
