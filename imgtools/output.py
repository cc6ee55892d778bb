"""Output formats: reduce the per-variant metadata records into one export."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence

Metadata = Dict[str, Any]
OutputFormat = Callable[[Optional[List[str]]], Callable[[List[Metadata]], Any]]


def _collapse(items: List[Any]) -> Any:
    return items[0] if len(items) == 1 else items


def metadatas_to_srcset(metadatas: Sequence[Metadata]) -> str:
    parts = []
    for meta in metadatas:
        density = meta.get("pixelDensityDescriptor")
        parts.append(f"{meta['src']} {density}" if density else f"{meta['src']} {meta['width']}w")
    return ", ".join(parts)


def get_format(meta: Metadata) -> str:
    """Format usable in a mime type."""
    if not meta.get("format"):
        raise ValueError("Could not determine image format")
    return meta["format"].replace("jpg", "jpeg")


def _largest(metadatas: Sequence[Metadata]) -> Optional[Metadata]:
    largest, size = None, 0
    for meta in metadatas:
        if meta.get("width", 0) > size:
            largest, size = meta, meta["width"]
    return largest


def _img(meta: Optional[Metadata]) -> Dict[str, Any]:
    meta = meta or {}
    return {"src": meta.get("src"), "w": meta.get("width"), "h": meta.get("height")}


def url_format(args=None):
    def fmt(metadatas):
        return _collapse([m["src"] for m in metadatas])

    return fmt


def srcset_format(args=None):
    return metadatas_to_srcset


def img_format(args=None):
    def fmt(metadatas):
        result = _img(_largest(metadatas))
        if len(metadatas) >= 2:
            result["srcset"] = metadatas_to_srcset(metadatas)
        return result

    return fmt


def picture_format(args=None):
    """``<picture>`` descriptor; the fallback format is the one listed last."""

    def fmt(metadatas):
        formats = list(dict.fromkeys(get_format(m) for m in metadatas))
        fallback = formats[-1] if formats else None
        fallback_metas = [m for m in metadatas if get_format(m) == fallback]

        groups: Dict[str, List[Metadata]] = {}
        for m in metadatas:
            f = get_format(m)
            # a lone fallback image goes into <img> only
            if f == fallback and len(fallback_metas) < 2:
                continue
            groups.setdefault(f, []).append(m)

        return {
            "sources": {f: metadatas_to_srcset(ms) for f, ms in groups.items()},
            "img": _img(_largest(fallback_metas)),
        }

    return fmt


def metadata_format(whitelist: Optional[List[str]] = None):
    def fmt(metadatas):
        result = []
        for m in metadatas:
            m = {k: v for k, v in m.items() if k != "image"}
            if whitelist:
                m = {k: v for k, v in m.items() if k in whitelist}
            result.append(m)
        return _collapse(result)

    return fmt


BUILTIN_OUTPUT_FORMATS: Dict[str, OutputFormat] = {
    "url": url_format,
    "srcset": srcset_format,
    "img": img_format,
    "picture": picture_format,
    "metadata": metadata_format,
    "meta": metadata_format,
}
