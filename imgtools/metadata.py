"""The per-variant image handle and its metadata record."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from PIL import Image

from . import codec

# fields embedded by cameras and editors, dropped unless metadata is kept
PRIVATE_FIELDS = ("exif", "iptc", "xmp", "tifftagPhotoshop", "icc")


@dataclass
class ImageHandle:
    """Pixels of one variant plus the record describing what was done to them.

    A handle belongs to exactly one pipeline run. Stages replace ``image``
    and write into ``metadata``; encoding happens once the stages are done.
    """

    image: Image.Image
    metadata: Dict[str, Any] = field(default_factory=dict)
    encode_options: Dict[str, Any] = field(default_factory=dict)
    keep_metadata: bool = False
    provenance: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_source(cls, source: Image.Image) -> "ImageHandle":
        meta = codec.read_metadata(source)
        provenance = {k: meta[k] for k in PRIVATE_FIELDS if k in meta}
        return cls(image=source.copy(), metadata=meta, provenance=provenance)

    def clone(self) -> "ImageHandle":
        return ImageHandle(
            image=self.image.copy(),
            metadata=dict(self.metadata),
            encode_options=dict(self.encode_options),
            keep_metadata=self.keep_metadata,
            provenance=dict(self.provenance),
        )

    def strip_metadata(self) -> None:
        for k in PRIVATE_FIELDS:
            self.metadata.pop(k, None)

    def with_metadata(self) -> "ImageHandle":
        self.keep_metadata = True
        return self

    def to_format(self, fmt: str, **options: Any) -> "ImageHandle":
        self.encode_options = {k: v for k, v in options.items() if v is not None}
        self.metadata["format"] = fmt
        return self

    @property
    def format(self) -> Optional[str]:
        return self.metadata.get("format")

    def encode(self) -> bytes:
        return codec.encode(
            self.image,
            self.format or "png",
            self.encode_options,
            self.provenance if self.keep_metadata else None,
        )


def set_metadata(handle: ImageHandle, key: str, value: Any) -> None:
    handle.metadata[key] = value


def get_metadata(handle: ImageHandle, key: str) -> Any:
    return handle.metadata.get(key)
