"""Build-tool integration: turn an import id into exported image data.

``ImageTools.load`` is called once per referenced asset. In ``build`` mode
every variant is emitted as a file; in ``serve`` mode variants are kept in
an in-memory registry and served by the dev server under ``base_path``.
"""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple, Union
from urllib.parse import SplitResult

from PIL import Image

from . import codec
from .cache import CacheOptions, Source, generate_image_id, local_path, make_cache
from .directives import ImageConfig, extract_entries, parse_url, resolve_configs, search_params
from .execution import ParallelConfig, map_assets
from .metadata import ImageHandle
from .metrics import VariantMetrics, measure
from .output import BUILTIN_OUTPUT_FORMATS, url_format
from .pipeline import BUILTINS, apply_transforms, generate_transforms
from .transforms.options import parse_int
from .transforms.resize import format_density

logger = logging.getLogger("imgtools")

DEFAULT_INCLUDE = r"^[^?]+\.(avif|gif|heif|jpeg|jpg|png|tiff|webp)(\?.*)?$"
DEFAULT_EXCLUDE = "public/**/*"

DefaultDirectives = Union[Mapping[str, str], Callable[[SplitResult, Callable[[], Dict[str, Any]]], Mapping[str, str]]]


@dataclass
class PluginOptions:
    include: Union[str, Pattern] = DEFAULT_INCLUDE
    exclude: Optional[str] = DEFAULT_EXCLUDE
    remove_metadata: bool = True
    default_directives: Optional[DefaultDirectives] = None
    extend_transforms: Optional[Callable[[List], List]] = None
    extend_output_formats: Optional[Callable[[Dict], Dict]] = None
    resolve_configs: Optional[Callable] = None
    cache: CacheOptions = field(default_factory=CacheOptions)
    command: str = "build"
    base: str = "/"
    server_origin: str = ""
    root: str = "."
    out_dir: str = "dist/assets"
    public_path: str = "/assets/"


@dataclass
class GeneratedImage:
    # None when the encoded variant lives in the cache at metadata["imagePath"]
    image: Optional[ImageHandle]
    metadata: Dict[str, Any]


class DirectoryEmitter:
    """Writes build assets with content-hashed names."""

    def __init__(self, out_dir: Union[str, Path], public_path: str = "/assets/"):
        self.out_dir = Path(out_dir)
        self.public_path = public_path if public_path.endswith("/") else public_path + "/"

    def emit(self, name: str, source: bytes) -> str:
        self.out_dir.mkdir(parents=True, exist_ok=True)
        stem, ext = os.path.splitext(name)
        file_name = f"{stem}-{hashlib.sha1(source).hexdigest()[:8]}{ext}"
        (self.out_dir / file_name).write_bytes(source)
        return self.public_path + file_name


def create_base_path(base: Optional[str] = None) -> str:
    return (base or "").rstrip("/") + "/@imagetools/"


def clamp_sizes(values: str, intrinsic: int) -> str:
    """Cap every ``;``-separated size at ``intrinsic``, dropping duplicates."""

    out = []
    for v in values.split(";"):
        n = parse_int(v)
        out.append(v if n is not None and n <= intrinsic else str(intrinsic))
    return ";".join(dict.fromkeys(out))


class ImageTools:
    def __init__(self, options: Optional[PluginOptions] = None, emitter=None):
        self.options = options or PluginOptions()
        opts = self.options
        self.cache = make_cache(opts.cache)
        self.transform_factories = opts.extend_transforms(list(BUILTINS)) if opts.extend_transforms else list(BUILTINS)
        self.output_formats = (
            opts.extend_output_formats(dict(BUILTIN_OUTPUT_FORMATS))
            if opts.extend_output_formats
            else dict(BUILTIN_OUTPUT_FORMATS)
        )
        self.base_path = create_base_path(opts.base)
        self.emitter = emitter or DirectoryEmitter(opts.out_dir, opts.public_path)
        self.include = re.compile(opts.include) if isinstance(opts.include, str) else opts.include
        # serve mode only; grows for the lifetime of the dev session
        self.generated_images: Dict[str, GeneratedImage] = {}
        self._lock = threading.Lock()
        # per reference id; last_metrics is only meaningful for sequential loads
        self.metrics: Dict[str, List[VariantMetrics]] = {}
        self.last_metrics: List[VariantMetrics] = []

    @property
    def serving(self) -> bool:
        return self.options.command == "serve"

    def filter(self, id: str) -> bool:
        if not self.include.search(id):
            return False
        if parse_url(id).netloc:
            # remote sources are not fetched
            return False
        if not self.options.exclude:
            return True
        path = local_path(parse_url(id), self.options.root)
        rel = os.path.relpath(path, os.path.abspath(self.options.root))
        rel = Path(rel).as_posix()
        pattern = self.options.exclude
        return not (fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(rel, pattern.replace("**/", "")))

    def _directives(self, src_url: SplitResult, lazy_metadata) -> Dict[str, str]:
        defaults = self.options.default_directives
        if callable(defaults):
            defaults = defaults(src_url, lazy_metadata)
        directives = dict(defaults or {})
        directives.update(search_params(src_url))
        return directives

    def load(self, id: str) -> Any:
        """Exported value for ``id``, or None when the id is not ours."""

        if not self.filter(id):
            return None
        src_url = parse_url(id)
        source = Source(url=src_url, root=self.options.root)
        pathname = source.path

        # load lazily: references without directives never touch the file and
        # cache hits only read its header
        lazy: Dict[str, Any] = {}

        def lazy_load_image() -> Image.Image:
            if "image" not in lazy:
                lazy["image"] = codec.decode(pathname)
            return lazy["image"]

        def lazy_load_metadata() -> Dict[str, Any]:
            if "metadata" not in lazy:
                if "image" in lazy:
                    lazy["metadata"] = codec.read_metadata(lazy["image"])
                else:
                    lazy["metadata"] = codec.read_file_metadata(pathname)
            return lazy["metadata"]

        directives = self._directives(src_url, lazy_load_metadata)
        if not directives:
            return None

        if not ImageConfig(directives).flag("allowUpscale"):
            for key, dim in (("w", "width"), ("h", "height")):
                if directives.get(key):
                    directives[key] = clamp_sizes(directives[key], lazy_load_metadata()[dim] or 0)

        entries = extract_entries(directives.items())
        resolver = self.options.resolve_configs or resolve_configs
        configs = resolver(entries, self.output_formats)
        manual = [k for k, _ in search_params(src_url)]

        metadatas = []
        metrics = []
        for config in configs:
            metadata, metr = self._generate(ImageConfig(config), lazy_load_image, source, manual)
            metadatas.append(metadata)
            metrics.append(metr)
        with self._lock:
            self.metrics[id] = metrics
            self.last_metrics = metrics

        return self._output_format(directives)(metadatas)

    def _generate(
        self, config: ImageConfig, load_image: Callable[[], Image.Image], source: Source, manual: Sequence[str]
    ):
        if self.cache is not None:
            image_id = self.cache.image_id(source, config)
        else:
            image_id = generate_image_id(source.url, config, source.read() if source.is_remote else None, source.root)

        def run():
            image: Optional[ImageHandle] = None
            data: Optional[bytes] = None
            hit = self.cache.lookup(image_id, source) if self.cache is not None else None
            if hit is not None:
                metadata = hit.metadata
                metadata["imagePath"] = str(hit.path)
                base_pixels = parse_int(config.value("basePixels"))
                if not metadata.get("pixelDensityDescriptor") and base_pixels and base_pixels > 0:
                    metadata["pixelDensityDescriptor"] = format_density(metadata["width"], base_pixels)
                return image, data, metadata, True

            transforms, _ = generate_transforms(config, self.transform_factories, manual, logger)
            handle = apply_transforms(transforms, load_image(), self.options.remove_metadata)
            metadata = handle.metadata
            path = None
            if self.cache is not None:
                data = handle.encode()
                path = self.cache.store(image_id, data, metadata, source)
            if path is not None:
                metadata["imagePath"] = str(path)
            else:
                image = handle
            return image, data, metadata, False

        (image, data, metadata, cached), metr = measure(run, image_id)
        metr.cached = cached
        logger.debug("variant %s cached=%s ms=%.1f", image_id, cached, metr.ms)

        if self.serving:
            with self._lock:
                self.generated_images[image_id] = GeneratedImage(image, metadata)
            metadata["src"] = self.options.server_origin.rstrip("/") + self.base_path + image_id
        else:
            if data is None:
                data = image.encode() if image is not None else Path(metadata["imagePath"]).read_bytes()
            name = f"{source.path.stem}.{metadata['format']}"
            metadata["src"] = self.emitter.emit(name, data)
        metadata["image"] = image
        return metadata, metr

    def _output_format(self, directives: Mapping[str, str]):
        as_param = directives.get("as")
        if as_param:
            name, _, args = as_param.partition(":")
            factory = self.output_formats.get(name)
            if factory is not None:
                return factory(args.split(";") if args else None)
            return url_format()
        for key, value in directives.items():
            if key in self.output_formats:
                return self.output_formats[key](value.split(";") if value else None)
        return url_format()

    def load_all(self, ids: Sequence[str], parallel: Optional[ParallelConfig] = None) -> Dict[str, Any]:
        results = map_assets(self.load, list(ids), parallel or ParallelConfig())
        return dict(zip(ids, results))

    def build_end(self, error: Optional[BaseException] = None) -> int:
        """Sweep stale cache entries after a successful build."""

        retention = self.options.cache.retention
        if error is not None or self.cache is None or not retention or self.serving:
            return 0
        removed = self.cache.sweep(retention)
        if removed:
            logger.debug("removed %d stale cache entries", removed)
        return removed

    def serve(self, image_id: str) -> Tuple[Union[bytes, Path], str]:
        """Bytes (or cached file path) and content type of a generated image."""

        entry = self.generated_images.get(image_id)
        if entry is None:
            raise RuntimeError(f'imgtools cannot find image with id "{image_id}" this is likely an internal error')
        if entry.image is None:
            return Path(entry.metadata["imagePath"]), codec.mime_type(entry.metadata.get("format"))
        handle = entry.image.clone()
        if not self.options.remove_metadata:
            handle.with_metadata()
        return handle.encode(), codec.mime_type(handle.format or "png")
