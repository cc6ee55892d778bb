"""Public package interface for imgtools."""

from .cache import CacheOptions, FlatFileCache, ManifestCache, generate_image_id, make_cache
from .directives import ImageConfig, extract_entries, parse_url, resolve_configs
from .execution import ParallelConfig
from .output import BUILTIN_OUTPUT_FORMATS
from .pipeline import BUILTINS, apply_transforms, generate_transforms
from .plugin import ImageTools, PluginOptions
from .presets import load_preset

__all__ = [
    "BUILTINS",
    "BUILTIN_OUTPUT_FORMATS",
    "CacheOptions",
    "FlatFileCache",
    "ImageConfig",
    "ImageTools",
    "ManifestCache",
    "ParallelConfig",
    "PluginOptions",
    "apply_transforms",
    "extract_entries",
    "generate_image_id",
    "generate_transforms",
    "load_preset",
    "make_cache",
    "parse_url",
    "resolve_configs",
]
