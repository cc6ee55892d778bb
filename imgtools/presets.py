"""Default-directive presets stored as JSON objects.

A preset maps directive keys to values, e.g. ``{"w": [480, 960], "format":
"webp"}``. Lists become ``;`` separated alternatives and ``true`` marks a
flag directive, so the result can be merged under a reference's own query.
"""

import os
import json
from pathlib import Path
from typing import Dict, Iterator, Optional, Union

# Directory dei preset (env IMGTOOLS_PRESETS_DIR, default ./presets)
PRESETS_DIR = Path(os.getenv("IMGTOOLS_PRESETS_DIR", "presets"))


def _directive_value(value) -> str:
    if isinstance(value, list):
        return ";".join(str(v) for v in value)
    if value is True:
        return ""
    return str(value)


def read_preset(path: Union[str, Path]) -> Dict[str, str]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Preset {path} must be a JSON object of directives")
    return {str(k): _directive_value(v) for k, v in data.items()}


def _candidates(ref: str, presets_dir: Path) -> Iterator[Path]:
    path = Path(ref)
    if path.suffix == ".json" or path.is_absolute():
        yield path
    name = path.stem if path.suffix == ".json" else path.name
    yield presets_dir / f"{name}.json"
    # responsive@2x is a variant of responsive
    base, sep, _ = name.partition("@")
    if sep and base:
        yield presets_dir / f"{base}.json"


def load_preset(ref: str, presets_dir: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """Directives of the preset ``ref``: a JSON path or a name in ``presets_dir``."""

    directory = Path(presets_dir) if presets_dir is not None else PRESETS_DIR
    for candidate in _candidates(ref, directory):
        if candidate.is_file():
            return read_preset(candidate)
    known = sorted(p.stem for p in directory.glob("*.json"))
    raise FileNotFoundError(f"Unknown preset '{ref}' (presets in {directory}: {', '.join(known) or 'none'})")
