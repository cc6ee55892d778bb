import json
from pathlib import Path

import pytest

from imgtools.presets import load_preset

PRESETS = Path(__file__).resolve().parents[1] / "presets"


def test_load_preset_by_name():
    preset = load_preset("responsive", PRESETS)
    assert preset == {"w": "480;960;1440", "format": "webp;jpg", "as": "picture"}


def test_alias_falls_back_to_base_name():
    assert load_preset("thumbnail@2", PRESETS)["quality"] == "70"


def test_load_preset_from_path(tmp_path):
    p = tmp_path / "custom.json"
    p.write_text(json.dumps({"w": 100, "grayscale": True}))
    assert load_preset(str(p)) == {"w": "100", "grayscale": ""}


def test_missing_preset_lists_available(tmp_path):
    (tmp_path / "one.json").write_text("{}")
    with pytest.raises(FileNotFoundError, match="one"):
        load_preset("two", tmp_path)


def test_preset_must_be_an_object(tmp_path):
    p = tmp_path / "bad.json"
    p.write_text("[1, 2]")
    with pytest.raises(ValueError):
        load_preset(str(p))


def test_unknown_preset_with_empty_dir(tmp_path):
    with pytest.raises(FileNotFoundError, match="none"):
        load_preset("responsive", tmp_path)
