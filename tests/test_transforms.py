import logging

import pytest
from PIL import Image

from imgtools.directives import ImageConfig
from imgtools.pipeline import BUILTINS, apply_transforms, generate_transforms
from imgtools.transforms import resize
from imgtools.transforms.options import parse_effort, parse_int


def run(config, img, manual=(), remove_metadata=True):
    transforms, _ = generate_transforms(ImageConfig(config), BUILTINS, manual)
    return apply_transforms(transforms, img, remove_metadata)


def test_aspect_only_crops_longer_side():
    img = Image.new("RGB", (1000, 500), "red")
    handle = run({"aspect": "16:9"}, img)
    m = handle.metadata
    assert m["height"] == 500
    assert m["width"] == 889
    assert m["width"] / m["height"] == pytest.approx(16 / 9, abs=0.01)
    assert handle.image.size == (889, 500)


def test_aspect_wider_than_source_keeps_width():
    img = Image.new("RGB", (1000, 500))
    m = run({"aspect": "3:1"}, img).metadata
    assert (m["width"], m["height"]) == (1000, 333)


def test_width_only_keeps_aspect():
    img = Image.new("RGB", (1000, 500))
    handle = run({"w": "500"}, img)
    assert (handle.metadata["width"], handle.metadata["height"]) == (500, 250)
    assert handle.image.size == (500, 250)


def test_height_with_explicit_aspect():
    img = Image.new("RGB", (1000, 500))
    m = run({"h": "100", "aspect": "1:1"}, img).metadata
    assert (m["width"], m["height"]) == (100, 100)


def test_fit_inside_and_outside():
    img = Image.new("RGB", (1000, 500))
    inside = run({"w": "200", "h": "200", "fit": "inside"}, img)
    assert (inside.metadata["width"], inside.metadata["height"]) == (200, 100)
    assert inside.image.size == (200, 100)
    outside = run({"w": "200", "h": "200", "outside": ""}, img).metadata
    assert (outside["width"], outside["height"]) == (400, 200)
    assert outside["fit"] == "outside"


def test_cover_crops_to_box():
    img = Image.new("RGB", (1000, 500))
    handle = run({"w": "100", "h": "100"}, img)
    assert handle.image.size == (100, 100)
    assert handle.metadata["aspect"] == 1.0


def test_upscale_guard_falls_back_to_original(caplog):
    img = Image.new("RGB", (100, 100))
    with caplog.at_level(logging.INFO, logger="imgtools"):
        handle = run({"w": "500"}, img, manual=["w"])
    m = handle.metadata
    assert (m["width"], m["height"], m["aspect"]) == (100, 100, 1.0)
    assert m["allowUpscale"] is False
    assert "allowUpscale not enabled" in caplog.text


def test_upscale_guard_is_quiet_for_default_directives(caplog):
    img = Image.new("RGB", (100, 100))
    with caplog.at_level(logging.INFO, logger="imgtools"):
        run({"w": "500"}, img, manual=[])
    assert "allowUpscale not enabled" not in caplog.text


def test_allow_upscale():
    img = Image.new("RGB", (100, 100))
    handle = run({"w": "500", "allowUpscale": "true"}, img)
    assert handle.image.size == (500, 500)


def test_base_pixels_descriptor():
    img = Image.new("RGB", (1000, 500))
    assert run({"w": "500", "basePixels": "250"}, img).metadata["pixelDensityDescriptor"] == "2x"
    assert run({"w": "500", "basePixels": "400"}, img).metadata["pixelDensityDescriptor"] == "1.25x"
    assert run({"w": "500"}, img).metadata["pixelDensityDescriptor"] is None


def test_resize_needs_a_dimension():
    assert resize.factory(ImageConfig({"fit": "cover"})) is None
    assert resize.parse_aspect("16:0") is None
    assert resize.parse_aspect("1.5") == 1.5
    assert resize.parse_aspect("-2") is None


def test_position_and_kernel_resolution():
    img = Image.new("RGB", (1000, 500))
    m = run({"w": "100", "h": "100", "left top": "", "kernel": "nearest"}, img).metadata
    assert m["position"] == "left top"
    assert m["kernel"] == "nearest"
    m = run({"w": "100", "h": "100", "position": "nowhere", "kernel": "box"}, img).metadata
    assert "position" not in m
    assert "kernel" not in m


def test_effort_resolution():
    assert parse_effort("min", "webp") == 0
    assert parse_effort("max", "png") == 10
    assert parse_effort("max", "bmp") is None
    assert parse_effort("fast", "webp") is None
    assert parse_effort("4", "webp") == 4


def test_format_stage_records_encoder_options():
    img = Image.new("RGB", (10, 10))
    handle = run({"format": "webp", "effort": "min", "quality": "80", "lossless": ""}, img)
    m = handle.metadata
    assert m["format"] == "webp"
    assert m["effort"] == 0
    assert m["quality"] == 80
    assert m["lossless"] is True
    assert handle.encode_options == {"effort": 0, "quality": 80, "lossless": True}


def test_invalid_effort_is_absent():
    img = Image.new("RGB", (10, 10))
    handle = run({"format": "png", "effort": "fast"}, img)
    assert "effort" not in handle.metadata
    assert "effort" not in handle.encode_options


def test_heif_uses_av1():
    img = Image.new("RGB", (10, 10))
    handle = run({"format": "heif"}, img)
    assert handle.encode_options["compression"] == "av1"


def test_png_encode_with_max_effort():
    img = Image.new("RGB", (10, 10), "blue")
    handle = run({"format": "png", "effort": "max"}, img)
    assert handle.metadata["effort"] == 10
    assert handle.encode().startswith(b"\x89PNG")


def test_boolean_stages():
    img = Image.new("RGB", (4, 2), "white")
    img.putpixel((0, 0), (255, 0, 0))
    handle = run({"flip": "", "flop": "true", "grayscale": "", "invert": "", "normalize": ""}, img)
    m = handle.metadata
    assert m["flip"] and m["flop"] and m["grayscale"] and m["invert"] and m["normalize"]
    assert handle.image.mode == "L"


def test_flip_moves_top_row_down():
    img = Image.new("RGB", (2, 2), "blue")
    img.putpixel((0, 0), (255, 0, 0))
    handle = run({"flip": ""}, img)
    assert handle.image.getpixel((0, 1)) == (255, 0, 0)


def test_blur_variants():
    img = Image.new("RGB", (8, 8))
    assert run({"blur": ""}, img).metadata["blur"] is True
    assert run({"blur": "2.5"}, img).metadata["blur"] == 2.5
    assert "blur" not in run({"blur": "0"}, img).metadata


def test_rotate_updates_dimensions():
    img = Image.new("RGB", (100, 50))
    handle = run({"rotate": "90"}, img)
    assert handle.metadata["rotate"] == 90
    assert (handle.metadata["width"], handle.metadata["height"]) == (50, 100)


def test_flatten_uses_background():
    img = Image.new("RGBA", (4, 4), (0, 0, 0, 0))
    handle = run({"flatten": "", "background": "ffffff"}, img)
    assert handle.image.mode == "RGB"
    assert handle.image.getpixel((0, 0)) == (255, 255, 255)
    assert handle.metadata["backgroundDirective"] == "ffffff"


def test_tint_and_hsb_record_values():
    img = Image.new("RGB", (4, 4), "gray")
    m = run({"tint": "ff0000", "hue": "90", "median": "3"}, img).metadata
    assert m["tint"] == "#ff0000"
    assert m["hue"] == 90
    assert m["saturation"] is None
    assert m["median"] == 3


def test_provenance_is_stripped_by_default():
    img = Image.new("RGB", (4, 4))
    img.info["exif"] = b"Exif\x00\x00"
    stripped = run({}, img)
    assert "exif" not in stripped.metadata
    assert stripped.keep_metadata is False
    kept = run({}, img, remove_metadata=False)
    assert kept.metadata["exif"] == b"Exif\x00\x00"
    assert kept.keep_metadata is True


def test_parse_int_is_lenient():
    assert parse_int("12px") == 12
    assert parse_int("-3") == -3
    assert parse_int("abc") is None
    assert parse_int("") is None
