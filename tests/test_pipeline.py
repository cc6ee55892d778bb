from PIL import Image

from imgtools.directives import ImageConfig
from imgtools.metadata import set_metadata
from imgtools.pipeline import BUILTINS, apply_transforms, generate_transforms


def test_builtin_order():
    names = [f.__module__.rsplit(".", 1)[-1] for f in BUILTINS]
    assert names == [
        "blur", "flatten", "flip", "flop", "format", "grayscale", "hsb",
        "invert", "median", "normalize", "resize", "rotate", "tint",
    ]


def test_only_matching_factories_take_part():
    transforms, _ = generate_transforms(ImageConfig({"w": "10", "flip": ""}), BUILTINS)
    assert [t.__name__ for t in transforms] == ["flip_transform", "resize_transform"]


def test_no_directives_no_transforms():
    transforms, used = generate_transforms(ImageConfig({}), BUILTINS)
    assert transforms == []
    assert used == set()


def test_parameters_used_fill_while_running():
    config = ImageConfig({"w": "10", "fit": "inside", "unknown": "1"})
    transforms, used = generate_transforms(config, BUILTINS)
    assert {"w", "fit"} - used == {"fit"}
    apply_transforms(transforms, Image.new("RGB", (20, 20)))
    assert {"w", "fit"} <= used
    assert "unknown" not in used


def test_extension_factory_sees_earlier_metadata():
    seen = {}

    def record_format(config, context=None):
        if not config.flag("record"):
            return None

        def record_transform(image):
            seen["format"] = image.metadata.get("format")
            set_metadata(image, "recorded", True)
            return image

        return record_transform

    factories = list(BUILTINS) + [record_format]
    transforms, _ = generate_transforms(ImageConfig({"format": "webp", "record": ""}), factories)
    handle = apply_transforms(transforms, Image.new("RGB", (4, 4)))
    assert seen["format"] == "webp"
    assert handle.metadata["recorded"] is True


def test_source_is_not_modified():
    src = Image.new("RGB", (40, 20), "red")
    transforms, _ = generate_transforms(ImageConfig({"w": "10", "grayscale": ""}), BUILTINS)
    handle = apply_transforms(transforms, src)
    assert src.size == (40, 20)
    assert src.mode == "RGB"
    assert handle.image.size == (10, 5)


def test_identical_inputs_identical_output():
    src = Image.new("RGB", (40, 20), "red")
    config = ImageConfig({"w": "10", "format": "png"})
    a = apply_transforms(generate_transforms(config, BUILTINS)[0], src)
    b = apply_transforms(generate_transforms(config, BUILTINS)[0], src)
    assert a.metadata == b.metadata
    assert a.encode() == b.encode()
