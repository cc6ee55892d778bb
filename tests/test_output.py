import pytest

from imgtools.output import (
    BUILTIN_OUTPUT_FORMATS,
    img_format,
    metadata_format,
    metadatas_to_srcset,
    picture_format,
    srcset_format,
    url_format,
)


def meta(src, width, fmt="png", height=None, **extra):
    return {"src": src, "width": width, "height": height or width // 2, "format": fmt, **extra}


def test_url_collapses_single():
    assert url_format()([meta("a.png", 10)]) == "a.png"
    assert url_format()([meta("a.png", 10), meta("b.png", 20)]) == ["a.png", "b.png"]


def test_srcset_width_and_density():
    assert srcset_format()([meta("a", 100), meta("b", 200)]) == "a 100w, b 200w"
    dens = [meta("a", 100, pixelDensityDescriptor="1x"), meta("b", 200, pixelDensityDescriptor="2x")]
    assert metadatas_to_srcset(dens) == "a 1x, b 2x"


def test_img_uses_largest():
    out = img_format()([meta("a", 100), meta("b", 300, height=150), meta("c", 200)])
    assert out["src"] == "b"
    assert (out["w"], out["h"]) == (300, 150)
    assert out["srcset"] == "a 100w, b 300w, c 200w"
    assert "srcset" not in img_format()([meta("a", 100)])


def test_picture_fallback_is_last_format():
    metas = [meta("a.webp", 100, "webp"), meta("b.webp", 200, "webp"), meta("c.jpg", 200, "jpg")]
    out = picture_format()(metas)
    assert out["sources"] == {"webp": "a.webp 100w, b.webp 200w"}
    assert out["img"] == {"src": "c.jpg", "w": 200, "h": 100}


def test_picture_keeps_fallback_group_with_several_sizes():
    metas = [meta("a.avif", 100, "avif"), meta("b.png", 100), meta("c.png", 200)]
    out = picture_format()(metas)
    assert list(out["sources"]) == ["avif", "png"]
    assert out["sources"]["png"] == "b.png 100w, c.png 200w"
    assert out["img"]["src"] == "c.png"


def test_picture_needs_format():
    with pytest.raises(ValueError, match="Could not determine image format"):
        picture_format()([{"src": "a", "width": 1}])


def test_metadata_whitelist_and_image_removed():
    metas = [meta("a", 100, image=object(), quality=80)]
    out = metadata_format()(metas)
    assert "image" not in out
    assert out["quality"] == 80
    assert metadata_format(["src", "width"])(metas) == {"src": "a", "width": 100}


def test_builtin_names():
    assert set(BUILTIN_OUTPUT_FORMATS) == {"url", "srcset", "img", "picture", "metadata", "meta"}
    assert BUILTIN_OUTPUT_FORMATS["meta"] is BUILTIN_OUTPUT_FORMATS["metadata"]
