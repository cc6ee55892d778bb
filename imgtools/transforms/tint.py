from ..codec import tint as _tint
from ..directives import ImageConfig
from ..metadata import set_metadata


def factory(config: ImageConfig, context=None):
    """``tint=ff0000`` recolours the image, keeping its luminance."""
    color = config.value("tint")
    if not color:
        return None
    color = "#" + color.lstrip("#")

    def tint_transform(image):
        set_metadata(image, "tint", color)
        image.image = _tint(image.image, color)
        return image

    return tint_transform
