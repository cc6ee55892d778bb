from ..codec import modulate
from ..directives import ImageConfig
from ..metadata import set_metadata
from .options import parse_float, parse_int


def factory(config: ImageConfig, context=None):
    """Hue rotation in degrees, saturation and brightness multipliers."""
    hue = parse_int(config.value("hue"))
    saturation = parse_float(config.value("saturation"))
    brightness = parse_float(config.value("brightness"))
    if not hue and not saturation and not brightness:
        return None

    def hsb_transform(image):
        set_metadata(image, "hue", hue)
        set_metadata(image, "saturation", saturation)
        set_metadata(image, "brightness", brightness)
        image.image = modulate(
            image.image,
            hue=hue or 0,
            saturation=saturation or 1,
            brightness=brightness or 1,
        )
        return image

    return hsb_transform
