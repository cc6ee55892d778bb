from ..codec import rotate as _rotate
from ..directives import ImageConfig
from ..metadata import set_metadata
from .options import get_background, parse_int


def factory(config: ImageConfig, context=None):
    angle = parse_int(config.value("rotate"))
    if not angle:
        return None

    def rotate_transform(image):
        set_metadata(image, "rotate", angle)
        image.image = _rotate(image.image, angle, get_background(config, image))
        # the canvas grows to fit the rotated image
        set_metadata(image, "width", image.image.width)
        set_metadata(image, "height", image.image.height)
        return image

    return rotate_transform
