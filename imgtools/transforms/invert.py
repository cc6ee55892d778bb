from ..codec import negate
from ..directives import ImageConfig
from ..metadata import set_metadata


def factory(config: ImageConfig, context=None):
    if not config.flag("invert"):
        return None

    def invert_transform(image):
        set_metadata(image, "invert", True)
        image.image = negate(image.image)
        return image

    return invert_transform
