from PIL import ImageOps

from ..directives import ImageConfig
from ..metadata import set_metadata


def factory(config: ImageConfig, context=None):
    """Mirror horizontally."""
    if not config.flag("flop"):
        return None

    def flop_transform(image):
        set_metadata(image, "flop", True)
        image.image = ImageOps.mirror(image.image)
        return image

    return flop_transform
