from PIL import ImageOps

from ..directives import ImageConfig
from ..metadata import set_metadata


def factory(config: ImageConfig, context=None):
    """Mirror vertically."""
    if not config.flag("flip"):
        return None

    def flip_transform(image):
        set_metadata(image, "flip", True)
        image.image = ImageOps.flip(image.image)
        return image

    return flip_transform
