from ..codec import grayscale as _grayscale
from ..directives import ImageConfig
from ..metadata import set_metadata


def factory(config: ImageConfig, context=None):
    if not config.flag("grayscale"):
        return None

    def grayscale_transform(image):
        set_metadata(image, "grayscale", True)
        image.image = _grayscale(image.image)
        return image

    return grayscale_transform
