from ..codec import blur as _blur
from ..directives import ImageConfig
from ..metadata import set_metadata
from .options import parse_float


def factory(config: ImageConfig, context=None):
    """``blur`` takes a sigma, or no argument for a mild blur."""
    sigma = parse_float(config.value("blur")) or config.flag("blur")
    if not sigma:
        return None

    def blur_transform(image):
        set_metadata(image, "blur", sigma)
        image.image = _blur(image.image, sigma)
        return image

    return blur_transform
