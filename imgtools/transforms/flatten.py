from ..codec import flatten as _flatten
from ..directives import ImageConfig
from ..metadata import set_metadata
from .options import get_background


def factory(config: ImageConfig, context=None):
    if not config.flag("flatten"):
        return None

    def flatten_transform(image):
        set_metadata(image, "flatten", True)
        image.image = _flatten(image.image, get_background(config, image))
        return image

    return flatten_transform
