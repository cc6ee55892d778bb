from ..codec import median as _median
from ..directives import ImageConfig
from ..metadata import set_metadata
from .options import parse_int


def factory(config: ImageConfig, context=None):
    size = parse_int(config.value("median"))
    if not size or size < 1:
        return None

    def median_transform(image):
        set_metadata(image, "median", size)
        image.image = _median(image.image, size)
        return image

    return median_transform
