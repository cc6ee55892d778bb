from ..codec import normalize as _normalize
from ..directives import ImageConfig
from ..metadata import set_metadata


def factory(config: ImageConfig, context=None):
    """Stretch luminance to cover the full range."""
    if not config.flag("normalize"):
        return None

    def normalize_transform(image):
        set_metadata(image, "normalize", True)
        image.image = _normalize(image.image)
        return image

    return normalize_transform
