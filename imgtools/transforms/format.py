from ..directives import ImageConfig
from .options import get_effort, get_lossless, get_progressive, get_quality


def factory(config: ImageConfig, context=None):
    fmt = config.value("format")
    if not fmt:
        return None

    def format_transform(image):
        # recorded first, effort ranges depend on it
        image.metadata["format"] = fmt
        return image.to_format(
            fmt,
            compression="av1" if fmt == "heif" else None,
            effort=get_effort(config, image),
            lossless=get_lossless(config, image),
            progressive=get_progressive(config, image),
            quality=get_quality(config, image),
        )

    return format_transform
