from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from PIL import Image

from .context import Stage, TrackedConfig, TransformContext, TransformFactory
from .directives import ImageConfig
from .metadata import ImageHandle
from .transforms import (
    blur,
    flatten,
    flip,
    flop,
    format as fmt,
    grayscale,
    hsb,
    invert,
    median,
    normalize,
    resize,
    rotate,
    tint,
)

# order matters: format runs before anything that reads the target encoding
BUILTINS: List[TransformFactory] = [
    blur.factory,
    flatten.factory,
    flip.factory,
    flop.factory,
    fmt.factory,
    grayscale.factory,
    hsb.factory,
    invert.factory,
    median.factory,
    normalize.factory,
    resize.factory,
    rotate.factory,
    tint.factory,
]


def generate_transforms(
    config: ImageConfig,
    factories: Sequence[TransformFactory],
    manual_search_params: Iterable[str] = (),
    logger: Optional[logging.Logger] = None,
) -> Tuple[List[Stage], Set[str]]:
    """Ask every factory whether it takes part for ``config``.

    The returned set holds the directive keys the stages read; it keeps
    filling while the stages run.
    """

    context = TransformContext(manual_search_params=tuple(manual_search_params))
    if logger is not None:
        context.logger = logger
    tracked = TrackedConfig(config, context)
    transforms: List[Stage] = []
    for factory in factories:
        stage = factory(tracked, context)
        if callable(stage):
            transforms.append(stage)
    return transforms, context.parameters_used


def apply_transforms(
    transforms: Sequence[Stage],
    source: Image.Image,
    remove_metadata: bool = True,
) -> ImageHandle:
    """Run ``transforms`` in order on a private copy of ``source``.

    The returned handle is not encoded yet; ``handle.metadata`` describes the
    variant it will produce.
    """

    image = ImageHandle.from_source(source)
    if remove_metadata:
        image.strip_metadata()
    else:
        image.with_metadata()

    for transform in transforms:
        image = transform(image)
    return image
