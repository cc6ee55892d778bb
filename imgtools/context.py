from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Set, Tuple

from .directives import ImageConfig
from .metadata import ImageHandle

logger = logging.getLogger("imgtools")

Stage = Callable[[ImageHandle], ImageHandle]


@dataclass
class TransformContext:
    """What a factory may know besides its own configuration."""

    # keys the author wrote in the reference, before defaults were merged in
    manual_search_params: Tuple[str, ...] = ()
    logger: logging.Logger = logger
    parameters_used: Set[str] = field(default_factory=set)

    def use_param(self, key: str) -> None:
        self.parameters_used.add(key)


class TrackedConfig(ImageConfig):
    """An :class:`ImageConfig` that reports every key a stage reads."""

    def __init__(self, config: ImageConfig, context: TransformContext):
        super().__init__(config)
        self._context = context

    def value(self, key: str) -> Optional[str]:
        if key in self:
            self._context.use_param(key)
        return super().value(key)

    def flag(self, key: str) -> bool:
        if key in self:
            self._context.use_param(key)
        return super().flag(key)


TransformFactory = Callable[[ImageConfig, TransformContext], Optional[Stage]]
