from __future__ import annotations

"""Running many asset loads side by side."""

from dataclasses import dataclass
import concurrent.futures as cf
from typing import Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ParallelConfig:
    """Configuration for parallel execution.

    Attributes
    ----------
    max_parallel_assets:
        Maximum number of source assets loaded at the same time. Variants
        of one asset are always produced one after the other.
    """

    max_parallel_assets: int = 1


def map_assets(fn: Callable[[T], R], items: Sequence[T], config: ParallelConfig) -> List[R]:
    """Apply ``fn`` to every item, preserving input order."""

    if config.max_parallel_assets <= 1 or len(items) <= 1:
        return [fn(item) for item in items]
    with cf.ThreadPoolExecutor(max_workers=config.max_parallel_assets) as tp:
        return list(tp.map(fn, items))
