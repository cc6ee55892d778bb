from __future__ import annotations

"""Timing and resource usage of generated variants."""

from dataclasses import dataclass
import time
import psutil


@dataclass
class VariantMetrics:
    name: str
    ms: float
    cpu_percent: float
    rss_bytes: int
    cached: bool = False


def measure(fn, name: str):
    """Measure execution time and resource usage of ``fn``.

    Parameters
    ----------
    fn:
        Callable with no arguments.
    name:
        Identifier of the variant being produced.
    """

    proc = psutil.Process()
    cpu_before = proc.cpu_percent(interval=None)
    rss_before = proc.memory_info().rss
    start = time.perf_counter()
    result = fn()
    end = time.perf_counter()
    cpu_after = proc.cpu_percent(interval=None)
    rss_after = proc.memory_info().rss
    metrics = VariantMetrics(
        name=name,
        ms=(end - start) * 1000.0,
        cpu_percent=max(0.0, cpu_after - cpu_before),
        rss_bytes=max(0, rss_after - rss_before),
    )
    return result, metrics
