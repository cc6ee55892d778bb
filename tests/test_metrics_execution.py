import threading

from imgtools.execution import ParallelConfig, map_assets
from imgtools.metrics import measure


def test_measure_returns_result_and_metrics():
    result, m = measure(lambda: 42, "variant")
    assert result == 42
    assert m.name == "variant"
    assert m.ms >= 0
    assert m.rss_bytes >= 0
    assert m.cached is False


def test_map_assets_keeps_order():
    items = list(range(10))
    assert map_assets(lambda x: x * 2, items, ParallelConfig()) == [x * 2 for x in items]
    assert map_assets(lambda x: x * 2, items, ParallelConfig(max_parallel_assets=4)) == [x * 2 for x in items]


def test_single_asset_runs_inline():
    seen = set()

    def work(x):
        seen.add(threading.get_ident())
        return x

    map_assets(work, [1], ParallelConfig(max_parallel_assets=4))
    assert seen == {threading.get_ident()}
