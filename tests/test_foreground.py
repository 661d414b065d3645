import asyncio
import time
import pytest

from tablecat.perception.foreground import ForegroundWindowProbe
from tablecat.perception.types import ForegroundWindowInfo, Rect

EDITOR = ForegroundWindowInfo(title="notes.txt", process_name="editor.exe", pid=42, bounds=Rect(0, 0, 800, 600))


class CountingQuery:
    def __init__(self, result=EDITOR, delay=0.0):
        self.calls, self.result, self.delay = 0, result, delay

    def __call__(self):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def test_key_joins_process_and_title():
    assert EDITOR.key == "editor.exe::notes.txt"


@pytest.mark.asyncio
async def test_result_is_cached_for_cache_window():
    query = CountingQuery()
    probe = ForegroundWindowProbe(query=query, cache_ms=1000)
    assert await probe.get_foreground_window_info(1000) == EDITOR
    assert await probe.get_foreground_window_info(1500) == EDITOR
    assert query.calls == 1
    await probe.get_foreground_window_info(2100)
    assert query.calls == 2


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_query():
    query = CountingQuery(delay=0.05)
    probe = ForegroundWindowProbe(query=query)
    first, second = await asyncio.gather(probe.get_foreground_window_info(1000),
                                         probe.get_foreground_window_info(1000))
    assert first == second == EDITOR
    assert query.calls == 1


@pytest.mark.asyncio
async def test_failure_falls_back_to_cached_value():
    query = CountingQuery()
    probe = ForegroundWindowProbe(query=query, cache_ms=100)
    await probe.get_foreground_window_info(1000)
    query.result = OSError("no window station")
    assert await probe.get_foreground_window_info(5000) == EDITOR
    assert query.calls == 2


@pytest.mark.asyncio
async def test_slow_query_times_out():
    probe = ForegroundWindowProbe(query=CountingQuery(delay=0.3), timeout_sec=0.05)
    assert await probe.get_foreground_window_info(1000) is None
    assert probe.cached is None


@pytest.mark.asyncio
async def test_empty_result_replaces_fallback_and_is_requeried():
    query = CountingQuery()
    probe = ForegroundWindowProbe(query=query, cache_ms=1000)
    await probe.get_foreground_window_info(1000)
    query.result = None
    assert await probe.get_foreground_window_info(3000) is None
    assert await probe.get_foreground_window_info(3100) is None
    assert query.calls == 3
    query.result = OSError("desktop locked")
    assert await probe.get_foreground_window_info(3200) is None
