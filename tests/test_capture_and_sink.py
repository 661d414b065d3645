import asyncio
import io
import json
import pytest
from PIL import Image

from conftest import START, gray_frame
from tablecat.perception.event_sink import AttentionEventSink, file_stamp
from tablecat.perception.idle import InputIdleTracker
from tablecat.perception.scheduler import TickScheduler
from tablecat.perception.screen_capture import (
    CapturedImage, crop_capture_to_bounds, crop_image_to_png, scale_roi_box_to_capture,
)
from tablecat.perception.types import Rect


def capture_of(size):
    return CapturedImage.from_image(gray_frame(size), START)


def test_roi_box_scales_to_full_capture():
    gate, full = capture_of(64), capture_of(256)
    assert scale_roi_box_to_capture(Rect(0, 0, 17, 17), gate, full) == Rect(0, 0, 68, 68)
    assert scale_roi_box_to_capture(Rect(60, 60, 10, 10), gate, full) == Rect(240, 240, 16, 16)


def test_crop_is_clamped_to_image():
    png = crop_image_to_png(capture_of(32), Rect(30, 30, 20, 20))
    assert Image.open(io.BytesIO(png)).size == (2, 2)
    window = crop_capture_to_bounds(capture_of(32), Rect(-5, 8, 10, 100))
    assert (window.width, window.height) == (10, 24)
    assert window.captured_at == START


@pytest.mark.asyncio
async def test_sink_lays_out_session_directories(tmp_path):
    sink = AttentionEventSink(str(tmp_path), "s1")
    assert sink.root == tmp_path / "screen-attention" / "s1"
    await sink.append_event({"decision": "idle"})
    await sink.append_event({"decision": "drop"})
    await sink.write_summary({"tick_count": 2})
    path = await sink.save_png(sink.frames / "a.png", capture_of(8).png_bytes())
    assert [json.loads(l)["decision"] for l in sink.events_file.read_text(encoding="utf-8").splitlines()] == ["idle", "drop"]
    assert json.loads(sink.summary_file.read_text(encoding="utf-8")) == {"tick_count": 2}
    assert path.exists()


def test_file_stamp_is_filesystem_safe():
    assert file_stamp("2026-10-19T09:00:00.500000+00:00") == "2026-10-19T09-00-00-500000+00-00"


def test_idle_tracker_reads_zero_until_started():
    now = [10.0]
    tracker = InputIdleTracker(clock=lambda: now[0])
    now[0] = 40.0
    assert tracker.get_system_idle_seconds() == 0.0


@pytest.mark.asyncio
async def test_scheduler_fires_once_and_stops_after_cancel():
    fired = []

    async def tick():
        fired.append(True)

    scheduler = TickScheduler(tick)
    scheduler.start(10)
    scheduler.schedule(10)
    await asyncio.sleep(0.05)
    assert fired == [True]
    assert not scheduler.pending

    scheduler.schedule(10)
    scheduler.cancel()
    await asyncio.sleep(0.05)
    assert fired == [True]


def test_defaults_fill_session_and_timestamp(tmp_path):
    sink = AttentionEventSink(str(tmp_path))
    assert sink.session_id and sink.root.is_dir()
    captured = CapturedImage.from_image(gray_frame(8))
    assert captured.captured_at.tzinfo is not None
