"""
Shared fixtures for the attention engine tests.

Frames are small synthetic PIL images so every metric can be worked out by hand:
a uniform gray field, optionally with a white block painted over part of it.
"""
import asyncio
from datetime import datetime, timedelta, timezone
import pytest
from PIL import Image

from tablecat.core.config import ScreenAttentionConfig
from tablecat.perception.attention_loop import AttentionLoop, AttentionLoopCallbacks
from tablecat.perception.event_sink import AttentionEventSink
from tablecat.perception.foreground import ForegroundWindowProbe
from tablecat.perception.screen_capture import CapturedImage

START = datetime(2026, 10, 19, 9, 0, 0, tzinfo=timezone.utc)


def gray_frame(size=64, value=40, block=None, block_value=255):
    """Uniform frame; `block` is (x, y, w, h) painted with block_value."""
    img = Image.new("RGB", (size, size), (value, value, value))
    if block:
        x, y, w, h = block
        img.paste((block_value, block_value, block_value), (x, y, x + w, y + h))
    return img


class FakeCapture:
    """Replays a list of frames, one per tick, stamped step_ms apart."""

    def __init__(self, frames, step_ms=500, start=START):
        self.frames, self.step_ms, self.start = list(frames), step_ms, start
        self.index = 0
        self.last = None
        self.gate = None
        self.fail = None

    async def capture(self, width, height):
        if self.gate is not None:
            await self.gate.wait()
        if self.fail is not None:
            raise self.fail
        img = self.frames[min(self.index, len(self.frames) - 1)]
        at = self.start + timedelta(milliseconds=self.index * self.step_ms)
        self.index += 1
        self.last = CapturedImage.from_image(img, at)
        return self.last

    async def capture_full_resolution(self):
        img = self.last.image.resize((self.last.width * 2, self.last.height * 2))
        return CapturedImage.from_image(img, self.last.captured_at)


class Recorder:
    def __init__(self):
        self.states, self.payloads = [], []

    def on_debug_state(self, state):
        self.states.append(state)

    async def on_trigger(self, payload):
        self.payloads.append(payload)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def sink(tmp_path):
    return AttentionEventSink(str(tmp_path), "test-session")


@pytest.fixture
def make_loop(recorder, sink):
    def _make(frames, idle_seconds=0.0, foreground=None, response_state=None, **overrides):
        config = ScreenAttentionConfig(**overrides)
        capture = FakeCapture(frames)
        loop = AttentionLoop(
            config,
            AttentionLoopCallbacks(recorder.on_debug_state, recorder.on_trigger, response_state),
            capture=capture,
            idle_seconds=lambda: idle_seconds,
            foreground=foreground or ForegroundWindowProbe(query=lambda: None),
            sink=sink,
        )
        return loop, capture
    return _make
