# tablecat/perception/screen_capture.py
import asyncio, io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import mss
import numpy as np
from PIL import Image
from .types import Rect

@dataclass(frozen=True)
class CapturedImage:
    captured_at: datetime
    width: int
    height: int
    image: Image.Image = field(repr=False, compare=False)

    def pixels(self) -> np.ndarray:
        return np.asarray(self.image.convert("RGB"))

    def png_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.image.save(buf, format="PNG")
        return buf.getvalue()

    @classmethod
    def from_image(cls, image: Image.Image, captured_at: Optional[datetime] = None) -> "CapturedImage":
        return cls(captured_at or datetime.now(timezone.utc), image.width, image.height, image)

def _grab_primary() -> Image.Image:
    with mss.mss() as sct:
        # monitors[0] is the union of all displays
        mon = sct.monitors[1] if len(sct.monitors) > 1 else sct.monitors[0]
        shot = sct.grab(mon)
        return Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")

class ScreenCapture:
    """Primary-display capture provider. Grabs run off the event loop."""

    async def capture(self, width: int, height: int) -> CapturedImage:
        size = (max(1, int(width)), max(1, int(height)))
        loop = asyncio.get_running_loop()
        image = await loop.run_in_executor(None, lambda: _grab_primary().resize(size, Image.Resampling.BILINEAR))
        return CapturedImage.from_image(image)

    async def capture_full_resolution(self) -> CapturedImage:
        loop = asyncio.get_running_loop()
        return CapturedImage.from_image(await loop.run_in_executor(None, _grab_primary))

def _clamped_crop(capture: CapturedImage, box: Rect) -> Image.Image:
    x, y = min(max(0, box.x), capture.width - 1), min(max(0, box.y), capture.height - 1)
    right = min(capture.width, x + max(1, box.width))
    bottom = min(capture.height, y + max(1, box.height))
    return capture.image.crop((x, y, right, bottom))

def crop_image_to_png(capture: CapturedImage, box: Rect) -> bytes:
    buf = io.BytesIO()
    _clamped_crop(capture, box).save(buf, format="PNG")
    return buf.getvalue()

def crop_capture_to_bounds(capture: CapturedImage, bounds: Rect) -> CapturedImage:
    normalized = Rect(max(0, int(bounds.x)), max(0, int(bounds.y)), max(1, int(bounds.width)), max(1, int(bounds.height)))
    return CapturedImage.from_image(_clamped_crop(capture, normalized), capture.captured_at)

def scale_roi_box_to_capture(box: Rect, source: CapturedImage, target: CapturedImage) -> Rect:
    sx, sy = target.width / max(1, source.width), target.height / max(1, source.height)
    x, y = max(0, int(box.x * sx)), max(0, int(box.y * sy))
    w, h = max(1, int(np.ceil(box.width * sx))), max(1, int(np.ceil(box.height * sy)))
    return Rect(x, y, min(w, max(1, target.width - x)), min(h, max(1, target.height - y)))
