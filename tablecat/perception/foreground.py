# tablecat/perception/foreground.py
import asyncio, logging, sys
from typing import Callable, Optional
try: import pygetwindow as gw
except Exception: gw = None
import psutil
from .types import ForegroundWindowInfo, Rect

logger = logging.getLogger(__name__)

ForegroundQuery = Callable[[], Optional[ForegroundWindowInfo]]

def _window_pid(win) -> int:
    hwnd = getattr(win, "_hWnd", None)
    if sys.platform != "win32" or not hwnd:
        return 0
    import ctypes
    from ctypes import wintypes
    pid = wintypes.DWORD(0)
    ctypes.windll.user32.GetWindowThreadProcessId(wintypes.HWND(hwnd), ctypes.byref(pid))
    return int(pid.value)

def _process_name(pid: int) -> str:
    if not pid:
        return ""
    try: return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied): return ""

def query_foreground_window() -> Optional[ForegroundWindowInfo]:
    """Blocking query of the active window. None when nothing is focused or the platform is unsupported."""
    if gw is None or (win := gw.getActiveWindow()) is None:
        return None
    pid = _window_pid(win)
    bounds = Rect(int(win.left), int(win.top), max(1, int(win.width)), max(1, int(win.height)))
    return ForegroundWindowInfo(title=win.title or "", process_name=_process_name(pid), pid=pid, bounds=bounds)

class ForegroundWindowProbe:
    """Memoizes the foreground query for a short window and coalesces concurrent callers."""

    def __init__(self, query: Optional[ForegroundQuery] = None, cache_ms: float = 1000, timeout_sec: float = 1.2):
        self._query = query or query_foreground_window
        self.cache_ms, self.timeout_sec = cache_ms, timeout_sec
        self._cached: Optional[ForegroundWindowInfo] = None
        self._cached_at_ms = 0.0
        self._in_flight: Optional[asyncio.Future] = None

    @property
    def cached(self) -> Optional[ForegroundWindowInfo]:
        return self._cached

    async def get_foreground_window_info(self, now_ms: float) -> Optional[ForegroundWindowInfo]:
        if self._cached is not None and now_ms - self._cached_at_ms < self.cache_ms:
            return self._cached
        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._refresh(now_ms))
        return await asyncio.shield(self._in_flight)

    async def _refresh(self, now_ms: float) -> Optional[ForegroundWindowInfo]:
        try:
            loop = asyncio.get_running_loop()
            info = await asyncio.wait_for(loop.run_in_executor(None, self._query), timeout=self.timeout_sec)
            self._cached, self._cached_at_ms = info, now_ms
            return info
        except Exception as e:
            logger.warning("Foreground window query failed: %r", e)
            return self._cached
        finally:
            self._in_flight = None
