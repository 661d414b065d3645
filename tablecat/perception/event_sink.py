# tablecat/perception/event_sink.py
import asyncio, json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

def build_session_id(now: datetime) -> str:
    return now.strftime("%Y-%m-%d_%H-%M-%S")

def file_stamp(ts: str) -> str:
    return ts.replace(":", "-").replace(".", "-")

class AttentionEventSink:
    """Per-session artifact store: append-only tick events, saved frames and a rolling summary."""

    def __init__(self, root_dir: str, session_id: Optional[str] = None):
        self.session_id = session_id or build_session_id(datetime.now())
        self.root = Path(root_dir) / "screen-attention" / self.session_id
        self.events, self.frames, self.roi, self.llm, self.metrics = (self.root / d for d in ("events", "frames", "roi", "llm", "metrics"))
        for d in (self.events, self.frames, self.roi, self.llm, self.metrics):
            d.mkdir(parents=True, exist_ok=True)
        self.events_file = self.events / "events.jsonl"
        self.summary_file = self.metrics / "summary.json"

    async def _run(self, fn, *args):
        return await asyncio.get_running_loop().run_in_executor(None, fn, *args)

    def _append_line(self, record: Dict[str, Any]):
        with self.events_file.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")

    async def append_event(self, record: Dict[str, Any]):
        await self._run(self._append_line, record)

    async def write_summary(self, summary: Dict[str, Any]):
        await self.write_json(self.summary_file, summary)

    async def write_json(self, path: Path, payload: Dict[str, Any]):
        await self._run(lambda: Path(path).write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"))

    async def save_png(self, path: Path, png: bytes) -> Path:
        await self._run(Path(path).write_bytes, png)
        return Path(path)
