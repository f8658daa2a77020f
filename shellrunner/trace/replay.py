from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


class Replay:
    """
    JSONL trace reader.
    """

    def __init__(self, path: Path):
        self._path = path

    def iter_events(self) -> Iterable[Dict[str, Any]]:
        if not self._path.exists():
            return
        with self._path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                yield json.loads(line)

    def select(self, *, event_type: Optional[str] = None, run_id: Optional[str] = None, tail: Optional[int] = None) -> List[Dict[str, Any]]:
        events = list(self.iter_events())
        if event_type:
            events = [e for e in events if e.get("event_type") == event_type]
        if run_id:
            events = [e for e in events if e.get("run_id") == run_id]
        if tail is not None and tail >= 0:
            events = events[len(events) - tail :] if tail else []
        return events
