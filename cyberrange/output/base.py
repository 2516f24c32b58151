# cyberrange/output/base.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable


class Adapter:
    """Base adapter for transforming simulator events into log lines."""

    def transform(self, event: dict) -> Iterable[str]:
        """Override in subclasses."""
        return []

    @staticmethod
    def prefix(event: dict, label: str) -> str:
        ts = event.get("timestamp") or 0
        dt = datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
        severity = str(event.get("severity", "info")).upper()
        return f"{dt.strftime('%H:%M:%S')} T+{event.get('tick', 0):03d} [{label}] {severity:<8}"
