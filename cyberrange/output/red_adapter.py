# cyberrange/output/red_adapter.py
from __future__ import annotations

from typing import Iterable

from .base import Adapter


class RedAdapter(Adapter):
    """Transform red.* events into attacker activity lines."""

    OUTCOME_EVENTS = {"red.recon_complete", "red.exploit_result", "red.post_exploit_result"}

    def transform(self, event: dict) -> Iterable[str]:
        message = event.get("log")
        if not message:
            return []

        line = f"{self.prefix(event, 'RED')} {message}"
        if event.get("event") in self.OUTCOME_EVENTS and event.get("detect_chance") is not None:
            line += f" (detect {event['detect_chance']:.0%})"
        return [line]
