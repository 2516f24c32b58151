# cyberrange/output/blue_adapter.py
from __future__ import annotations

from typing import Iterable

from cyberrange.engine.event_bus import event_details

from .base import Adapter


class BlueAdapter(Adapter):
    """Transform blue.* events into SOC-style lines."""

    def transform(self, event: dict) -> Iterable[str]:
        message = event.get("log")
        if not message:
            return []

        details = event_details(event)
        line = f"{self.prefix(event, 'BLUE')} {message}"

        if event.get("event") == "blue.detection" and details.get("chance") is not None:
            line += f" (p={details['chance']:.2f})"
        elif details.get("target_id") and event.get("event") in (
            "blue.containment",
            "blue.remediation",
            "blue.recovery",
        ):
            line += f" [node {details['target_id']}]"

        return [line]
