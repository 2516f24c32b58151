# cyberrange/output/system_adapter.py
from __future__ import annotations

from typing import Iterable

from cyberrange.engine.event_bus import event_details

from .base import Adapter

METRIC_LABELS = {
    "detection_latency": "Detection latency",
    "response_accuracy": "Response accuracy",
    "containment_effectiveness": "Containment effectiveness",
    "recovery_time": "Recovery time",
}


class SystemAdapter(Adapter):
    """Print orchestrator lifecycle events; expand the final metrics."""

    def transform(self, event: dict) -> Iterable[str]:
        lines = []
        message = event.get("log") or event.get("event", "unknown")
        lines.append(f"{self.prefix(event, 'SIM')} {message}")

        if event.get("event") == "sim.complete":
            details = event_details(event)
            for key, label in METRIC_LABELS.items():
                metric = details.get(key)
                if not metric:
                    continue
                lines.append(
                    f"    {label:<26} score {metric['score']:>3}/100 "
                    f"(raw {metric['raw']:.2f}, {metric['samples']} samples)"
                )

        return lines
