# cyberrange/output/adapter.py
import sys
from pathlib import Path
from typing import Iterable

from .blue_adapter import BlueAdapter
from .red_adapter import RedAdapter
from .system_adapter import SystemAdapter


class SimulationAdapter:
    """Dispatch events to the proper team adapter."""

    def __init__(self):
        self.adapters = {
            # Attacker activity
            "red": RedAdapter(),

            # Firewall, SIEM, SOC and incident response
            "blue": BlueAdapter(),

            # Orchestrator lifecycle
            "sim": SystemAdapter(),
        }

    def transform(self, event: dict) -> list[str]:
        namespace = str(event.get("event", "")).split(".", 1)[0]
        adapter = self.adapters.get(namespace)
        if adapter:
            return list(adapter.transform(event))
        return []


def write_simulation_logs(events: Iterable[dict], output_file_path: str | Path) -> None:
    adapter = SimulationAdapter()
    output_file = Path(output_file_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with output_file.open("w", encoding="utf-8") as f:
        for event in events:
            try:
                for line in adapter.transform(event):
                    if line:
                        f.write(line + "\n")
            except (KeyError, TypeError, ValueError) as e:
                print(f"Warning: failed to transform event {event.get('id')}: {e}", file=sys.stderr)
