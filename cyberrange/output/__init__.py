# cyberrange/output/__init__.py
from .base import Adapter
from .adapter import SimulationAdapter, write_simulation_logs
from .red_adapter import RedAdapter
from .blue_adapter import BlueAdapter
from .system_adapter import SystemAdapter
from .report import build_report, format_report

__all__ = [
    "Adapter",
    "SimulationAdapter",
    "write_simulation_logs",
    "RedAdapter",
    "BlueAdapter",
    "SystemAdapter",
    "build_report",
    "format_report",
]
