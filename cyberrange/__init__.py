"""
Red/blue cyber-range simulator core package.

This package contains the simulation engine and the team engines.
The engine provides:
- SimulationOrchestrator
- SimulationContext
- SimulationClock
- EventBus

The Red Team, Blue Team and Scoring engines communicate only through
the event bus; the orchestrator drives them tick by tick over a
generated network topology.
"""

from cyberrange.engine.clock import SimulationClock
from cyberrange.engine.context import SimulationContext
from cyberrange.engine.event_bus import EventBus, EventKind

# Expose core engine components
from cyberrange.engine.orchestrator import SimulationOrchestrator
from cyberrange.scenarios.catalog import ScenarioCatalog
