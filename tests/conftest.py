"""Test configuration and fixtures."""

import random
import sys
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cyberrange.engine.context import SimulationContext  # noqa: E402
from cyberrange.engine.event_bus import EventBus  # noqa: E402
from cyberrange.engine.orchestrator import SimulationOrchestrator  # noqa: E402
from cyberrange.engine.scheduler import VirtualScheduler  # noqa: E402
from cyberrange.network.topology import build_topology  # noqa: E402
from cyberrange.scenarios.catalog import ScenarioCatalog  # noqa: E402

SEED = 1337


@pytest.fixture
def event_bus() -> EventBus:
    """Bus with a fixed time source so timestamps are predictable."""
    return EventBus(time_source=lambda: 1_700_000_000_000)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(SEED)


@pytest.fixture
def small_office(rng):
    """A seeded small_office topology."""
    return build_topology("small_office", rng)


@pytest.fixture
def catalog() -> ScenarioCatalog:
    """The bundled scenario catalog."""
    return ScenarioCatalog.load()


@pytest.fixture
def context() -> SimulationContext:
    return SimulationContext.create(seed=SEED)


@pytest.fixture
def orchestrator(context, catalog):
    """Orchestrator driven by a virtual scheduler, recording every snapshot."""
    snapshots = []
    orch = SimulationOrchestrator(
        context=context,
        catalog=catalog,
        scheduler=VirtualScheduler(context.clock),
        on_state=snapshots.append,
    )
    orch.snapshots = snapshots
    yield orch
    orch.scheduler.cancel()


@pytest.fixture
def red_event():
    """A successful exploit outcome as the Red Team publishes it."""
    return {
        "tick": 10,
        "team": "red",
        "source": "red_team",
        "log": "EXPLOIT SUCCESS: SQL Injection on Web Server -- system compromised!",
        "severity": "error",
        "detect_chance": 0.35,
        "compromised": True,
        "details": {
            "action": "SQL Injection",
            "target": "Web Server",
            "target_id": "srv-web",
            "success": True,
            "chance": 0.7,
            "source": "203.0.113.66",
            "port": 80,
        },
    }
