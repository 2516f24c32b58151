"""
Simulation orchestrator for the cyber-range simulator.

Responsibilities:

- Load a scenario: build its topology, apply its defender tuning
- Own the lifecycle: idle -> running <-> paused -> complete
- Drive ticks through a scheduler at ``1000 ms / speed`` intervals
- Push a fully copied state snapshot to the consumer after every tick
  and every lifecycle transition

One tick runs to completion before the next scheduler fire: Red resolves,
Blue and Scoring react inside the same publish calls, Blue runs its
scheduled work, then the snapshot goes out.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from cyberrange.engine.context import SimulationContext
from cyberrange.engine.event_bus import EventKind
from cyberrange.engine.scheduler import Scheduler, VirtualScheduler
from cyberrange.scenarios.catalog import Scenario, ScenarioCatalog

logger = logging.getLogger(__name__)

Snapshot = dict[str, Any]
SnapshotConsumer = Callable[[Snapshot], None]

BASE_INTERVAL_MS = 1000
ALLOWED_SPEEDS = (1, 2, 5, 10)


class SimStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"


class SimulationOrchestrator:
    """
    Lifecycle and tick loop for one simulation context.
    """

    def __init__(
        self,
        context: SimulationContext | None = None,
        catalog: ScenarioCatalog | None = None,
        scheduler: Scheduler | None = None,
        on_state: SnapshotConsumer | None = None,
    ) -> None:
        self.context = context or SimulationContext.create()
        self.catalog = catalog or ScenarioCatalog.load()
        self.scheduler = scheduler or VirtualScheduler(self.context.clock)
        self.on_state = on_state

        self.status = SimStatus.IDLE
        self.tick = 0
        self.max_ticks = 100
        self.speed = 1
        self.scenario: Scenario | None = None

    @property
    def event_bus(self):
        return self.context.event_bus

    @property
    def topology(self):
        return self.context.topology

    def _emit(self, kind: EventKind, log: str, details: dict[str, Any] | None = None) -> None:
        payload: dict[str, Any] = {
            "tick": self.tick,
            "team": "system",
            "source": "orchestrator",
            "log": log,
            "severity": "info",
        }
        if details is not None:
            payload["details"] = details
        self.event_bus.publish(kind, payload)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def load_scenario(self, scenario_id: str) -> None:
        """
        Build the scenario's topology and reset every component for it.

        Unknown ids load the catalog default. Invalid tuning raises
        ValueError before anything is cancelled or reset.
        """
        scenario = self.catalog.get(scenario_id)
        scenario.config.validate()

        self.scheduler.cancel()
        ctx = self.context

        ctx.reset()
        ctx.blue_team.detection_rate = scenario.config.detection_rate
        ctx.blue_team.set_monitoring_level(scenario.config.monitoring_level)
        ctx.blue_team.set_firewall_match(scenario.config.firewall_match)
        ctx.scoring.set_weights(scenario.config.scoring_weights, replace=True)
        ctx.build_topology(scenario.topology)

        self.scenario = scenario
        self.max_ticks = scenario.duration
        self.tick = 0
        self.status = SimStatus.IDLE
        logger.info("Loaded scenario %s (seed %d)", scenario.id, ctx.seed)

        self._emit(
            EventKind.SIM_LOADED,
            f"Scenario loaded: {scenario.name} -- {scenario.description}",
            {"scenario_id": scenario.id, "seed": ctx.seed},
        )
        self._push_state()

    def start(self) -> None:
        if self.status in (SimStatus.RUNNING, SimStatus.COMPLETE):
            return
        if self.topology is None:
            logger.debug("start() ignored: no scenario loaded")
            return

        self.status = SimStatus.RUNNING
        self._emit(EventKind.SIM_START, f"Simulation STARTED -- {self.scenario.name}")
        self._schedule()
        self._push_state()

    def pause(self) -> None:
        if self.status is not SimStatus.RUNNING:
            return
        self.status = SimStatus.PAUSED
        self.scheduler.cancel()
        self._emit(EventKind.SIM_PAUSE, f"Simulation PAUSED at tick {self.tick}")
        self._push_state()

    def resume(self) -> None:
        if self.status is not SimStatus.PAUSED:
            return
        self.status = SimStatus.RUNNING
        self._emit(EventKind.SIM_RESUME, f"Simulation RESUMED at tick {self.tick}")
        self._schedule()
        self._push_state()

    def reset(self) -> None:
        """
        Stop the timer and reload the current scenario from scratch.
        """
        self.scheduler.cancel()
        if self.scenario is not None:
            self.load_scenario(self.scenario.id)
            return

        self.context.reset()
        self.tick = 0
        self.status = SimStatus.IDLE
        self._push_state()

    def set_speed(self, speed: int) -> None:
        if speed not in ALLOWED_SPEEDS:
            raise ValueError(f"Speed must be one of {ALLOWED_SPEEDS}, got {speed!r}")
        self.speed = speed
        if self.status is SimStatus.RUNNING:
            self._schedule()

    def add_firewall_rule(self, rule: dict[str, Any]) -> int:
        stored = self.context.blue_team.add_firewall_rule(rule)
        self._push_state()
        return stored.id

    def remove_firewall_rule(self, rule_id: int) -> bool:
        removed = self.context.blue_team.remove_firewall_rule(rule_id)
        self._push_state()
        return removed

    def respond(self, incident_id: int, action_name: str) -> None:
        """
        Start an analyst-chosen response on an open incident.
        """
        self.context.blue_team.initiate_response(incident_id, action_name, self.tick)
        self._push_state()

    def run_to_completion(self) -> Snapshot:
        """
        Start (or resume) and block until the scenario completes or pauses.
        """
        if self.status is SimStatus.PAUSED:
            self.resume()
        else:
            self.start()
        self.scheduler.run()
        return self.get_state()

    def destroy(self) -> None:
        self.scheduler.cancel()
        self.event_bus.close()

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        self.scheduler.start(BASE_INTERVAL_MS / self.speed, self._tick)

    def _tick(self) -> None:
        if self.tick >= self.max_ticks:
            self._complete()
            return

        self.tick += 1
        ctx = self.context
        ctx.red_team.tick(self.tick)
        ctx.blue_team.tick(self.tick, ctx.topology)
        ctx.blue_team.close_remediated(self.tick)
        self._push_state()

    def _complete(self) -> None:
        self.status = SimStatus.COMPLETE
        self.scheduler.cancel()

        metrics = self.context.scoring.get_metrics()
        self._emit(
            EventKind.SIM_COMPLETE,
            (
                f"Simulation COMPLETE -- Blue: {metrics['blue_team_score']} pts | "
                f"Red: {metrics['red_team_score']} pts | "
                f"Overall: {metrics['overall_blue_score']}/100"
            ),
            metrics,
        )
        logger.info(
            "Scenario %s complete at tick %d, overall blue score %d",
            self.scenario.id if self.scenario else None,
            self.tick,
            metrics["overall_blue_score"],
        )
        self._push_state()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _push_state(self) -> None:
        if self.on_state is not None:
            self.on_state(self.get_state())

    def get_state(self) -> Snapshot:
        ctx = self.context
        return {
            "status": self.status.value,
            "tick": self.tick,
            "max_ticks": self.max_ticks,
            "speed": self.speed,
            "seed": ctx.seed,
            "scenario": self.scenario.to_dict() if self.scenario else None,
            "topology": ctx.topology.to_dict() if ctx.topology else None,
            "red_team": ctx.red_team.get_state(),
            "blue_team": ctx.blue_team.get_state(),
            "scoring": ctx.scoring.get_metrics(),
            "timeline": ctx.event_bus.timeline(),
            "logs": ctx.event_bus.logs(),
        }

    def logs(self, **filters: Any) -> list[dict[str, Any]]:
        return self.event_bus.logs(**filters)
