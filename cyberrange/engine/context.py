"""
Per-run simulation context.

Everything a simulation run needs lives on one SimulationContext: the
seeded RNG, the clock, the event bus and the three engines. Nothing is
process-wide; two contexts never share state.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from cyberrange.agents.blue_team import BlueTeamEngine
from cyberrange.agents.red_team import DEFAULT_ATTACKER_IP, RedTeamEngine
from cyberrange.engine.clock import DEFAULT_EPOCH_MS, SimulationClock
from cyberrange.engine.event_bus import EventBus
from cyberrange.network.topology import Topology, build_topology
from cyberrange.scoring.scoring_engine import ScoringEngine


@dataclass
class SimulationContext:
    seed: int
    rng: random.Random
    clock: SimulationClock
    event_bus: EventBus
    red_team: RedTeamEngine
    blue_team: BlueTeamEngine
    scoring: ScoringEngine
    topology: Topology | None = None

    @classmethod
    def create(
        cls,
        seed: int | None = None,
        epoch_ms: int = DEFAULT_EPOCH_MS,
        attacker_ip: str = DEFAULT_ATTACKER_IP,
    ) -> SimulationContext:
        """
        Wire up a fresh bus, clock and engine set sharing one seeded RNG.

        Without an explicit seed one is drawn from the OS, so that every
        run can still be replayed from the seed in its snapshots.
        """
        if seed is None:
            seed = random.SystemRandom().randrange(2**32)
        rng = random.Random(seed)
        clock = SimulationClock(epoch_ms)
        event_bus = EventBus(time_source=clock.timestamp)

        # Scoring subscribes to specific kinds and Blue to the wildcard, so
        # an attack is always scored before Blue reacts to it.
        scoring = ScoringEngine(event_bus)
        blue_team = BlueTeamEngine(event_bus, rng=rng)
        red_team = RedTeamEngine(event_bus, rng=rng, attacker_ip=attacker_ip)

        return cls(
            seed=seed,
            rng=rng,
            clock=clock,
            event_bus=event_bus,
            red_team=red_team,
            blue_team=blue_team,
            scoring=scoring,
        )

    def reset(self) -> None:
        """
        Return every component to its initial state and rewind the RNG.
        """
        self.rng.seed(self.seed)
        self.clock.reset()
        self.event_bus.reset()
        self.scoring.reset()
        self.blue_team.reset()
        self.topology = None

    def build_topology(self, preset: str) -> Topology:
        self.topology = build_topology(preset, self.rng)
        self.red_team.initialize(self.topology)
        return self.topology
