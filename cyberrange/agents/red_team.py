"""
Red Team engine.

Plans and resolves attacker actions against the shared topology, moving
through three phases:

    RECON -> EXPLOIT -> POST_EXPLOIT

Each queued action occupies the engine for its duration in ticks; when
the countdown reaches zero the action is resolved against the topology
and an outcome event is published, carrying the technique's detection
chance so the Blue Team can react within the same tick.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Any

from cyberrange.agents.catalog import (
    EXPLOIT_ACTIONS,
    POST_EXPLOIT_ACTIONS,
    RECON_ACTIONS,
    ActionDefinition,
    AttackPhase,
)
from cyberrange.engine.event_bus import EventBus, EventKind
from cyberrange.network.topology import Node, Topology

logger = logging.getLogger(__name__)

DEFAULT_ATTACKER_IP = "203.0.113.66"

RECON_VULN_REVEAL_CHANCE = 0.6
KNOWN_VULN_BONUS = 0.2
OUTDATED_PATCH_BONUS = 0.15


@dataclass
class PlannedAction:
    """A catalog technique bound to a phase and a target or source node."""

    definition: ActionDefinition
    phase: AttackPhase
    target_id: str | None = None
    target_name: str | None = None
    source_id: str | None = None
    source_name: str | None = None

    @property
    def name(self) -> str:
        return self.definition.name


class RedTeamEngine:
    """
    Attacker state machine over the shared topology.
    """

    def __init__(
        self,
        event_bus: EventBus,
        rng: random.Random | None = None,
        attacker_ip: str = DEFAULT_ATTACKER_IP,
    ) -> None:
        self.event_bus = event_bus
        self.rng = rng or random.Random()
        self.attacker_ip = attacker_ip
        self.topology: Topology | None = None
        self._reset_state()

    def _reset_state(self) -> None:
        self.phase = AttackPhase.RECON
        self.queue: deque[PlannedAction] = deque()
        self.active_action: PlannedAction | None = None
        self.ticks_remaining = 0
        # dicts keep insertion order, which keeps seeded runs reproducible
        self.discovered_nodes: dict[str, None] = {}
        self.compromised_nodes: dict[str, None] = {}
        self.discovered_vulns: list[dict[str, Any]] = []
        self.total_attacks = 0
        self.successful_attacks = 0

    def initialize(self, topology: Topology) -> None:
        """
        Bind to a freshly built topology, clear all state and queue recon.
        """
        self.topology = topology
        self._reset_state()
        self._plan_recon()

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _plan_recon(self) -> None:
        self.queue.extend(
            PlannedAction(definition, AttackPhase.RECON) for definition in RECON_ACTIONS.values()
        )

    def _has_known_vuln(self, node_id: str) -> bool:
        return any(vuln["node_id"] == node_id for vuln in self.discovered_vulns)

    def _plan_exploitation(self) -> None:
        candidates = [
            node
            for node in self.topology.nodes
            if not node.isolated
            and node.id not in self.compromised_nodes
            and (node.id in self.discovered_nodes or self._has_known_vuln(node.id))
        ]
        if not candidates:
            logger.debug("No exploitation target available")
            return

        with_vulns = [node for node in candidates if self._has_known_vuln(node.id)]
        target = self.rng.choice(with_vulns or candidates)

        techniques = list(EXPLOIT_ACTIONS.values())
        count = 2 + self.rng.randint(0, 1)
        self.queue.extend(
            PlannedAction(
                definition,
                AttackPhase.EXPLOIT,
                target_id=target.id,
                target_name=target.name,
            )
            for definition in self.rng.sample(techniques, count)
        )

    def _plan_post_exploitation(self) -> None:
        footholds = [
            node
            for node in self.topology.nodes
            if node.id in self.compromised_nodes and not node.isolated
        ]
        if not footholds:
            logger.debug("No foothold available for post-exploitation")
            return

        source = self.rng.choice(footholds)
        techniques = list(POST_EXPLOIT_ACTIONS.values())
        count = 1 + self.rng.randint(0, 1)
        self.queue.extend(
            PlannedAction(
                definition,
                AttackPhase.POST_EXPLOIT,
                source_id=source.id,
                source_name=source.name,
            )
            for definition in self.rng.sample(techniques, count)
        )

    def _change_phase(self, phase: AttackPhase, tick: int, severity: str) -> None:
        self.phase = phase
        label = phase.value.replace("_", "-").upper()
        self.event_bus.publish(
            EventKind.RED_PHASE_CHANGE,
            {
                "tick": tick,
                "team": "red",
                "source": "red_team",
                "log": f"Red Team advancing to {label} phase",
                "severity": severity,
                "phase": phase.value,
            },
        )

    def _advance_phase(self, tick: int) -> None:
        if self.phase is AttackPhase.RECON:
            self._change_phase(AttackPhase.EXPLOIT, tick, "warning")
            self._plan_exploitation()
        elif self.phase is AttackPhase.EXPLOIT and self.compromised_nodes:
            self._change_phase(AttackPhase.POST_EXPLOIT, tick, "error")
            self._plan_post_exploitation()
        elif self.phase is AttackPhase.EXPLOIT:
            self._plan_exploitation()
        else:
            self._plan_post_exploitation()
            if not self.queue:
                # Every foothold was contained: go back to breaking in.
                self._change_phase(AttackPhase.EXPLOIT, tick, "warning")
                self._plan_exploitation()

    def _prune_lost_footholds(self) -> None:
        for node_id in list(self.compromised_nodes):
            node = self.topology.node(node_id)
            if node is None or not node.compromised:
                del self.compromised_nodes[node_id]

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, tick: int) -> None:
        """
        Advance the active action, or start the next one.
        """
        if self.topology is None:
            return

        self._prune_lost_footholds()

        if self.active_action is not None:
            self.ticks_remaining -= 1
            if self.ticks_remaining > 0:
                return
            action, self.active_action = self.active_action, None
            self._resolve(action, tick)

        if not self.queue:
            self._advance_phase(tick)
            if not self.queue:
                return

        action = self.queue.popleft()
        self.active_action = action
        self.ticks_remaining = action.definition.duration

        self.event_bus.publish(
            EventKind.RED_ACTION_START,
            {
                "tick": tick,
                "team": "red",
                "source": "red_team",
                "log": (
                    f"[{action.phase.value.upper()}] Starting: {action.name} -- "
                    f"{action.definition.description}"
                ),
                "severity": "warning",
                "action": action.name,
                "phase": action.phase.value,
                "target_id": action.target_id,
                "details": {
                    "duration": action.definition.duration,
                    "target": action.target_name,
                    "source": action.source_name,
                },
            },
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve(self, action: PlannedAction, tick: int) -> None:
        self.total_attacks += 1
        if action.phase is AttackPhase.RECON:
            self._resolve_recon(action, tick)
        elif action.phase is AttackPhase.EXPLOIT:
            self._resolve_exploit(action, tick)
        else:
            self._resolve_post_exploit(action, tick)

    def _resolve_recon(self, action: PlannedAction, tick: int) -> None:
        undiscovered = [node for node in self.topology.nodes if node.id not in self.discovered_nodes]
        revealed = undiscovered[: 1 + self.rng.randint(0, 2)]

        for node in revealed:
            self.discovered_nodes[node.id] = None
            for vuln in node.vulnerabilities:
                if self.rng.random() < RECON_VULN_REVEAL_CHANCE:
                    self.discovered_vulns.append(
                        {
                            "id": vuln.id,
                            "name": vuln.name,
                            "severity": vuln.severity,
                            "cvss": vuln.cvss,
                            "service": vuln.service,
                            "node_id": node.id,
                            "node_name": node.name,
                        }
                    )

        self.successful_attacks += 1
        self.event_bus.publish(
            EventKind.RED_RECON_COMPLETE,
            {
                "tick": tick,
                "team": "red",
                "source": "red_team",
                "log": (
                    f"Recon complete: {action.name} -- discovered {len(revealed)} hosts, "
                    f"{len(self.discovered_vulns)} vulnerabilities known"
                ),
                "severity": "info",
                "detect_chance": action.definition.detect_chance,
                "details": {
                    "action": action.name,
                    "success": True,
                    "discovered": [node.name for node in revealed],
                    "vulns_found": len(self.discovered_vulns),
                    "source": self.attacker_ip,
                    "port": action.definition.port,
                    "target_id": None,
                },
            },
        )

    def exploit_chance(self, definition: ActionDefinition, target: Node | None) -> float:
        """
        Success probability of an exploit technique against a target.
        """
        chance = definition.success_base
        if target is not None:
            if target.isolated:
                return 0.0
            if self._has_known_vuln(target.id):
                chance += KNOWN_VULN_BONUS
            if target.patch_level == "outdated":
                chance += OUTDATED_PATCH_BONUS
        return min(1.0, chance)

    def _resolve_exploit(self, action: PlannedAction, tick: int) -> None:
        target = self.topology.node(action.target_id)
        chance = self.exploit_chance(action.definition, target)
        success = self.rng.random() < chance and target is not None

        if success:
            target.compromised = True
            self.compromised_nodes[target.id] = None
            self.successful_attacks += 1
            logger.debug("Tick %d: %s compromised %s", tick, action.name, target.id)

        self.event_bus.publish(
            EventKind.RED_EXPLOIT_RESULT,
            {
                "tick": tick,
                "team": "red",
                "source": "red_team",
                "log": (
                    f"EXPLOIT SUCCESS: {action.name} on {action.target_name} -- system compromised!"
                    if success
                    else f"Exploit failed: {action.name} on {action.target_name}"
                ),
                "severity": "error" if success else "info",
                "detect_chance": action.definition.detect_chance,
                "compromised": success,
                "details": {
                    "action": action.name,
                    "target": action.target_name,
                    "target_id": action.target_id,
                    "success": success,
                    "chance": chance,
                    "source": self.attacker_ip,
                    "port": action.definition.port,
                },
            },
        )

    def _lateral_target(self, source: Node) -> Node | None:
        def reachable(node: Node) -> bool:
            return not node.isolated and not node.compromised and node.id not in self.compromised_nodes

        candidates = [node for node in self.topology.neighbors(source.id) if reachable(node)]
        if not candidates:
            candidates = [node for node in self.topology.nodes if reachable(node)]
        if not candidates:
            return None
        return self.rng.choice(candidates)

    def _resolve_post_exploit(self, action: PlannedAction, tick: int) -> None:
        source = self.topology.node(action.source_id)
        chance = action.definition.success_base
        if source is None or source.isolated or not source.compromised:
            chance = 0.0

        success = self.rng.random() < chance
        moved_to: Node | None = None

        if success:
            self.successful_attacks += 1
            if action.name == "Lateral Movement":
                moved_to = self._lateral_target(source)
                if moved_to is not None:
                    moved_to.compromised = True
                    self.compromised_nodes[moved_to.id] = None
                    logger.debug("Tick %d: lateral movement %s -> %s", tick, source.id, moved_to.id)

        self.event_bus.publish(
            EventKind.RED_POST_EXPLOIT_RESULT,
            {
                "tick": tick,
                "team": "red",
                "source": "red_team",
                "log": (
                    f"POST-EXPLOIT: {action.name} from {action.source_name} -- successful"
                    if success
                    else f"Post-exploitation failed: {action.name} from {action.source_name}"
                ),
                "severity": "error" if success else "warning",
                "detect_chance": action.definition.detect_chance,
                "details": {
                    "action": action.name,
                    "source_name": action.source_name,
                    "source_id": action.source_id,
                    "target_id": moved_to.id if moved_to else action.source_id,
                    "moved_to": moved_to.name if moved_to else None,
                    "success": success,
                    "source": source.ip if source else self.attacker_ip,
                    "port": action.definition.port,
                },
            },
        )

    def get_state(self) -> dict[str, Any]:
        active = self.active_action
        return {
            "phase": self.phase.value,
            "compromised_nodes": list(self.compromised_nodes),
            "discovered_nodes": list(self.discovered_nodes),
            "discovered_vulns": len(self.discovered_vulns),
            "total_attacks": self.total_attacks,
            "successful_attacks": self.successful_attacks,
            "active_action": active.name if active else None,
            "ticks_remaining": self.ticks_remaining if active else 0,
            "queue_length": len(self.queue),
        }
