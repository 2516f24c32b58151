"""
Blue Team engine.

Two reactive mechanisms run inside the Red Team's publish call:

1. Firewall pre-filter: a matching Block rule stops the red event before
   any detection attempt.
2. Detection: an IDS-weighted Bernoulli roll that opens an incident.

One scheduled mechanism runs once per tick: incident triage, response
countdown and resolution, and the periodic monitoring summary. Incident
status only ever moves forward:

    detected -> triaged -> contained -> remediated -> closed

with a successful recovery allowed to close an incident from any state.
"""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass, field
from typing import Any

from cyberrange.agents.catalog import (
    MONITORING_MULTIPLIERS,
    RESPONSE_ACTIONS,
    DetectionMethod,
    IDSRule,
    IncidentStatus,
    ResponseDefinition,
    ResponseType,
    match_ids_rule,
    responses_of_type,
)
from cyberrange.engine.event_bus import Event, EventBus, EventKind, event_details
from cyberrange.network.topology import Topology

logger = logging.getLogger(__name__)

IDS_MATCH_BONUS = 0.15
TRIAGE_DELAY = 2
REMEDIATION_VERIFY_DELAY = 3
MONITORING_INTERVAL = 5

FIREWALL_ACTIONS = ("Block", "Allow")
FIREWALL_MATCH_MODES = ("any", "all")


@dataclass(frozen=True)
class Alert:
    id: int
    tick: int
    detected_event: str
    severity: str
    method: str
    rule: str
    message: str
    chance: float
    details: dict[str, Any] | None = None


@dataclass
class Incident:
    id: int
    detected_at: int
    severity: str
    title: str
    description: str
    method: str
    target_node_id: str | None
    status: IncidentStatus = IncidentStatus.DETECTED
    response_actions: list[dict[str, Any]] = field(default_factory=list)
    timeline: list[dict[str, Any]] = field(default_factory=list)
    contained_at: int | None = None
    remediated_at: int | None = None
    closed_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        for entry in data["timeline"]:
            entry["status"] = IncidentStatus(entry["status"]).value
        return data


@dataclass(eq=False)
class Response:
    incident_id: int
    action: str
    type: ResponseType
    ticks_remaining: int
    effectiveness: float
    start_tick: int
    target_node_id: str | None
    cancelled: bool = False


@dataclass(frozen=True)
class FirewallRule:
    id: int
    ip: str = "*"
    port: str = "*"
    protocol: str = "TCP"
    direction: str = "inbound"
    action: str = "Block"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class BlueTeamEngine:
    """
    Defender: firewall, IDS detection and automated incident response.
    """

    def __init__(
        self,
        event_bus: EventBus,
        rng: random.Random | None = None,
        detection_rate: float = 0.5,
        monitoring_level: str = "standard",
        firewall_match: str = "any",
    ) -> None:
        self.event_bus = event_bus
        self.rng = rng or random.Random()
        self.detection_rate = detection_rate
        self.monitoring_level = "standard"
        self.set_monitoring_level(monitoring_level)
        self.firewall_match = "any"
        self.set_firewall_match(firewall_match)

        self.firewall_rules: list[FirewallRule] = []
        self._rule_id_counter = 0
        self.reset()

        self.event_bus.subscribe(EventKind.ANY, self._on_event)

    def reset(self) -> None:
        """
        Drop alerts, incidents, responses and blocked-traffic history.

        Firewall rules are operator configuration and survive a reset.
        """
        self.alerts: list[Alert] = []
        self.incidents: list[Incident] = []
        self.active_responses: list[Response] = []
        self.firewall_blocked: list[dict[str, Any]] = []
        self._incident_id_counter = 0
        self._block_id_counter = 0
        self.total_detections = 0
        self.resolved_incidents = 0
        self.hardening_actions = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_monitoring_level(self, level: str) -> None:
        if level not in MONITORING_MULTIPLIERS:
            raise ValueError(
                f"Unknown monitoring level {level!r}; expected one of {sorted(MONITORING_MULTIPLIERS)}"
            )
        self.monitoring_level = level

    def set_firewall_match(self, mode: str) -> None:
        if mode not in FIREWALL_MATCH_MODES:
            raise ValueError(f"Unknown firewall match mode {mode!r}; expected 'any' or 'all'")
        self.firewall_match = mode

    def add_firewall_rule(self, rule: dict[str, Any] | FirewallRule) -> FirewallRule:
        """
        Add a rule from a ``{ip, port, protocol, direction, action}`` dict.

        Returns the stored rule, whose ``id`` is used to remove it.
        """
        if isinstance(rule, FirewallRule):
            rule = rule.to_dict()
        action = rule.get("action", "Block")
        if action not in FIREWALL_ACTIONS:
            raise ValueError(f"Firewall rule action must be 'Block' or 'Allow', got {action!r}")

        self._rule_id_counter += 1
        stored = FirewallRule(
            id=self._rule_id_counter,
            ip=str(rule.get("ip") or "*"),
            port=str(rule.get("port") or "*"),
            protocol=rule.get("protocol", "TCP"),
            direction=rule.get("direction", "inbound"),
            action=action,
        )
        self.firewall_rules.append(stored)
        logger.debug("Firewall rule added: %s", stored)
        return stored

    def remove_firewall_rule(self, rule_id: int) -> bool:
        before = len(self.firewall_rules)
        self.firewall_rules = [rule for rule in self.firewall_rules if rule.id != rule_id]
        return len(self.firewall_rules) != before

    def clear_firewall_rules(self) -> None:
        self.firewall_rules = []

    def get_firewall_state(self) -> dict[str, Any]:
        return {
            "rules": [rule.to_dict() for rule in self.firewall_rules],
            "blocked": [dict(entry) for entry in self.firewall_blocked],
            "enabled": bool(self.firewall_rules),
            "match": self.firewall_match,
        }

    # ------------------------------------------------------------------
    # Reactive path
    # ------------------------------------------------------------------

    def _on_event(self, event: Event) -> None:
        if event.get("team") != "red" or event.get("detect_chance") is None:
            return
        if self._check_firewall(event):
            return
        self._attempt_detection(event)

    def _rule_matches(self, rule: FirewallRule, event: Event) -> bool:
        details = event_details(event)
        source = details.get("source")
        port = details.get("port")

        ip_match = rule.ip == "*" or (bool(source) and rule.ip in str(source))
        port_match = rule.port == "*" or (port is not None and str(port) == rule.port)

        if self.firewall_match == "all":
            return ip_match and port_match
        return ip_match or port_match

    def _check_firewall(self, event: Event) -> bool:
        details = event_details(event)
        for rule in self.firewall_rules:
            if rule.action != "Block" or not self._rule_matches(rule, event):
                continue

            self._block_id_counter += 1
            self.firewall_blocked.append(
                {
                    "id": self._block_id_counter,
                    "tick": event.get("tick", 0),
                    "timestamp": event.get("timestamp"),
                    "source_ip": details.get("source") or "attacker",
                    "port": rule.port,
                    "protocol": rule.protocol,
                    "rule_id": rule.id,
                    "blocked_event": event.get("event"),
                    "reason": f"Firewall rule: {rule.action} IP:{rule.ip} Port:{rule.port}",
                }
            )
            self.total_detections += 1
            self.event_bus.publish(
                EventKind.BLUE_FIREWALL_BLOCK,
                {
                    "tick": event.get("tick", 0),
                    "team": "blue",
                    "source": "firewall",
                    "log": (
                        f"FIREWALL BLOCK: {event.get('log') or event.get('event')} -- "
                        f"Rule: {rule.action} IP:{rule.ip} Port:{rule.port}"
                    ),
                    "severity": "warning",
                    "details": {
                        "rule_id": rule.id,
                        "blocked_event": event.get("event"),
                        "blocked_event_id": event.get("id"),
                        "action": details.get("action"),
                    },
                },
            )
            return True
        return False

    def detection_chance(self, event: Event) -> tuple[float, IDSRule | None]:
        """
        Effective probability that this red event is noticed, capped at 1.0.
        """
        multiplier = MONITORING_MULTIPLIERS[self.monitoring_level]
        chance = float(event.get("detect_chance") or 0.0) * self.detection_rate * multiplier
        rule = match_ids_rule(event.get("log"))
        if rule is not None:
            chance += IDS_MATCH_BONUS
        return min(1.0, chance), rule

    def _attempt_detection(self, event: Event) -> None:
        chance, rule = self.detection_chance(event)
        if not self.rng.random() < chance:
            return

        tick = event.get("tick", 0)
        details = event_details(event)
        self.total_detections += 1
        self._incident_id_counter += 1

        alert = Alert(
            id=self._incident_id_counter,
            tick=tick,
            detected_event=event.get("event", "unknown"),
            severity=rule.severity if rule else "medium",
            method=(rule.method if rule else DetectionMethod.ANOMALY).value,
            rule=rule.name if rule else "Anomaly Detection",
            message=event.get("log") or "",
            chance=chance,
            details=details or None,
        )
        self.alerts.append(alert)

        incident = Incident(
            id=alert.id,
            detected_at=tick,
            severity=alert.severity,
            title=rule.name if rule else "Suspicious Activity Detected",
            description=alert.message,
            method=alert.method,
            target_node_id=details.get("target_id"),
        )
        incident.timeline.append(
            {"tick": tick, "status": IncidentStatus.DETECTED, "action": "Alert generated"}
        )
        self.incidents.append(incident)

        self.event_bus.publish(
            EventKind.BLUE_DETECTION,
            {
                "tick": tick,
                "team": "blue",
                "source": "siem",
                "log": f"ALERT: {alert.rule} -- {alert.severity.upper()} severity [{alert.method}]",
                "severity": "error" if alert.severity == "critical" else "warning",
                "details": {
                    "alert_id": alert.id,
                    "incident_id": incident.id,
                    "rule": alert.rule,
                    "method": alert.method,
                    "chance": chance,
                    "detected_event": alert.detected_event,
                    "detected_event_id": event.get("id"),
                    "target_id": incident.target_node_id,
                },
            },
        )

    # ------------------------------------------------------------------
    # Incident lifecycle
    # ------------------------------------------------------------------

    def incident(self, incident_id: int) -> Incident | None:
        return next((item for item in self.incidents if item.id == incident_id), None)

    def _advance(self, incident: Incident, status: IncidentStatus, tick: int, action: str) -> bool:
        if status.rank <= incident.status.rank:
            return False

        incident.status = status
        incident.timeline.append({"tick": tick, "status": status, "action": action})
        if status is IncidentStatus.CONTAINED:
            incident.contained_at = tick
        elif status is IncidentStatus.REMEDIATED:
            incident.remediated_at = tick
        elif status is IncidentStatus.CLOSED:
            incident.closed_at = tick
            self.resolved_incidents += 1
            self._cancel_responses(incident)
            self.event_bus.publish(
                EventKind.BLUE_INCIDENT_CLOSED,
                {
                    "tick": tick,
                    "team": "blue",
                    "source": "soc",
                    "log": f"Incident #{incident.id} closed: {action}",
                    "severity": "info",
                    "details": {
                        "incident_id": incident.id,
                        "detected_at": incident.detected_at,
                        "closed_at": tick,
                        "resolution": action,
                    },
                },
            )
        return True

    def _cancel_responses(self, incident: Incident) -> None:
        pending = [resp for resp in self.active_responses if resp.incident_id == incident.id]
        if not pending:
            return
        for resp in pending:
            resp.cancelled = True
        self.active_responses = [resp for resp in self.active_responses if not resp.cancelled]
        for entry in incident.response_actions:
            if entry["outcome"] is None:
                entry["outcome"] = "cancelled"

    def tick(self, tick: int, topology: Topology) -> None:
        """
        Resolve due responses, triage aged incidents, emit monitoring.
        """
        for response in self.active_responses:
            response.ticks_remaining -= 1
        due = [resp for resp in self.active_responses if resp.ticks_remaining <= 0]
        self.active_responses = [resp for resp in self.active_responses if resp.ticks_remaining > 0]
        for response in due:
            # a recovery resolved earlier this tick may have closed the incident
            incident = self.incident(response.incident_id)
            if response.cancelled or (incident is not None and incident.status is IncidentStatus.CLOSED):
                self._record_outcome(incident, response, "cancelled", tick)
                continue
            self._resolve_response(response, tick, topology)

        for incident in self.incidents:
            if incident.status is IncidentStatus.DETECTED and tick - incident.detected_at >= TRIAGE_DELAY:
                self._advance(incident, IncidentStatus.TRIAGED, tick, "Incident triaged by SOC analyst")
                self.event_bus.publish(
                    EventKind.BLUE_TRIAGE,
                    {
                        "tick": tick,
                        "team": "blue",
                        "source": "soc",
                        "log": f"Incident #{incident.id} triaged: {incident.title}",
                        "severity": "info",
                        "details": {"incident_id": incident.id, "severity": incident.severity},
                    },
                )
                for definition in self._plan_responses(incident):
                    self._start_response(incident, definition, tick)

        if tick % MONITORING_INTERVAL == 0:
            compromised = sum(1 for node in topology.nodes if node.compromised)
            isolated = sum(1 for node in topology.nodes if node.isolated)
            open_incidents = self._open_incident_count()
            self.event_bus.publish(
                EventKind.BLUE_MONITORING,
                {
                    "tick": tick,
                    "team": "blue",
                    "source": "monitoring",
                    "log": (
                        f"Status: {compromised} compromised, {isolated} isolated, "
                        f"{open_incidents} open incidents"
                    ),
                    "severity": "info",
                    "details": {
                        "compromised": compromised,
                        "isolated": isolated,
                        "open_incidents": open_incidents,
                    },
                },
            )

    def close_remediated(self, tick: int) -> None:
        """
        Close incidents that have stayed remediated for the verification delay.
        """
        for incident in self.incidents:
            if (
                incident.status is IncidentStatus.REMEDIATED
                and tick - incident.remediated_at >= REMEDIATION_VERIFY_DELAY
            ):
                self._advance(incident, IncidentStatus.CLOSED, tick, "Incident closed after verification")

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    @staticmethod
    def _plan_responses(incident: Incident) -> list[ResponseDefinition]:
        containment = responses_of_type(ResponseType.CONTAINMENT)
        remediation = responses_of_type(ResponseType.REMEDIATION)
        if incident.severity == "critical":
            return containment[:2] + remediation[:1]
        if incident.severity == "high":
            return containment[:1] + remediation[:1]
        return responses_of_type(ResponseType.DETECTION)[:1]

    def _start_response(self, incident: Incident, definition: ResponseDefinition, tick: int) -> Response:
        response = Response(
            incident_id=incident.id,
            action=definition.name,
            type=definition.type,
            ticks_remaining=definition.duration,
            effectiveness=definition.effectiveness,
            start_tick=tick,
            target_node_id=incident.target_node_id,
        )
        self.active_responses.append(response)
        incident.response_actions.append(
            {
                "action": definition.name,
                "type": definition.type.value,
                "started_at": tick,
                "outcome": None,
            }
        )
        self.event_bus.publish(
            EventKind.BLUE_RESPONSE_START,
            {
                "tick": tick,
                "team": "blue",
                "source": "ir_team",
                "log": f"Initiating response: {definition.name} for Incident #{incident.id}",
                "severity": "info",
                "details": {
                    "incident_id": incident.id,
                    "action": definition.name,
                    "type": definition.type.value,
                    "target_id": incident.target_node_id,
                },
            },
        )
        return response

    def initiate_response(self, incident_id: int, action_name: str, tick: int) -> Response:
        """
        Start a playbook action on an incident by hand.

        This is how an analyst runs a recovery (``Restore from Backup``),
        which the automatic plan never selects.
        """
        definition = RESPONSE_ACTIONS.get(action_name)
        if definition is None:
            raise ValueError(f"Unknown response action {action_name!r}")
        incident = self.incident(incident_id)
        if incident is None:
            raise ValueError(f"Unknown incident {incident_id}")
        if incident.status is IncidentStatus.CLOSED:
            raise ValueError(f"Incident {incident_id} is already closed")
        return self._start_response(incident, definition, tick)

    @staticmethod
    def _record_outcome(incident: Incident | None, response: Response, outcome: str, tick: int) -> None:
        if incident is None:
            return
        for entry in incident.response_actions:
            if (
                entry["action"] == response.action
                and entry["started_at"] == response.start_tick
                and entry["outcome"] is None
            ):
                entry["outcome"] = outcome
                entry["resolved_at"] = tick
                break

    def _response_event(self, kind: EventKind, response: Response, tick: int, log: str, success: bool) -> None:
        self.event_bus.publish(
            kind,
            {
                "tick": tick,
                "team": "blue",
                "source": "ir_team",
                "log": log,
                "severity": "info" if success else "warning",
                "details": {
                    "incident_id": response.incident_id,
                    "action": response.action,
                    "type": response.type.value,
                    "target_id": response.target_node_id,
                    "success": success,
                },
            },
        )

    def _resolve_response(self, response: Response, tick: int, topology: Topology) -> None:
        success = self.rng.random() < response.effectiveness
        incident = self.incident(response.incident_id)
        node = topology.node(response.target_node_id)
        self._record_outcome(incident, response, "success" if success else "failed", tick)

        if not success:
            self._response_event(
                EventKind.BLUE_RESPONSE_FAILED,
                response,
                tick,
                f"Response failed: {response.action} -- Incident #{response.incident_id}",
                False,
            )
            return

        if response.type is ResponseType.CONTAINMENT:
            if node is not None:
                node.compromised = False
                node.isolated = True
            if incident is not None:
                self._advance(incident, IncidentStatus.CONTAINED, tick, response.action)
            self._response_event(
                EventKind.BLUE_CONTAINMENT,
                response,
                tick,
                f"Containment successful: {response.action} -- Incident #{response.incident_id}",
                True,
            )
        elif response.type is ResponseType.REMEDIATION:
            if node is not None:
                node.patch_level = "current"
                node.vulnerabilities = []
            if incident is not None:
                self._advance(incident, IncidentStatus.REMEDIATED, tick, response.action)
            self._response_event(
                EventKind.BLUE_REMEDIATION,
                response,
                tick,
                f"Remediation complete: {response.action} -- Incident #{response.incident_id}",
                True,
            )
        elif response.type is ResponseType.RECOVERY:
            if node is not None:
                node.status = "online"
                node.isolated = False
                node.compromised = False
            # the recovery event goes out before the close so listeners see it first
            self._response_event(
                EventKind.BLUE_RECOVERY,
                response,
                tick,
                f"Recovery complete: {response.action} -- Incident #{response.incident_id} CLOSED",
                True,
            )
            if incident is not None:
                self._advance(incident, IncidentStatus.CLOSED, tick, response.action)
        else:
            self.hardening_actions += 1
            self._response_event(
                EventKind.BLUE_HARDENING,
                response,
                tick,
                f"Detection hardened: {response.action} -- Incident #{response.incident_id}",
                True,
            )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _open_incident_count(self) -> int:
        return sum(1 for item in self.incidents if item.status is not IncidentStatus.CLOSED)

    def get_state(self) -> dict[str, Any]:
        return {
            "total_detections": self.total_detections,
            "open_incidents": self._open_incident_count(),
            "resolved_incidents": self.resolved_incidents,
            "alerts": [asdict(alert) for alert in self.alerts],
            "incidents": [incident.to_dict() for incident in self.incidents],
            "active_responses": len(self.active_responses),
            "hardening_actions": self.hardening_actions,
            "monitoring_level": self.monitoring_level,
            "detection_rate": self.detection_rate,
            "firewall": self.get_firewall_state(),
        }
