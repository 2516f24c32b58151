"""
Scoring engine.

A pure bus listener. It never touches the topology or the engines; every
point and every metric sample comes from an event published on the bus.

Four defender metrics are tracked:

- detection latency: ticks between a successful attack and its detection
- response accuracy: share of remediation/recovery/detection responses
  that worked
- containment effectiveness: share of containment responses that worked
- recovery time: ticks from detection to incident close

``get_metrics`` normalises each metric to 0-100 and combines them with
the scenario's weights into an overall defender score.
"""

import logging
from typing import Any, Mapping

from cyberrange.engine.event_bus import Event, EventBus, EventKind, event_details

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: dict[str, float] = {
    "detection_latency": 0.3,
    "response_accuracy": 0.25,
    "containment_effectiveness": 0.25,
    "recovery_time": 0.2,
}

RED_POINTS = {
    EventKind.RED_EXPLOIT_RESULT: 10,
    EventKind.RED_POST_EXPLOIT_RESULT: 15,
    EventKind.RED_RECON_COMPLETE: 3,
}

CONTAINMENT_BONUS = 8
REMEDIATION_BONUS = 12
RECOVERY_BONUS = 15

LATENCY_PENALTY = 15
RECOVERY_PENALTY = 10


def _average(samples: list[float]) -> float:
    return sum(samples) / len(samples) if samples else 0.0


class ScoringEngine:
    """
    Accumulates team scores and defender metrics from bus events.
    """

    def __init__(self, event_bus: EventBus, weights: dict[str, float] | None = None) -> None:
        self.event_bus = event_bus
        self.weights: dict[str, float] = dict(DEFAULT_WEIGHTS)
        if weights:
            self.set_weights(weights)
        self.reset()

        handlers = {
            EventKind.RED_EXPLOIT_RESULT: self._on_attack_result,
            EventKind.RED_POST_EXPLOIT_RESULT: self._on_attack_result,
            EventKind.RED_RECON_COMPLETE: self._on_recon,
            EventKind.BLUE_DETECTION: self._on_detection,
            EventKind.BLUE_CONTAINMENT: self._on_containment,
            EventKind.BLUE_REMEDIATION: self._on_remediation,
            EventKind.BLUE_RECOVERY: self._on_recovery,
            EventKind.BLUE_HARDENING: self._on_hardening,
            EventKind.BLUE_RESPONSE_FAILED: self._on_response_failed,
            EventKind.BLUE_INCIDENT_CLOSED: self._on_incident_closed,
        }
        for kind, handler in handlers.items():
            self.event_bus.subscribe(kind, handler)

    def reset(self) -> None:
        self.blue_team = 0.0
        self.red_team = 0.0
        self.detection_latency: list[float] = []
        self.response_accuracy: list[float] = []
        self.containment_effectiveness: list[float] = []
        self.recovery_time: list[float] = []
        # successful attacks awaiting a matching detection
        self._pending_attacks: list[dict[str, Any]] = []

    def set_weights(self, weights: Mapping[str, float], replace: bool = False) -> None:
        """
        Update metric weights; ``replace`` starts from the defaults.
        """
        unknown = set(weights) - set(DEFAULT_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown scoring weights: {sorted(unknown)}")
        if any(value < 0 for value in weights.values()):
            raise ValueError("Scoring weights must be non-negative")
        base = DEFAULT_WEIGHTS if replace else self.weights
        merged = {**base, **weights}
        if sum(merged.values()) <= 0:
            raise ValueError("Scoring weights must not all be zero")
        self.weights = merged

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    @staticmethod
    def _succeeded(event: Event) -> bool:
        return bool(event_details(event).get("success"))

    def _on_attack_result(self, event: Event) -> None:
        if not self._succeeded(event):
            return
        kind = EventKind(event["event"])
        self.red_team += RED_POINTS[kind]
        details = event_details(event)
        self._pending_attacks.append(
            {
                "tick": event.get("tick", 0),
                "action": details.get("action"),
                "target_id": details.get("target_id"),
            }
        )

    def _on_recon(self, event: Event) -> None:
        self.red_team += RED_POINTS[EventKind.RED_RECON_COMPLETE]

    def _on_detection(self, event: Event) -> None:
        if not self._pending_attacks:
            return
        tick = event.get("tick", 0)
        closest = min(self._pending_attacks, key=lambda attack: abs(tick - attack["tick"]))
        self._pending_attacks.remove(closest)
        latency = tick - closest["tick"]
        self.detection_latency.append(latency)
        self.blue_team += max(0, 10 - latency * 2)
        logger.debug("Detection at tick %d matched attack at tick %d", tick, closest["tick"])

    def _on_containment(self, event: Event) -> None:
        if self._succeeded(event):
            self.containment_effectiveness.append(1)
            self.blue_team += CONTAINMENT_BONUS
        else:
            self.containment_effectiveness.append(0)

    def _on_remediation(self, event: Event) -> None:
        if self._succeeded(event):
            self.response_accuracy.append(1)
            self.blue_team += REMEDIATION_BONUS

    def _on_recovery(self, event: Event) -> None:
        if self._succeeded(event):
            self.response_accuracy.append(1)
            self.blue_team += RECOVERY_BONUS

    def _on_hardening(self, event: Event) -> None:
        if self._succeeded(event):
            self.response_accuracy.append(1)

    def _on_response_failed(self, event: Event) -> None:
        details = event_details(event)
        if details.get("type") == "containment":
            self.containment_effectiveness.append(0)
        else:
            self.response_accuracy.append(0)

    def _on_incident_closed(self, event: Event) -> None:
        details = event_details(event)
        detected_at = details.get("detected_at")
        closed_at = details.get("closed_at", event.get("tick"))
        if detected_at is None or closed_at is None:
            return
        self.recovery_time.append(closed_at - detected_at)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> dict[str, Any]:
        avg_latency = _average(self.detection_latency)
        avg_accuracy = _average(self.response_accuracy)
        avg_containment = _average(self.containment_effectiveness)
        avg_recovery = _average(self.recovery_time)

        scores = {
            "detection_latency": max(0.0, 100 - avg_latency * LATENCY_PENALTY),
            "response_accuracy": avg_accuracy * 100,
            "containment_effectiveness": avg_containment * 100,
            "recovery_time": max(0.0, 100 - avg_recovery * RECOVERY_PENALTY),
        }
        raws = {
            "detection_latency": (avg_latency, self.detection_latency),
            "response_accuracy": (avg_accuracy, self.response_accuracy),
            "containment_effectiveness": (avg_containment, self.containment_effectiveness),
            "recovery_time": (avg_recovery, self.recovery_time),
        }

        total_weight = sum(self.weights.values())
        overall = sum(scores[name] * self.weights[name] for name in scores) / total_weight

        metrics: dict[str, Any] = {
            "blue_team_score": round(self.blue_team),
            "red_team_score": round(self.red_team),
            "overall_blue_score": round(overall),
            "weights": dict(self.weights),
            "history": {name: list(samples) for name, (_, samples) in raws.items()},
        }
        for name, (raw, samples) in raws.items():
            metrics[name] = {"raw": raw, "score": round(scores[name]), "samples": len(samples)}
        return metrics
