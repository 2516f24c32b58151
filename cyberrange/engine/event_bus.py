"""
Event bus for the cyber-range simulator.

Every engine speaks to every other engine through this bus. Red Team
actions, Blue Team reactions and orchestrator lifecycle changes are all
published here as structured records, and the bus keeps the append-only
timeline and the filtered log view that snapshots are built from.

The bus does not interpret events. It stamps them, records them and
delivers them to registered subscribers, synchronously and in order.
"""

import copy
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Event = dict[str, Any]
Subscriber = Callable[[Event], None]
TimeSource = Callable[[], int]


class EventKind(str, Enum):
    """Every event name the simulator publishes, plus the wildcard."""

    ANY = "*"

    RED_PHASE_CHANGE = "red.phase_change"
    RED_ACTION_START = "red.action_start"
    RED_RECON_COMPLETE = "red.recon_complete"
    RED_EXPLOIT_RESULT = "red.exploit_result"
    RED_POST_EXPLOIT_RESULT = "red.post_exploit_result"

    BLUE_FIREWALL_BLOCK = "blue.firewall_block"
    BLUE_DETECTION = "blue.detection"
    BLUE_TRIAGE = "blue.triage"
    BLUE_RESPONSE_START = "blue.response_start"
    BLUE_CONTAINMENT = "blue.containment"
    BLUE_REMEDIATION = "blue.remediation"
    BLUE_RECOVERY = "blue.recovery"
    BLUE_HARDENING = "blue.hardening"
    BLUE_RESPONSE_FAILED = "blue.response_failed"
    BLUE_INCIDENT_CLOSED = "blue.incident_closed"
    BLUE_MONITORING = "blue.monitoring"

    SIM_LOADED = "sim.loaded"
    SIM_START = "sim.start"
    SIM_PAUSE = "sim.pause"
    SIM_RESUME = "sim.resume"
    SIM_COMPLETE = "sim.complete"


def event_details(event: Event) -> dict[str, Any]:
    """Return the details mapping of an event, or an empty one if it is missing or malformed."""
    details = event.get("details")
    return details if isinstance(details, dict) else {}


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class EventBus:
    """
    Typed publish-subscribe event bus with a durable timeline.

    Handlers for a specific kind are called first, in the order they
    were registered, followed by wildcard handlers. A handler that
    raises is logged and skipped; the remaining handlers still receive
    the event.
    """

    def __init__(self, time_source: TimeSource | None = None) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._timeline: list[Event] = []
        self._logs: list[Event] = []
        self._id_counter: int = 0
        self._time_source: TimeSource = time_source or wall_clock_ms
        self._closed: bool = False

    def subscribe(self, kind: EventKind | str, handler: Subscriber) -> Callable[[], None]:
        """
        Register a handler for one event kind, or ``"*"`` for all of them.

        Returns a callable that removes the registration again.
        """
        if self._closed:
            raise RuntimeError("Cannot subscribe to a closed event bus")

        key = EventKind(kind).value if isinstance(kind, EventKind) else str(kind)
        self._subscribers.setdefault(key, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, kind: EventKind | str, payload: Event | None = None) -> Event:
        """
        Stamp, record and deliver an event.

        The returned record is a copy; the timeline entry itself is never
        handed out.
        """
        if self._closed:
            raise RuntimeError("Cannot publish to a closed event bus")

        name = kind.value if isinstance(kind, EventKind) else str(kind)
        payload = payload or {}

        self._id_counter += 1
        # The stamp always wins over same-named payload keys.
        record: Event = {
            **payload,
            "id": self._id_counter,
            "event": name,
            "timestamp": self._time_source(),
        }
        record["tick"] = payload.get("tick") or 0
        self._timeline.append(record)

        if payload.get("log"):
            self._logs.append(
                {
                    "id": record["id"],
                    "tick": record["tick"],
                    "timestamp": record["timestamp"],
                    "severity": payload.get("severity", "info"),
                    "source": payload.get("source", "system"),
                    "team": payload.get("team", "system"),
                    "message": payload["log"],
                    "details": copy.deepcopy(payload.get("details")),
                }
            )

        handlers = list(self._subscribers.get(name, []))
        if name != EventKind.ANY.value:
            handlers.extend(self._subscribers.get(EventKind.ANY.value, []))

        for handler in handlers:
            try:
                handler(copy.deepcopy(record))
            except Exception:
                logger.exception("Subscriber %r failed while handling %s", handler, name)

        return copy.deepcopy(record)

    def timeline(self) -> list[Event]:
        """
        Return a copy of every event published since the last reset.
        """
        return copy.deepcopy(self._timeline)

    def logs(
        self,
        team: str | None = None,
        severity: str | None = None,
        source: str | None = None,
        search: str | None = None,
    ) -> list[Event]:
        """
        Return a filtered copy of the log view.
        """
        result = self._logs
        if team:
            result = [entry for entry in result if entry["team"] == team]
        if severity:
            result = [entry for entry in result if entry["severity"] == severity]
        if source:
            result = [entry for entry in result if entry["source"] == source]
        if search:
            needle = search.lower()
            result = [entry for entry in result if needle in str(entry["message"]).lower()]
        return copy.deepcopy(result)

    def reset(self) -> None:
        """
        Clear the timeline, the log view and the id counter.

        Subscriptions survive a reset; the engines stay wired.
        """
        self._timeline = []
        self._logs = []
        self._id_counter = 0

    def close(self) -> None:
        """
        Stop accepting subscribers and events.

        The timeline and log view stay readable, so a finished run can
        still be snapshotted after its bus is closed.
        """
        self._closed = True
