"""
Unit tests for cyberrange/agents/blue_team.py
"""
import random
from unittest.mock import Mock

import pytest

from cyberrange.agents.blue_team import (
    IDS_MATCH_BONUS,
    REMEDIATION_VERIFY_DELAY,
    BlueTeamEngine,
    FirewallRule,
)
from cyberrange.agents.catalog import IncidentStatus
from cyberrange.engine.event_bus import EventKind


def rolling(value: float) -> Mock:
    rng = Mock(spec=random.Random)
    rng.random.return_value = value
    return rng


@pytest.fixture
def blue(event_bus):
    return BlueTeamEngine(event_bus, rng=rolling(0.0), detection_rate=1.0, monitoring_level="maximum")


def names(bus):
    return [event["event"] for event in bus.timeline()]


def detect(blue, event_bus, red_event):
    event_bus.publish(EventKind.RED_EXPLOIT_RESULT, red_event)
    return blue.incidents[-1]


class TestConfiguration:

    def test_invalid_monitoring_level(self, event_bus):
        with pytest.raises(ValueError, match="monitoring level"):
            BlueTeamEngine(event_bus, monitoring_level="paranoid")

    def test_invalid_firewall_match(self, blue):
        with pytest.raises(ValueError, match="match mode"):
            blue.set_firewall_match("some")

    def test_add_and_remove_firewall_rule(self, blue):
        first = blue.add_firewall_rule({"ip": "10.0.0.5", "port": 22})
        second = blue.add_firewall_rule(FirewallRule(id=0, port="443", action="Allow"))

        assert (first.id, second.id) == (1, 2)
        assert first.port == "22"
        assert first.action == "Block"
        assert second.ip == "*"

        assert blue.remove_firewall_rule(first.id) is True
        assert blue.remove_firewall_rule(first.id) is False
        assert [rule["id"] for rule in blue.get_firewall_state()["rules"]] == [2]

    def test_clear_firewall_rules(self, blue):
        blue.add_firewall_rule({"ip": "*"})
        blue.add_firewall_rule({"port": "22"})
        blue.clear_firewall_rules()
        state = blue.get_firewall_state()
        assert state["rules"] == []
        assert state["enabled"] is False

    def test_rule_action_is_validated(self, blue):
        with pytest.raises(ValueError, match="'Block' or 'Allow'"):
            blue.add_firewall_rule({"action": "Drop"})

    def test_reset_keeps_firewall_rules(self, blue, event_bus, red_event):
        blue.add_firewall_rule({"ip": "*", "port": "*"})
        event_bus.publish(EventKind.RED_EXPLOIT_RESULT, red_event)
        blue.reset()

        state = blue.get_state()
        assert len(state["firewall"]["rules"]) == 1
        assert state["firewall"]["blocked"] == []
        assert state["total_detections"] == 0


class TestFirewall:

    def test_block_all_short_circuits_detection(self, blue, event_bus, red_event):
        blue.add_firewall_rule({"ip": "*", "port": "*", "action": "Block"})

        event_bus.publish(EventKind.RED_EXPLOIT_RESULT, red_event)

        assert names(event_bus) == ["red.exploit_result", "blue.firewall_block"]
        assert blue.incidents == []
        assert blue.alerts == []
        assert blue.total_detections == 1
        blue.rng.random.assert_not_called()

        blocked = blue.get_firewall_state()["blocked"][0]
        assert blocked["source_ip"] == "203.0.113.66"
        assert blocked["blocked_event"] == "red.exploit_result"

    def test_allow_rules_never_block(self, blue, event_bus, red_event):
        blue.add_firewall_rule({"ip": "*", "port": "*", "action": "Allow"})
        event_bus.publish(EventKind.RED_EXPLOIT_RESULT, red_event)
        assert "blue.firewall_block" not in names(event_bus)
        assert len(blue.incidents) == 1

    @pytest.mark.parametrize(
        "mode, ip, port, blocked",
        [
            ("any", "203.0.113.66", "22", True),
            ("any", "198.51.100.1", "80", True),
            ("any", "198.51.100.1", "22", False),
            ("all", "203.0.113.66", "22", False),
            ("all", "203.0.113.66", "80", True),
            ("all", "*", "80", True),
        ],
    )
    def test_match_modes(self, blue, event_bus, red_event, mode, ip, port, blocked):
        blue.set_firewall_match(mode)
        blue.add_firewall_rule({"ip": ip, "port": port})

        event_bus.publish(EventKind.RED_EXPLOIT_RESULT, red_event)

        assert ("blue.firewall_block" in names(event_bus)) is blocked

    def test_non_red_events_are_ignored(self, blue, event_bus):
        blue.add_firewall_rule({"ip": "*", "port": "*"})
        event_bus.publish(EventKind.SIM_START, {"team": "system", "detect_chance": 1.0})
        event_bus.publish(EventKind.RED_ACTION_START, {"team": "red", "log": "Starting: Port Scan"})
        assert names(event_bus) == ["sim.start", "red.action_start"]


class TestDetection:

    def test_detection_chance_with_ids_match(self, blue, red_event):
        chance, rule = blue.detection_chance(red_event)
        assert rule.name == "SQL Injection Detected"
        assert chance == pytest.approx(0.35 * 1.0 * 1.6 + IDS_MATCH_BONUS)

    def test_detection_chance_is_capped(self, blue, red_event):
        red_event["detect_chance"] = 0.9
        chance, _ = blue.detection_chance(red_event)
        assert chance == 1.0

    def test_detection_chance_without_rule(self, event_bus):
        blue = BlueTeamEngine(event_bus, detection_rate=0.5)
        chance, rule = blue.detection_chance({"detect_chance": 0.4, "log": "nothing interesting"})
        assert rule is None
        assert chance == pytest.approx(0.2)

    def test_detection_opens_incident(self, blue, event_bus, red_event):
        incident = detect(blue, event_bus, red_event)

        assert incident.id == 1
        assert incident.status is IncidentStatus.DETECTED
        assert incident.severity == "critical"
        assert incident.target_node_id == "srv-web"
        assert incident.detected_at == 10

        detection = event_bus.timeline()[-1]
        assert detection["event"] == "blue.detection"
        assert detection["details"]["incident_id"] == 1
        assert detection["details"]["target_id"] == "srv-web"
        assert detection["severity"] == "error"
        assert blue.get_state()["open_incidents"] == 1

    def test_missed_roll_opens_nothing(self, event_bus, red_event):
        blue = BlueTeamEngine(event_bus, rng=rolling(0.999))
        event_bus.publish(EventKind.RED_EXPLOIT_RESULT, red_event)
        assert blue.incidents == []
        assert names(event_bus) == ["red.exploit_result"]

    def test_unmatched_event_uses_anomaly_detection(self, blue, event_bus, red_event):
        red_event["log"] = "something odd happened"
        incident = detect(blue, event_bus, red_event)
        assert incident.title == "Suspicious Activity Detected"
        assert incident.method == "anomaly"
        assert incident.severity == "medium"

    def test_malformed_details_still_open_incident(self, blue, event_bus, red_event):
        red_event["details"] = "oops"
        incident = detect(blue, event_bus, red_event)

        assert incident.target_node_id is None
        assert event_bus.timeline()[-1]["event"] == "blue.detection"


class TestIncidentLifecycle:

    def test_triage_waits_two_ticks(self, blue, event_bus, red_event, small_office):
        incident = detect(blue, event_bus, red_event)

        blue.tick(11, small_office)
        assert incident.status is IncidentStatus.DETECTED

        blue.tick(12, small_office)
        assert incident.status is IncidentStatus.TRIAGED
        assert "blue.triage" in names(event_bus)

    def test_critical_incident_response_plan(self, blue, event_bus, red_event, small_office):
        incident = detect(blue, event_bus, red_event)
        blue.tick(12, small_office)

        actions = [entry["action"] for entry in incident.response_actions]
        assert actions == ["Isolate Host", "Block IP Address", "Apply Emergency Patch"]
        assert names(event_bus).count("blue.response_start") == 3

    def test_medium_incident_gets_detection_hardening(self, blue, event_bus, red_event, small_office):
        red_event["log"] = "Recon complete: Port Scan -- discovered 2 hosts"
        incident = detect(blue, event_bus, red_event)
        blue.tick(12, small_office)
        assert [entry["action"] for entry in incident.response_actions] == ["Deploy YARA Rules"]

        blue.tick(13, small_office)
        blue.tick(14, small_office)
        assert blue.hardening_actions == 1
        hardening = [e for e in event_bus.timeline() if e["event"] == "blue.hardening"][0]
        assert hardening["details"]["type"] == "detection"

    def test_containment_isolates_node(self, blue, event_bus, red_event, small_office):
        node = small_office.node("srv-web")
        node.compromised = True
        incident = detect(blue, event_bus, red_event)
        blue.tick(12, small_office)

        blue.tick(13, small_office)  # Block IP Address (1 tick) resolves

        assert node.compromised is False
        assert node.isolated is True
        assert incident.status is IncidentStatus.CONTAINED
        assert incident.contained_at == 13

    def test_full_automatic_lifecycle(self, blue, event_bus, red_event, small_office):
        incident = detect(blue, event_bus, red_event)
        for tick in range(11, 17):
            blue.tick(tick, small_office)
            blue.close_remediated(tick)

        assert incident.status is IncidentStatus.REMEDIATED
        assert incident.remediated_at == 16
        assert small_office.node("srv-web").vulnerabilities == []
        assert small_office.node("srv-web").patch_level == "current"

        for tick in range(17, 20):
            blue.tick(tick, small_office)
            blue.close_remediated(tick)

        assert incident.status is IncidentStatus.CLOSED
        assert incident.closed_at == 16 + REMEDIATION_VERIFY_DELAY
        closed = [e for e in event_bus.timeline() if e["event"] == "blue.incident_closed"][0]
        assert closed["details"] == {
            "incident_id": 1,
            "detected_at": 10,
            "closed_at": 19,
            "resolution": "Incident closed after verification",
        }
        assert blue.resolved_incidents == 1

    def test_status_never_moves_backwards(self, blue, event_bus, red_event, small_office):
        incident = detect(blue, event_bus, red_event)
        blue._advance(incident, IncidentStatus.REMEDIATED, 11, "patched")

        assert blue._advance(incident, IncidentStatus.CONTAINED, 12, "late containment") is False
        assert incident.status is IncidentStatus.REMEDIATED
        ranks = [IncidentStatus(entry["status"]).rank for entry in incident.timeline]
        assert ranks == sorted(ranks)

    def test_remediated_closes_after_exactly_three_ticks(self, blue, event_bus, red_event):
        incident = detect(blue, event_bus, red_event)
        blue._advance(incident, IncidentStatus.REMEDIATED, 10, "patched")

        blue.close_remediated(12)
        assert incident.status is IncidentStatus.REMEDIATED
        blue.close_remediated(13)
        assert incident.status is IncidentStatus.CLOSED
        assert incident.closed_at == 13

    def test_failed_response(self, event_bus, red_event, small_office):
        blue = BlueTeamEngine(event_bus, rng=rolling(0.0), detection_rate=1.0)
        incident = detect(blue, event_bus, red_event)
        blue.tick(12, small_office)
        blue.rng.random.return_value = 0.99

        blue.tick(13, small_office)

        failed = [e for e in event_bus.timeline() if e["event"] == "blue.response_failed"]
        assert len(failed) == 1
        assert failed[0]["details"]["type"] == "containment"
        assert failed[0]["details"]["success"] is False
        assert incident.status is IncidentStatus.TRIAGED
        assert incident.response_actions[1]["outcome"] == "failed"

    def test_monitoring_summary_every_fifth_tick(self, blue, event_bus, small_office):
        for tick in range(1, 11):
            blue.tick(tick, small_office)
        monitoring = [e for e in event_bus.timeline() if e["event"] == "blue.monitoring"]
        assert [e["tick"] for e in monitoring] == [5, 10]
        assert monitoring[0]["details"]["open_incidents"] == 0


class TestManualResponses:

    def test_recovery_closes_incident_and_cancels_pending(self, blue, event_bus, red_event, small_office):
        node = small_office.node("srv-web")
        incident = detect(blue, event_bus, red_event)
        blue.tick(12, small_office)
        blue.tick(13, small_office)  # contained, node isolated
        assert node.isolated is True

        blue.initiate_response(incident.id, "Restore from Backup", 13)
        for tick in range(14, 20):
            blue.tick(tick, small_office)

        assert incident.status is IncidentStatus.CLOSED
        assert incident.closed_at == 19
        assert node.isolated is False
        assert node.status == "online"
        assert blue.active_responses == []
        outcomes = {entry["action"]: entry["outcome"] for entry in incident.response_actions}
        assert outcomes["Restore from Backup"] == "success"

        timeline = names(event_bus)
        assert timeline.index("blue.recovery") < timeline.index("blue.incident_closed")

    def test_closing_cancels_queued_responses(self, blue, event_bus, red_event, small_office):
        incident = detect(blue, event_bus, red_event)
        blue.tick(12, small_office)
        blue._advance(incident, IncidentStatus.CLOSED, 12, "false positive")

        assert blue.active_responses == []
        assert all(entry["outcome"] == "cancelled" for entry in incident.response_actions)

    def test_initiate_response_validation(self, blue, event_bus, red_event):
        with pytest.raises(ValueError, match="Unknown response action"):
            blue.initiate_response(1, "Pray", 1)
        with pytest.raises(ValueError, match="Unknown incident"):
            blue.initiate_response(99, "Isolate Host", 1)

        incident = detect(blue, event_bus, red_event)
        blue._advance(incident, IncidentStatus.CLOSED, 11, "done")
        with pytest.raises(ValueError, match="already closed"):
            blue.initiate_response(incident.id, "Isolate Host", 12)


def test_state_is_serialisable(blue, event_bus, red_event, small_office):
    detect(blue, event_bus, red_event)
    blue.tick(12, small_office)
    state = blue.get_state()
    assert state["incidents"][0]["status"] == "triaged"
    assert state["incidents"][0]["timeline"][0]["status"] == "detected"
    assert state["alerts"][0]["rule"] == "SQL Injection Detected"
    assert state["active_responses"] == 3
