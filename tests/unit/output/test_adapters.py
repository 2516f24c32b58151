"""
Unit tests for the cyberrange.output adapters and report.
"""
from cyberrange.output import (
    Adapter,
    BlueAdapter,
    RedAdapter,
    SimulationAdapter,
    SystemAdapter,
    build_report,
    format_report,
    write_simulation_logs,
)

# 2024-01-01T00:00:05Z
TS = 1_704_067_205_000


def make_event(name, **fields):
    event = {"id": 1, "event": name, "timestamp": TS, "tick": 5, "severity": "info"}
    event.update(fields)
    return event


class TestBaseAdapter:

    def test_transform_returns_empty(self):
        assert list(Adapter().transform(make_event("x"))) == []

    def test_prefix(self):
        prefix = Adapter.prefix(make_event("red.x", severity="warning"), "RED")
        assert prefix.startswith("00:00:05 T+005 [RED] WARNING")


class TestRedAdapter:

    def test_outcome_line_includes_detect_chance(self):
        event = make_event("red.exploit_result", log="Exploit failed: RDP Exploit on Alpha", detect_chance=0.5)
        lines = list(RedAdapter().transform(event))
        assert len(lines) == 1
        assert lines[0].endswith("Exploit failed: RDP Exploit on Alpha (detect 50%)")

    def test_action_start_has_no_chance(self):
        event = make_event("red.action_start", log="Starting: Port Scan")
        assert list(RedAdapter().transform(event))[0].endswith("Starting: Port Scan")

    def test_events_without_log_produce_nothing(self):
        assert list(RedAdapter().transform(make_event("red.phase_change"))) == []


class TestBlueAdapter:

    def test_detection_includes_probability(self):
        event = make_event("blue.detection", log="ALERT: Brute Force Attempt", details={"chance": 0.4})
        assert list(BlueAdapter().transform(event))[0].endswith("ALERT: Brute Force Attempt (p=0.40)")

    def test_containment_names_node(self):
        event = make_event("blue.containment", log="Containment successful", details={"target_id": "ws-1"})
        assert list(BlueAdapter().transform(event))[0].endswith("[node ws-1]")

    def test_triage_line(self):
        event = make_event("blue.triage", log="Incident #1 triaged", details={"incident_id": 1})
        line = list(BlueAdapter().transform(event))[0]
        assert "[BLUE]" in line
        assert line.endswith("Incident #1 triaged")


class TestSystemAdapter:

    def test_complete_expands_metrics(self):
        details = {
            "detection_latency": {"raw": 1.5, "score": 78, "samples": 4},
            "recovery_time": {"raw": 0.0, "score": 100, "samples": 0},
        }
        event = make_event("sim.complete", log="Simulation COMPLETE", details=details)
        lines = list(SystemAdapter().transform(event))
        assert len(lines) == 3
        assert "Detection latency" in lines[1]
        assert "78/100" in lines[1]

    def test_plain_event_uses_name_without_log(self):
        lines = list(SystemAdapter().transform(make_event("sim.pause")))
        assert lines[0].endswith("sim.pause")


class TestSimulationAdapter:

    def test_dispatch_by_namespace(self):
        adapter = SimulationAdapter()
        assert "[RED]" in adapter.transform(make_event("red.action_start", log="x"))[0]
        assert "[BLUE]" in adapter.transform(make_event("blue.monitoring", log="x"))[0]
        assert "[SIM]" in adapter.transform(make_event("sim.start", log="x"))[0]
        assert adapter.transform(make_event("other.thing", log="x")) == []

    def test_write_simulation_logs(self, tmp_path):
        events = [
            make_event("sim.start", log="Simulation STARTED"),
            make_event("red.action_start", log="Starting: Port Scan"),
            make_event("blue.detection", log="ALERT", details={"chance": "not a number"}),
        ]
        out = tmp_path / "logs" / "run.log"

        write_simulation_logs(events, out)

        lines = out.read_text().splitlines()
        assert len(lines) == 2
        assert lines[0].endswith("Simulation STARTED")


class TestReport:

    def _snapshot(self):
        timeline = [
            make_event("red.recon_complete", details={"action": "Port Scan"}),
            make_event("red.exploit_result", details={"action": "SQL Injection"}),
            make_event("red.exploit_result", details={"action": "SQL Injection"}),
            make_event("red.post_exploit_result", details={"action": "Lateral Movement"}),
            make_event("blue.detection", details={}),
            make_event("blue.firewall_block", details={}),
        ]
        return {
            "status": "complete",
            "tick": 60,
            "seed": 7,
            "scenario": {"id": "training_basic"},
            "topology": {
                "nodes": [
                    {"id": "ws-1", "compromised": True, "isolated": False},
                    {"id": "db-1", "compromised": False, "isolated": True},
                ]
            },
            "red_team": {"total_attacks": 4, "successful_attacks": 3},
            "blue_team": {"incidents": [{"status": "closed"}, {"status": "triaged"}, {"status": "closed"}]},
            "scoring": {"blue_team_score": 20, "red_team_score": 38, "overall_blue_score": 61},
            "timeline": timeline,
        }

    def test_build_report(self):
        report = build_report(self._snapshot())
        assert report["scenario"] == "training_basic"
        assert report["success_rate"] == 0.75
        assert report["detection_rate"] == 0.5
        assert report["top_attack_types"][0] == ("SQL Injection", 2)
        assert report["incidents"] == {"closed": 2, "triaged": 1}
        assert report["compromised_nodes"] == ["ws-1"]
        assert report["isolated_nodes"] == ["db-1"]
        assert report["scores"]["overall_blue"] == 61

    def test_build_report_on_empty_snapshot(self):
        report = build_report({})
        assert report["total_attacks"] == 0
        assert report["success_rate"] == 0.0
        assert report["detection_rate"] == 0.0

    def test_format_report(self):
        lines = format_report(build_report(self._snapshot()))
        assert lines[0].startswith("=== After-action report: training_basic")
        assert any("2 x SQL Injection" in line for line in lines)
        assert lines[-1].endswith("Overall 61/100")
