# cyberrange/output/report.py
"""
After-action report built from a final orchestrator snapshot.
"""
from __future__ import annotations

from collections import Counter
from typing import Any

from cyberrange.engine.event_bus import event_details

OUTCOME_EVENTS = ("red.recon_complete", "red.exploit_result", "red.post_exploit_result")


def build_report(snapshot: dict[str, Any], top: int = 5) -> dict[str, Any]:
    timeline = snapshot.get("timeline") or []
    red = snapshot.get("red_team") or {}
    blue = snapshot.get("blue_team") or {}
    scoring = snapshot.get("scoring") or {}
    nodes = (snapshot.get("topology") or {}).get("nodes") or []

    outcomes = [event for event in timeline if event.get("event") in OUTCOME_EVENTS]
    techniques = Counter(event_details(event).get("action", "unknown") for event in outcomes)
    detections = sum(1 for event in timeline if event.get("event") == "blue.detection")
    blocks = sum(1 for event in timeline if event.get("event") == "blue.firewall_block")
    statuses = Counter(incident["status"] for incident in blue.get("incidents", []))

    total = red.get("total_attacks", 0)
    return {
        "scenario": (snapshot.get("scenario") or {}).get("id"),
        "seed": snapshot.get("seed"),
        "ticks": snapshot.get("tick", 0),
        "status": snapshot.get("status"),
        "total_attacks": total,
        "successful_attacks": red.get("successful_attacks", 0),
        "success_rate": red.get("successful_attacks", 0) / total if total else 0.0,
        "detections": detections,
        "firewall_blocks": blocks,
        "detection_rate": (detections + blocks) / len(outcomes) if outcomes else 0.0,
        "top_attack_types": techniques.most_common(top),
        "incidents": dict(statuses),
        "compromised_nodes": [node["id"] for node in nodes if node.get("compromised")],
        "isolated_nodes": [node["id"] for node in nodes if node.get("isolated")],
        "scores": {
            "blue": scoring.get("blue_team_score", 0),
            "red": scoring.get("red_team_score", 0),
            "overall_blue": scoring.get("overall_blue_score", 0),
        },
    }


def format_report(report: dict[str, Any]) -> list[str]:
    lines = [
        f"=== After-action report: {report['scenario']} (seed {report['seed']}) ===",
        f"Ticks run:         {report['ticks']} ({report['status']})",
        f"Attacks:           {report['successful_attacks']}/{report['total_attacks']} successful "
        f"({report['success_rate']:.0%})",
        f"Detections:        {report['detections']} alerts, {report['firewall_blocks']} firewall blocks "
        f"({report['detection_rate']:.0%} of attacker actions)",
        f"Incidents:         {', '.join(f'{k}={v}' for k, v in sorted(report['incidents'].items())) or 'none'}",
        f"Compromised nodes: {', '.join(report['compromised_nodes']) or 'none'}",
        f"Isolated nodes:    {', '.join(report['isolated_nodes']) or 'none'}",
        "Top techniques:",
    ]
    lines.extend(f"  {count:>3} x {name}" for name, count in report["top_attack_types"])
    scores = report["scores"]
    lines.append(f"Scores:            Blue {scores['blue']} | Red {scores['red']} | Overall {scores['overall_blue']}/100")
    return lines
