# cyberrange/cli.py

from __future__ import annotations
import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, List

from cyberrange.engine.context import SimulationContext
from cyberrange.engine.orchestrator import ALLOWED_SPEEDS, SimulationOrchestrator
from cyberrange.engine.scheduler import VirtualScheduler, WallClockScheduler
from cyberrange.output.adapter import SimulationAdapter
from cyberrange.output.report import build_report, format_report
from cyberrange.scenarios.catalog import DEFAULT_CATALOG_PATH, ScenarioCatalog

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def parse_block(value: str) -> dict[str, str]:
    """
    Parse ``IP:PORT`` into a Block rule; either side may be ``*``.
    """
    ip, sep, port = value.rpartition(":")
    if not sep:
        ip, port = value, "*"
    if not ip or not port:
        raise argparse.ArgumentTypeError(f"Invalid firewall rule {value!r}, expected IP:PORT")
    return {"ip": ip, "port": port, "action": "Block"}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="cyberrange.cli",
        description="Run a red/blue cyber-range scenario and print the event stream",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "scenario",
        nargs="?",
        default=None,
        help="Scenario id from the catalog (catalog default when omitted)",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=DEFAULT_CATALOG_PATH,
        help="Path to the scenario catalog YAML file",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List the scenarios in the catalog and exit",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="RNG seed; runs with the same seed and commands are identical",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=None,
        help="Override the scenario duration in ticks",
    )
    parser.add_argument(
        "--speed",
        type=int,
        choices=ALLOWED_SPEEDS,
        default=1,
        help="Tick rate multiplier (ticks fire every 1000/speed ms of simulated time)",
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Sleep between ticks instead of running as fast as possible",
    )
    parser.add_argument(
        "--block",
        type=parse_block,
        action="append",
        default=[],
        metavar="IP:PORT",
        help="Add a firewall Block rule before starting (repeatable, '*' matches anything)",
    )
    parser.add_argument(
        "--output",
        choices=["cli", "json"],
        default="cli",
        help="Output mode: 'cli' prints lines to stdout; 'json' dumps events and the report to a JSON file",
    )
    parser.add_argument(
        "--json-file",
        type=Path,
        default=Path("simulation_output.json"),
        help="Path to JSON output file if --output=json",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="WARNING",
        help="Diagnostic logging level (written to stderr)",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.catalog.exists():
        print(f"Scenario catalog not found: {args.catalog}", file=sys.stderr)
        return 1

    try:
        catalog = ScenarioCatalog.load(args.catalog)
    except (OSError, ValueError) as exc:
        print(f"Failed to load scenario catalog: {exc}", file=sys.stderr)
        return 2

    if args.list:
        for scenario in catalog:
            marker = "*" if scenario.id == catalog.default_id else " "
            print(
                f"{marker} {scenario.id:<16} {scenario.topology:<13} {scenario.duration:>4} ticks  "
                f"[{scenario.difficulty}] {scenario.name}"
            )
        return 0

    scenario_id = args.scenario or catalog.default_id
    if scenario_id not in catalog:
        print(f"Scenario not found: {scenario_id} (try --list)", file=sys.stderr)
        return 1

    if args.ticks is not None and args.ticks <= 0:
        print(f"--ticks must be a positive integer, got {args.ticks}", file=sys.stderr)
        return 1

    # Initialize components
    context = SimulationContext.create(seed=args.seed)
    if args.realtime:
        scheduler = WallClockScheduler(context.clock)
    else:
        scheduler = VirtualScheduler(context.clock)
    adapter = SimulationAdapter()

    transformed_lines: List[str] = []
    transformed_events: List[dict[str, Any]] = []
    seen = 0

    def handle_state(snapshot: dict[str, Any]) -> None:
        # Snapshots carry the full timeline; only the new tail is rendered.
        nonlocal seen
        timeline = snapshot["timeline"]
        if len(timeline) < seen:
            seen = 0
        for event in timeline[seen:]:
            lines = [line for line in adapter.transform(event) if line]
            for line in lines:
                transformed_lines.append(line)
                if args.output == "cli":
                    print(line, flush=args.realtime)
            transformed_events.append({"lines": lines, "event": event})
        seen = len(timeline)

    orchestrator = SimulationOrchestrator(
        context=context,
        catalog=catalog,
        scheduler=scheduler,
        on_state=handle_state,
    )

    try:
        orchestrator.load_scenario(scenario_id)
    except ValueError as exc:
        print(f"Failed to load scenario: {exc}", file=sys.stderr)
        return 2
    if args.ticks is not None:
        orchestrator.max_ticks = args.ticks
    orchestrator.set_speed(args.speed)
    for rule in args.block:
        orchestrator.add_firewall_rule(rule)

    # Run simulation
    try:
        snapshot = orchestrator.run_to_completion()
    except KeyboardInterrupt:
        orchestrator.pause()
        snapshot = orchestrator.get_state()
        print(f"Interrupted at tick {snapshot['tick']}", file=sys.stderr)
    except Exception as exc:
        print(f"Simulation failed: {exc}", file=sys.stderr)
        return 3
    finally:
        orchestrator.destroy()

    report = build_report(snapshot)

    if args.output == "cli":
        print()
        for line in format_report(report):
            print(line)
        return 0

    # Dump JSON output
    try:
        args.json_file.parent.mkdir(parents=True, exist_ok=True)
        with args.json_file.open("w", encoding="utf-8") as f:
            json.dump(
                {
                    "scenario": scenario_id,
                    "seed": context.seed,
                    "report": report,
                    "events": transformed_events,
                },
                f,
                indent=2,
            )
        print(f"Simulation JSON dumped to {args.json_file}")
    except (OSError, TypeError, ValueError) as exc:
        print(f"Failed to write JSON file: {exc}", file=sys.stderr)
        return 4

    return 0  # success


if __name__ == "__main__":

    signal.signal(signal.SIGPIPE, signal.SIG_DFL)  # Ignore broken pipe
    sys.exit(main())
