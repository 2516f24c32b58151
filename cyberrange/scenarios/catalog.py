"""
Scenario catalog for the cyber-range simulator.

Responsibilities:

- Load scenario definitions from YAML
- Validate their structure
- Resolve scenario ids, falling back to the catalog default
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from cyberrange.agents.blue_team import FIREWALL_MATCH_MODES
from cyberrange.agents.catalog import MONITORING_MULTIPLIERS
from cyberrange.scoring.scoring_engine import DEFAULT_WEIGHTS

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalog.yaml"


@dataclass(frozen=True)
class ScenarioConfig:
    detection_rate: float = 0.5
    monitoring_level: str = "standard"
    scoring_weights: Mapping[str, float] = field(default_factory=dict)
    firewall_match: str = "any"

    def validate(self) -> None:
        """
        Raise ValueError if the engines would reject this tuning.
        """
        if not 0.0 <= self.detection_rate <= 1.0:
            raise ValueError(f"blue_detection_base must be between 0 and 1, got {self.detection_rate}")
        if self.monitoring_level not in MONITORING_MULTIPLIERS:
            raise ValueError(
                f"Unknown monitoring level {self.monitoring_level!r}; "
                f"expected one of {sorted(MONITORING_MULTIPLIERS)}"
            )
        if self.firewall_match not in FIREWALL_MATCH_MODES:
            raise ValueError(f"Unknown firewall match mode {self.firewall_match!r}; expected 'any' or 'all'")
        unknown = set(self.scoring_weights) - set(DEFAULT_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown scoring weights: {sorted(unknown)}")
        if any(value < 0 for value in self.scoring_weights.values()):
            raise ValueError("Scoring weights must be non-negative")
        if sum({**DEFAULT_WEIGHTS, **self.scoring_weights}.values()) <= 0:
            raise ValueError("Scoring weights must not all be zero")


@dataclass(frozen=True)
class Scenario:
    id: str
    name: str
    description: str
    topology: str
    duration: int
    difficulty: str = "medium"
    tags: tuple[str, ...] = ()
    config: ScenarioConfig = field(default_factory=ScenarioConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "topology": self.topology,
            "duration": self.duration,
            "difficulty": self.difficulty,
            "tags": list(self.tags),
            "config": {
                "detection_rate": self.config.detection_rate,
                "monitoring_level": self.config.monitoring_level,
                "scoring_weights": dict(self.config.scoring_weights),
                "firewall_match": self.config.firewall_match,
            },
        }


def _parse_scenario(entry: Any) -> Scenario:
    if not isinstance(entry, dict):
        raise ValueError("Each scenario must be a YAML mapping (dict)")

    for key in ("id", "topology", "duration"):
        if key not in entry:
            raise ValueError(f"Scenario is missing a '{key}' field")

    duration = entry["duration"]
    if not isinstance(duration, int) or duration <= 0:
        raise ValueError(f"Scenario {entry['id']!r} duration must be a positive integer")

    raw_config = entry.get("config") or {}
    if not isinstance(raw_config, dict):
        raise ValueError(f"Scenario {entry['id']!r} 'config' must be a mapping")

    weights = raw_config.get("scoring_weights") or {}
    if not isinstance(weights, dict):
        raise ValueError(f"Scenario {entry['id']!r} 'scoring_weights' must be a mapping")

    try:
        config = ScenarioConfig(
            detection_rate=float(raw_config.get("blue_detection_base", 0.5)),
            monitoring_level=raw_config.get("monitoring_level", "standard"),
            scoring_weights=MappingProxyType({name: float(value) for name, value in weights.items()}),
            firewall_match=raw_config.get("firewall_match", "any"),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Scenario {entry['id']!r} has a non-numeric config value: {exc}") from exc
    try:
        config.validate()
    except ValueError as exc:
        raise ValueError(f"Scenario {entry['id']!r}: {exc}") from exc

    return Scenario(
        id=str(entry["id"]),
        name=entry.get("name", entry["id"]),
        description=entry.get("description", ""),
        topology=entry["topology"],
        duration=duration,
        difficulty=entry.get("difficulty", "medium"),
        tags=tuple(entry.get("tags") or ()),
        config=config,
    )


class ScenarioCatalog:
    """
    Immutable id -> Scenario mapping with a default for unknown ids.
    """

    def __init__(self, scenarios: list[Scenario], default_id: str | None = None) -> None:
        if not scenarios:
            raise ValueError("Scenario catalog is empty")
        self._scenarios: Mapping[str, Scenario] = MappingProxyType({s.id: s for s in scenarios})
        self.default_id = default_id or scenarios[0].id
        if self.default_id not in self._scenarios:
            raise ValueError(f"Default scenario {self.default_id!r} is not in the catalog")

    @classmethod
    def load(cls, path: Path = DEFAULT_CATALOG_PATH) -> ScenarioCatalog:
        """
        Load a catalog YAML from disk and validate structure.
        """
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)

        if not isinstance(data, dict):
            raise ValueError("Scenario catalog must be a YAML mapping (dict)")

        if "scenarios" not in data:
            raise ValueError("Scenario catalog is missing a 'scenarios' section")

        if not isinstance(data["scenarios"], list):
            raise ValueError("'scenarios' must be a list of scenario definitions")

        scenarios = [_parse_scenario(entry) for entry in data["scenarios"]]
        return cls(scenarios, data.get("default"))

    def ids(self) -> list[str]:
        return list(self._scenarios)

    def __contains__(self, scenario_id: str) -> bool:
        return scenario_id in self._scenarios

    def __iter__(self):
        return iter(self._scenarios.values())

    def get(self, scenario_id: str | None) -> Scenario:
        """
        Return a scenario by id, or the default one for an unknown id.
        """
        scenario = self._scenarios.get(scenario_id) if scenario_id else None
        if scenario is None:
            logger.warning("Unknown scenario %r, falling back to %r", scenario_id, self.default_id)
            scenario = self._scenarios[self.default_id]
        return scenario
