"""
Network topology model.

A topology is built once per scenario load from a named preset: a fixed
skeleton of nodes and links, with services and vulnerabilities drawn at
random for each node. The node and edge sets never change afterwards;
only node attributes (compromised, isolated, patch level, ...) are
mutated by the engines during a tick.
"""

from __future__ import annotations

import logging
import random
from dataclasses import asdict, dataclass, field
from typing import Any

import networkx as nx

from cyberrange.network.catalog import (
    OS_TYPES,
    SERVICE_CATALOG,
    VULNERABILITY_CATALOG,
    NodeType,
    service_count_range,
)

logger = logging.getLogger(__name__)

DEFAULT_PRESET = "enterprise"


@dataclass
class Service:
    name: str
    port: int
    status: str = "running"


@dataclass
class Vulnerability:
    id: str
    name: str
    severity: str
    cvss: float
    service: str


@dataclass
class Node:
    id: str
    name: str
    type: NodeType
    ip: str
    os: str
    services: list[Service] = field(default_factory=list)
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    status: str = "online"
    compromised: bool = False
    isolated: bool = False
    patch_level: str = "current"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


class Topology:
    """
    Ordered nodes plus an undirected, frozen adjacency graph.
    """

    def __init__(self, preset: str, nodes: list[Node], connections: list[tuple[str, str]]) -> None:
        self.preset = preset
        self._nodes: dict[str, Node] = {node.id: node for node in nodes}

        graph = nx.Graph()
        graph.add_nodes_from(self._nodes)
        for source, target in connections:
            if source not in self._nodes or target not in self._nodes:
                raise ValueError(f"Connection {source}-{target} references an unknown node")
            graph.add_edge(source, target)
        self.graph = nx.freeze(graph)
        self._connections: tuple[tuple[str, str], ...] = tuple(connections)

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(self._nodes.values())

    @property
    def connections(self) -> tuple[tuple[str, str], ...]:
        return self._connections

    def node(self, node_id: str | None) -> Node | None:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def neighbors(self, node_id: str) -> list[Node]:
        if node_id not in self._nodes:
            return []
        return [self._nodes[other] for other in self.graph.neighbors(node_id)]

    def to_dict(self) -> dict[str, Any]:
        """Deep copy of nodes and edges for snapshots."""
        return {
            "preset": self.preset,
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "connections": [list(edge) for edge in self._connections],
        }


# (node id, type, subnet, index in subnet, display name)
NodeSpec = tuple[str, NodeType, str, int, str]

PRESETS: dict[str, tuple[tuple[NodeSpec, ...], tuple[tuple[str, str], ...]]] = {
    "small_office": (
        (
            ("router-1", NodeType.ROUTER, "192.168.1", 0, "Gateway Router"),
            ("fw-1", NodeType.FIREWALL, "192.168.1", 1, "Perimeter Firewall"),
            ("srv-web", NodeType.SERVER, "192.168.1", 2, "Web Server"),
            ("srv-file", NodeType.SERVER, "192.168.1", 3, "File Server"),
            ("ws-1", NodeType.WORKSTATION, "192.168.1", 4, "Workstation Alpha"),
            ("ws-2", NodeType.WORKSTATION, "192.168.1", 5, "Workstation Beta"),
            ("db-1", NodeType.DATABASE, "192.168.1", 6, "Database Server"),
        ),
        (
            ("router-1", "fw-1"),
            ("fw-1", "srv-web"), ("fw-1", "srv-file"), ("fw-1", "db-1"),
            ("srv-file", "ws-1"), ("srv-file", "ws-2"),
            ("srv-web", "db-1"),
        ),
    ),
    "enterprise": (
        (
            # DMZ
            ("router-ext", NodeType.ROUTER, "10.0.1", 0, "External Router"),
            ("fw-ext", NodeType.FIREWALL, "10.0.1", 1, "External Firewall"),
            ("srv-web1", NodeType.SERVER, "10.0.1", 2, "Web Server 1"),
            ("srv-web2", NodeType.SERVER, "10.0.1", 3, "Web Server 2"),
            ("srv-mail", NodeType.SERVER, "10.0.1", 4, "Mail Server"),
            ("srv-dns", NodeType.SERVER, "10.0.1", 5, "DNS Server"),
            # Internal
            ("fw-int", NodeType.FIREWALL, "10.0.2", 0, "Internal Firewall"),
            ("srv-ad", NodeType.SERVER, "10.0.2", 1, "Active Directory"),
            ("srv-file", NodeType.SERVER, "10.0.2", 2, "File Server"),
            ("db-primary", NodeType.DATABASE, "10.0.2", 3, "Primary Database"),
            ("db-backup", NodeType.DATABASE, "10.0.2", 4, "Backup Database"),
            ("ws-admin", NodeType.WORKSTATION, "10.0.2", 5, "Admin Workstation"),
            ("ws-dev1", NodeType.WORKSTATION, "10.0.2", 6, "Dev Workstation 1"),
            ("ws-dev2", NodeType.WORKSTATION, "10.0.2", 7, "Dev Workstation 2"),
            ("ws-hr", NodeType.WORKSTATION, "10.0.2", 8, "HR Workstation"),
            ("wap-1", NodeType.WIRELESS_AP, "10.0.2", 9, "Wireless AP"),
        ),
        (
            ("router-ext", "fw-ext"),
            ("fw-ext", "srv-web1"), ("fw-ext", "srv-web2"), ("fw-ext", "srv-mail"), ("fw-ext", "srv-dns"),
            ("fw-ext", "fw-int"),
            ("fw-int", "srv-ad"), ("fw-int", "srv-file"), ("fw-int", "db-primary"),
            ("db-primary", "db-backup"),
            ("srv-ad", "ws-admin"), ("srv-ad", "ws-dev1"), ("srv-ad", "ws-dev2"), ("srv-ad", "ws-hr"),
            ("srv-file", "ws-dev1"), ("srv-file", "ws-dev2"),
            ("wap-1", "fw-int"),
            ("srv-web1", "db-primary"), ("srv-web2", "db-primary"),
        ),
    ),
    "dmz_network": (
        (
            ("router-1", NodeType.ROUTER, "172.16.0", 0, "Border Router"),
            ("fw-outer", NodeType.FIREWALL, "172.16.0", 1, "Outer Firewall"),
            ("srv-proxy", NodeType.SERVER, "172.16.1", 0, "Reverse Proxy"),
            ("srv-web", NodeType.SERVER, "172.16.1", 1, "Public Web Server"),
            ("srv-api", NodeType.SERVER, "172.16.1", 2, "API Gateway"),
            ("fw-inner", NodeType.FIREWALL, "172.16.2", 0, "Inner Firewall"),
            ("srv-app", NodeType.SERVER, "172.16.2", 1, "App Server"),
            ("db-main", NodeType.DATABASE, "172.16.2", 2, "Main Database"),
            ("srv-backup", NodeType.SERVER, "172.16.2", 3, "Backup Server"),
            ("ws-sec", NodeType.WORKSTATION, "172.16.2", 4, "Security Ops"),
            ("ws-mgmt", NodeType.WORKSTATION, "172.16.2", 5, "Management Console"),
        ),
        (
            ("router-1", "fw-outer"),
            ("fw-outer", "srv-proxy"), ("fw-outer", "srv-web"), ("fw-outer", "srv-api"),
            ("srv-proxy", "fw-inner"), ("srv-api", "fw-inner"),
            ("fw-inner", "srv-app"), ("fw-inner", "db-main"), ("fw-inner", "srv-backup"),
            ("fw-inner", "ws-sec"), ("fw-inner", "ws-mgmt"),
            ("srv-app", "db-main"), ("db-main", "srv-backup"),
        ),
    ),
}


def _generate_node(spec: NodeSpec, rng: random.Random) -> Node:
    node_id, node_type, subnet, index, name = spec

    low, high = service_count_range(node_type)
    count = rng.randint(low, high)
    catalog = list(SERVICE_CATALOG.values())
    vuln_pool = list(VULNERABILITY_CATALOG.values())

    services: list[Service] = []
    vulnerabilities: list[Vulnerability] = []
    for svc in rng.sample(catalog, min(count, len(catalog))):
        services.append(Service(name=svc.name, port=svc.port))
        if rng.random() < svc.vuln_chance:
            vuln = rng.choice(vuln_pool)
            vulnerabilities.append(
                Vulnerability(
                    id=vuln.id,
                    name=vuln.name,
                    severity=vuln.severity,
                    cvss=vuln.cvss,
                    service=svc.name,
                )
            )

    return Node(
        id=node_id,
        name=name,
        type=node_type,
        ip=f"{subnet}.{index + 10}",
        os=rng.choice(OS_TYPES),
        services=services,
        vulnerabilities=vulnerabilities,
        patch_level="current" if rng.random() > 0.5 else "outdated",
    )


def build_topology(preset: str = DEFAULT_PRESET, rng: random.Random | None = None) -> Topology:
    """
    Build a fresh topology from a named preset.

    Unknown presets fall back to the enterprise layout. The node/edge
    skeleton is fixed per preset; services, vulnerabilities, OS labels
    and patch levels depend on ``rng``.
    """
    rng = rng or random.Random()
    if preset not in PRESETS:
        logger.warning("Unknown topology preset %r, using %r", preset, DEFAULT_PRESET)
        preset = DEFAULT_PRESET

    node_specs, connections = PRESETS[preset]
    nodes = [_generate_node(spec, rng) for spec in node_specs]
    topology = Topology(preset, nodes, list(connections))
    logger.debug(
        "Built %s topology: %d nodes, %d links, %d vulnerabilities",
        preset,
        len(nodes),
        len(connections),
        sum(len(node.vulnerabilities) for node in nodes),
    )
    return topology
