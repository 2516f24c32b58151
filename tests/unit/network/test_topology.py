"""
Unit tests for cyberrange/network/topology.py
"""
import logging
import random

import networkx as nx
import pytest

from cyberrange.network.catalog import SERVICE_CATALOG, NodeType, service_count_range
from cyberrange.network.topology import PRESETS, Node, Topology, build_topology


@pytest.mark.parametrize(
    "preset, nodes, links",
    [
        ("small_office", 7, 7),
        ("enterprise", 16, 19),
        ("dmz_network", 11, 13),
    ],
)
def test_preset_shapes(preset, nodes, links):
    topology = build_topology(preset, random.Random(1))
    assert topology.preset == preset
    assert len(topology.nodes) == nodes
    assert len(topology.connections) == links
    assert topology.graph.number_of_edges() == links


def test_unknown_preset_falls_back_to_enterprise(caplog):
    with caplog.at_level(logging.WARNING):
        topology = build_topology("moon_base", random.Random(1))
    assert topology.preset == "enterprise"
    assert "moon_base" in caplog.text


def test_nodes_start_clean(small_office):
    for node in small_office.nodes:
        assert node.status == "online"
        assert node.compromised is False
        assert node.isolated is False
        assert node.patch_level in ("current", "outdated")


def test_ip_addresses_follow_subnet_index(small_office):
    assert small_office.node("router-1").ip == "192.168.1.10"
    assert small_office.node("db-1").ip == "192.168.1.16"


def test_service_counts_follow_node_type(rng):
    topology = build_topology("enterprise", rng)
    for node in topology.nodes:
        low, high = service_count_range(node.type)
        assert low <= len(node.services) <= high
        names = [svc.name for svc in node.services]
        assert len(names) == len(set(names))
        for svc in node.services:
            assert SERVICE_CATALOG[svc.name].port == svc.port


def test_vulnerabilities_are_tied_to_node_services(rng):
    topology = build_topology("enterprise", rng)
    for node in topology.nodes:
        services = {svc.name for svc in node.services}
        for vuln in node.vulnerabilities:
            assert vuln.service in services
            assert vuln.id.startswith("CVE-")


def test_same_seed_same_topology():
    first = build_topology("dmz_network", random.Random(99)).to_dict()
    second = build_topology("dmz_network", random.Random(99)).to_dict()
    assert first == second


def test_skeleton_is_fixed_per_preset():
    first = build_topology("small_office", random.Random(1))
    second = build_topology("small_office", random.Random(2))
    assert [n.id for n in first.nodes] == [n.id for n in second.nodes]
    assert first.connections == second.connections


def test_graph_is_frozen(small_office):
    assert nx.is_frozen(small_office.graph)
    with pytest.raises(nx.NetworkXError):
        small_office.graph.add_edge("ws-1", "ws-2")


def test_neighbors(small_office):
    neighbors = {node.id for node in small_office.neighbors("fw-1")}
    assert neighbors == {"router-1", "srv-web", "srv-file", "db-1"}
    assert small_office.neighbors("nope") == []


def test_node_lookup(small_office):
    assert small_office.node("ws-1").name == "Workstation Alpha"
    assert small_office.node("missing") is None
    assert small_office.node(None) is None


def test_connection_to_unknown_node_rejected():
    node = Node(id="a", name="A", type=NodeType.SERVER, ip="10.0.0.1", os="Linux")
    with pytest.raises(ValueError, match="unknown node"):
        Topology("custom", [node], [("a", "b")])


def test_to_dict_is_detached(small_office):
    data = small_office.to_dict()
    data["nodes"][0]["compromised"] = True
    assert small_office.nodes[0].compromised is False
    assert data["nodes"][0]["type"] == small_office.nodes[0].type.value


def test_every_preset_connection_is_known():
    for node_specs, connections in PRESETS.values():
        ids = {spec[0] for spec in node_specs}
        for source, target in connections:
            assert source in ids and target in ids
