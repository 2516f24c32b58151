"""
Reference data for topology generation.

Node types, OS labels, the service catalog and the vulnerability
catalog. Everything here is immutable and keyed by name or id.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType


class NodeType(str, Enum):
    ROUTER = "router"
    FIREWALL = "firewall"
    SERVER = "server"
    WORKSTATION = "workstation"
    DATABASE = "database"
    WIRELESS_AP = "wireless_ap"


OS_TYPES: tuple[str, ...] = (
    "Linux",
    "Windows Server 2019",
    "Windows 10",
    "Ubuntu 22.04",
    "CentOS 8",
    "pfSense",
)


@dataclass(frozen=True)
class ServiceDefinition:
    name: str
    port: int
    vuln_chance: float


@dataclass(frozen=True)
class VulnerabilityDefinition:
    id: str
    name: str
    severity: str
    cvss: float


SERVICE_CATALOG = MappingProxyType(
    {
        svc.name: svc
        for svc in (
            ServiceDefinition("SSH", 22, 0.2),
            ServiceDefinition("HTTP", 80, 0.3),
            ServiceDefinition("HTTPS", 443, 0.15),
            ServiceDefinition("FTP", 21, 0.4),
            ServiceDefinition("SMB", 445, 0.35),
            ServiceDefinition("RDP", 3389, 0.3),
            ServiceDefinition("MySQL", 3306, 0.25),
            ServiceDefinition("DNS", 53, 0.1),
            ServiceDefinition("SMTP", 25, 0.2),
            ServiceDefinition("PostgreSQL", 5432, 0.2),
        )
    }
)

VULNERABILITY_CATALOG = MappingProxyType(
    {
        vuln.id: vuln
        for vuln in (
            VulnerabilityDefinition("CVE-2024-0001", "Remote Code Execution in SSH", "critical", 9.8),
            VulnerabilityDefinition("CVE-2024-0002", "SQL Injection in Web App", "high", 8.5),
            VulnerabilityDefinition("CVE-2024-0003", "Buffer Overflow in FTP", "critical", 9.1),
            VulnerabilityDefinition("CVE-2024-0004", "Privilege Escalation via SMB", "high", 8.0),
            VulnerabilityDefinition("CVE-2024-0005", "Weak Credentials on RDP", "medium", 6.5),
            VulnerabilityDefinition("CVE-2024-0006", "Directory Traversal in HTTP", "high", 7.5),
            VulnerabilityDefinition("CVE-2024-0007", "Outdated TLS Configuration", "medium", 5.9),
            VulnerabilityDefinition("CVE-2024-0008", "Default Credentials on DB", "critical", 9.0),
            VulnerabilityDefinition("CVE-2024-0009", "Cross-Site Scripting in HTTPS", "medium", 6.1),
            VulnerabilityDefinition("CVE-2024-0010", "DNS Zone Transfer Allowed", "low", 4.3),
        )
    }
)


def service_count_range(node_type: NodeType) -> tuple[int, int]:
    """Inclusive (min, max) number of services a node of this type runs."""
    if node_type is NodeType.SERVER:
        return 3, 5
    if node_type is NodeType.DATABASE:
        return 2, 2
    if node_type is NodeType.WORKSTATION:
        return 1, 2
    return 1, 1
