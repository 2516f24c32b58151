"""
Static catalogs shared by the Red and Blue Team engines.

Attack techniques per phase, IDS signature rules, and the response
playbook. All tables are immutable mappings resolved once at import.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType


class AttackPhase(str, Enum):
    RECON = "reconnaissance"
    EXPLOIT = "exploitation"
    POST_EXPLOIT = "post_exploitation"


class DetectionMethod(str, Enum):
    SIGNATURE = "signature"
    ANOMALY = "anomaly"
    HEURISTIC = "heuristic"
    BEHAVIORAL = "behavioral"


class IncidentStatus(str, Enum):
    DETECTED = "detected"
    TRIAGED = "triaged"
    CONTAINED = "contained"
    REMEDIATED = "remediated"
    CLOSED = "closed"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = list(IncidentStatus)


class ResponseType(str, Enum):
    CONTAINMENT = "containment"
    REMEDIATION = "remediation"
    RECOVERY = "recovery"
    DETECTION = "detection"


@dataclass(frozen=True)
class ActionDefinition:
    name: str
    description: str
    duration: int
    detect_chance: float
    success_base: float = 1.0
    port: int | None = None


@dataclass(frozen=True)
class IDSRule:
    name: str
    pattern: str
    severity: str
    method: DetectionMethod


@dataclass(frozen=True)
class ResponseDefinition:
    name: str
    type: ResponseType
    duration: int
    effectiveness: float


def _by_name(*entries):
    return MappingProxyType({entry.name: entry for entry in entries})


RECON_ACTIONS = _by_name(
    ActionDefinition("Network Sweep", "ICMP sweep to discover live hosts", 2, 0.15),
    ActionDefinition("Port Scan", "TCP SYN scan on discovered hosts", 3, 0.3),
    ActionDefinition("Service Enumeration", "Banner grabbing and version detection", 2, 0.25),
    ActionDefinition("Vulnerability Scan", "Automated vulnerability assessment", 4, 0.45),
    ActionDefinition("DNS Enumeration", "DNS zone transfer and subdomain discovery", 2, 0.1, port=53),
    ActionDefinition("OSINT Gathering", "Open-source intelligence collection", 1, 0.0),
)

EXPLOIT_ACTIONS = _by_name(
    ActionDefinition("Credential Brute Force", "Dictionary attack on authentication services", 5, 0.6, 0.4, port=22),
    ActionDefinition("SQL Injection", "Exploiting SQL injection in web application", 3, 0.35, 0.5, port=80),
    ActionDefinition("Buffer Overflow", "Memory corruption exploit on vulnerable service", 4, 0.4, 0.35, port=21),
    ActionDefinition("Phishing Payload", "Spear-phishing email with malicious payload", 2, 0.2, 0.45, port=25),
    ActionDefinition("RDP Exploit", "Exploiting RDP vulnerability (BlueKeep variant)", 3, 0.5, 0.3, port=3389),
    ActionDefinition("Web Shell Upload", "Uploading web shell via file upload vulnerability", 3, 0.3, 0.4, port=443),
    ActionDefinition("Stored XSS", "Injects malicious script persistently into target database", 4, 0.4, 0.6, port=443),
    ActionDefinition("Reflected XSS", "Injects script via crafted URL to target victims", 3, 0.5, 0.5, port=80),
    ActionDefinition("CSRF", "Forces user to execute unwanted actions on auth session", 3, 0.3, 0.5, port=443),
    ActionDefinition("Ransomware Simulation", "Simulates encrypting filesystem and demanding ransom", 8, 0.8, 0.3, port=445),
    ActionDefinition("Privilege Escalation", "Attempts to gain root/admin access via misconfigurations", 6, 0.5, 0.4),
    ActionDefinition("Reverse Shell", "Opens interactive shell connection back to attacker", 5, 0.7, 0.45, port=4444),
    ActionDefinition("SYN Flood (DDoS)", "Simulates massive volumetric TCP SYN attack", 10, 0.9, 0.8, port=80),
    ActionDefinition("Zero-Day Exploit", "Randomized unknown vulnerability exploitation", 7, 0.1, 0.2),
    ActionDefinition("DNS Spoofing", "Poisons DNS cache to redirect traffic", 4, 0.6, 0.5, port=53),
    ActionDefinition("Man-in-the-Middle", "Intercepts traffic passing through the network", 6, 0.5, 0.4),
    ActionDefinition("Phishing Campaign", "Sends deceptive emails to harvest credentials", 5, 0.2, 0.6, port=25),
    ActionDefinition("Malware Beaconing", "Simulates C2 callbacks from compromised host", 10, 0.6, 0.7, port=443),
    ActionDefinition("Data Exfiltration", "Steals sensitive data over encrypted channels", 9, 0.7, 0.5, port=443),
)

POST_EXPLOIT_ACTIONS = _by_name(
    ActionDefinition("Privilege Escalation", "Escalating to root/admin privileges", 3, 0.35, 0.5),
    ActionDefinition("Lateral Movement", "Moving to adjacent network hosts via pass-the-hash", 4, 0.45, 0.4, port=445),
    ActionDefinition("Data Exfiltration", "Extracting sensitive data from compromised host", 5, 0.5, 0.6, port=443),
    ActionDefinition("Persistence Install", "Installing backdoor for persistent access", 3, 0.3, 0.55),
    ActionDefinition("Credential Harvesting", "Dumping credentials from memory (Mimikatz)", 2, 0.4, 0.65),
    ActionDefinition("Ransomware Deploy", "Encrypting files on compromised systems", 6, 0.7, 0.5, port=445),
)

# Ordered: the first rule whose pattern appears in the log line wins.
IDS_RULES: tuple[IDSRule, ...] = (
    IDSRule("Suspicious Port Scan", "Port Scan", "medium", DetectionMethod.SIGNATURE),
    IDSRule("Brute Force Attempt", "Brute Force", "high", DetectionMethod.BEHAVIORAL),
    IDSRule("SQL Injection Detected", "SQL Injection", "critical", DetectionMethod.SIGNATURE),
    IDSRule("Abnormal Network Traffic", "Sweep", "low", DetectionMethod.ANOMALY),
    IDSRule("Privilege Escalation Alert", "Privilege Escalation", "critical", DetectionMethod.BEHAVIORAL),
    IDSRule("Lateral Movement Detected", "Lateral Movement", "critical", DetectionMethod.HEURISTIC),
    IDSRule("Data Exfiltration Alert", "Exfiltration", "critical", DetectionMethod.ANOMALY),
    IDSRule("Malware Signature Match", "Payload", "high", DetectionMethod.SIGNATURE),
    IDSRule("Ransomware Behavior", "Ransomware", "critical", DetectionMethod.BEHAVIORAL),
    IDSRule("Unauthorized Access Attempt", "Exploit", "high", DetectionMethod.HEURISTIC),
    IDSRule("Credential Dump Detected", "Credential Harvesting", "critical", DetectionMethod.BEHAVIORAL),
    IDSRule("Web Shell Activity", "Web Shell", "high", DetectionMethod.SIGNATURE),
    IDSRule("DNS Anomaly", "DNS Enumeration", "low", DetectionMethod.ANOMALY),
    IDSRule("Persistence Mechanism", "Persistence", "high", DetectionMethod.HEURISTIC),
)

RESPONSE_ACTIONS = _by_name(
    ResponseDefinition("Isolate Host", ResponseType.CONTAINMENT, 2, 0.85),
    ResponseDefinition("Block IP Address", ResponseType.CONTAINMENT, 1, 0.7),
    ResponseDefinition("Kill Process", ResponseType.CONTAINMENT, 1, 0.6),
    ResponseDefinition("Apply Emergency Patch", ResponseType.REMEDIATION, 4, 0.8),
    ResponseDefinition("Reset Credentials", ResponseType.REMEDIATION, 2, 0.75),
    ResponseDefinition("Restore from Backup", ResponseType.RECOVERY, 6, 0.9),
    ResponseDefinition("Reconfigure Firewall", ResponseType.REMEDIATION, 3, 0.8),
    ResponseDefinition("Deploy YARA Rules", ResponseType.DETECTION, 2, 0.65),
    ResponseDefinition("Enable Enhanced Logging", ResponseType.DETECTION, 1, 0.5),
)

MONITORING_MULTIPLIERS = MappingProxyType(
    {
        "standard": 1.0,
        "enhanced": 1.3,
        "maximum": 1.6,
    }
)


def responses_of_type(response_type: ResponseType) -> list[ResponseDefinition]:
    return [action for action in RESPONSE_ACTIONS.values() if action.type is response_type]


def match_ids_rule(log_line: str | None) -> IDSRule | None:
    if not log_line:
        return None
    return next((rule for rule in IDS_RULES if rule.pattern in log_line), None)
