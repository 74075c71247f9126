"""Core data types shared by the vulnerability databases and scanners."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Severity(Enum):
    """Severity of a vulnerability or finding."""

    INFO = "Info"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @classmethod
    def from_label(cls, label: str) -> Severity:
        """Map a CVSS severity label such as ``"HIGH"``; unknown labels give INFO."""
        return _LABELS.get(label, cls.INFO)

    @classmethod
    def from_code(cls, code: int) -> Severity:
        """Map a compact numeric code (0-4); unknown codes give INFO."""
        return _FROM_CODE.get(code, cls.INFO)

    def to_code(self) -> int:
        """Return the compact numeric code (0=Info .. 4=Critical)."""
        return _TO_CODE[self]


_LABELS = {
    "CRITICAL": Severity.CRITICAL,
    "HIGH": Severity.HIGH,
    "MEDIUM": Severity.MEDIUM,
    "LOW": Severity.LOW,
}

_TO_CODE = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}

_FROM_CODE = {code: severity for severity, code in _TO_CODE.items()}


@dataclass
class Finding:
    """A reportable result of a vulnerability check."""

    title: str
    description: str
    severity: Severity
    confidence: float
    evidence: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class Cve:
    """A single CVE entry."""

    cve_id: str
    description: str
    severity: Severity
    cvss_score: float
    affected_services: list[str] = field(default_factory=list)
    affected_versions: list[str] = field(default_factory=list)
    ports: list[int] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    exploitable: bool = False
    patch_available: bool = True


@dataclass
class ServiceVulnerability:
    """CVEs known to affect a service whose banner matches a version pattern."""

    service_name: str
    version_pattern: str
    cves: list[Cve] = field(default_factory=list)


@dataclass
class VulnerabilityMatch:
    """A CVE matched against a detected service."""

    cve_id: str
    summary: str
    explanation: str
    reference_url: str
    severity: Severity
    cvss_score: float
    matched_service: str
    matched_version: str
    confidence: float


def _require(data: Mapping[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field {key!r}") from None
    except TypeError:
        raise ValueError("expected a mapping") from None


@dataclass
class CompactCveEntry:
    """Space-efficient CVE record used in the compressed database."""

    id: str
    score: float
    severity: int
    services: list[str] = field(default_factory=list)
    versions: list[str] = field(default_factory=list)
    ports: list[int] = field(default_factory=list)
    exploitable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "severity": self.severity,
            "services": list(self.services),
            "versions": list(self.versions),
            "ports": list(self.ports),
            "exploitable": self.exploitable,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompactCveEntry:
        """Build an entry from its dictionary form; raises ValueError if malformed."""
        severity = _require(data, "severity")
        if not isinstance(severity, int) or not 0 <= severity <= 255:
            raise ValueError(f"invalid severity code {severity!r}")
        ports = [int(p) for p in _require(data, "ports")]
        if any(not 0 <= p <= 0xFFFF for p in ports):
            raise ValueError("port out of range")
        return cls(
            id=str(_require(data, "id")),
            score=float(_require(data, "score")),
            severity=severity,
            services=[str(s) for s in _require(data, "services")],
            versions=[str(v) for v in _require(data, "versions")],
            ports=ports,
            exploitable=bool(_require(data, "exploitable")),
        )


@dataclass
class CompactCveDatabase:
    """Compressed-storage form of the whole CVE database."""

    cves: list[CompactCveEntry] = field(default_factory=list)
    service_patterns: dict[str, list[str]] = field(default_factory=dict)
    last_updated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "cves": [entry.to_dict() for entry in self.cves],
            "service_patterns": {k: list(v) for k, v in self.service_patterns.items()},
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CompactCveDatabase:
        """Build a database from its dictionary form; raises ValueError if malformed."""
        last_updated = _require(data, "last_updated")
        if not isinstance(last_updated, int) or last_updated < 0:
            raise ValueError(f"invalid last_updated {last_updated!r}")
        patterns = _require(data, "service_patterns")
        if not isinstance(patterns, Mapping):
            raise ValueError("service_patterns must be a mapping")
        return cls(
            cves=[CompactCveEntry.from_dict(e) for e in _require(data, "cves")],
            service_patterns={str(k): [str(p) for p in v] for k, v in patterns.items()},
            last_updated=last_updated,
        )