"""In-memory CVE database with version matching and compressed storage."""

from __future__ import annotations

import copy
import gzip
import json
import logging
import re
import time

from .known_cves import known_cves, known_service_vulnerabilities
from .models import (
    CompactCveDatabase,
    CompactCveEntry,
    Cve,
    ServiceVulnerability,
    Severity,
    VulnerabilityMatch,
)

log = logging.getLogger(__name__)

_VERSION_SEPARATORS = re.compile(r"[._\- ]")
_UNSIGNED = re.compile(r"\+?[0-9]+")
_U32_MAX = 0xFFFFFFFF
_REGEX_META = set("\\.+*?()|[]{}^$#&-~")

_NETWORK_SERVICES = (
    "http",
    "https",
    "ssh",
    "ftp",
    "telnet",
    "smtp",
    "dns",
    "snmp",
    "mysql",
    "postgresql",
    "redis",
    "apache",
    "nginx",
    "tomcat",
    "iis",
    "exchange",
    "smb",
    "rdp",
    "vnc",
    "ldap",
)

_EXPLANATION_LIMIT = 140
CPE_CONFIDENCE = 0.95
SERVICE_CONFIDENCE = 0.85


def _nvd_url(cve_id: str) -> str:
    return f"https://nvd.nist.gov/vuln/detail/{cve_id}"


def extract_version_numbers(text: str) -> list[int]:
    """Return the numeric components of a version string, skipping non-numeric parts."""
    numbers = []
    for part in _VERSION_SEPARATORS.split(text):
        if _UNSIGNED.fullmatch(part):
            value = int(part)
            if value <= _U32_MAX:
                numbers.append(value)
    return numbers


def version_is_vulnerable(detected: str, vulnerable: str) -> bool:
    """Loosely decide whether a detected version falls under a vulnerable one."""
    if vulnerable in detected:
        return True
    detected_nums = extract_version_numbers(detected)
    vulnerable_nums = extract_version_numbers(vulnerable)
    if not detected_nums or not vulnerable_nums:
        return False
    if detected_nums[0] != vulnerable_nums[0]:
        return False
    if len(detected_nums) == 1 or len(vulnerable_nums) == 1:
        return True
    return detected_nums[1] <= vulnerable_nums[1]


def parse_cpe(cpe: str) -> tuple[str, str] | None:
    """Return (vendor, product) from an application CPE such as ``cpe:/a:v:p:ver``."""
    parts = cpe.split(":")
    if len(parts) >= 5 and parts[0] == "cpe" and parts[1] == "/a":
        return parts[2], parts[3]
    return None


def short_explanation(cve: Cve) -> str:
    """Produce an explanation of the CVE of at most 140 characters."""
    desc = cve.description
    lowered = desc.lower()
    first_service = cve.affected_services[0] if cve.affected_services else "service"
    if "remote code execution" in lowered:
        explanation = f"RCE vulnerability in {first_service} - patch immediately!"
    elif "sql injection" in lowered:
        explanation = "SQL injection allows data theft - update or disable service."
    elif "buffer overflow" in lowered:
        explanation = f"Buffer overflow in {first_service} - remote exploitation possible."
    elif "denial of service" in lowered:
        explanation = "DoS vulnerability - service disruption possible."
    else:
        words: list[str] = []
        length = 0
        for word in desc.split():
            if length + len(word) + 1 > _EXPLANATION_LIMIT:
                break
            length += len(word) + (1 if words else 0)
            words.append(word)
        explanation = " ".join(words)

    if len(explanation) > _EXPLANATION_LIMIT:
        return explanation[: _EXPLANATION_LIMIT - 3] + "..."
    return explanation


def normalize_service_name(service: str) -> str | None:
    """Map a lower-case product name to a canonical service key, if known."""
    if "apache" in service and "http" in service:
        return "apache"
    if "tomcat" in service:
        return "tomcat"
    if "nginx" in service:
        return "nginx"
    if "openssh" in service:
        return "ssh"
    if "mysql" in service:
        return "mysql"
    if "postgresql" in service:
        return "postgresql"
    if "redis" in service:
        return "redis"
    if "elasticsearch" in service:
        return "elasticsearch"
    if "microsoft" in service and "iis" in service:
        return "iis"
    return None


def _escape(text: str) -> str:
    return "".join("\\" + ch if ch in _REGEX_META else ch for ch in text)


def version_pattern(versions: list[str]) -> str:
    """Build a regex matching any of the given versions as a whole component."""
    if not versions:
        return ".*"
    alternatives = "|".join(rf"{_escape(v)}(\.|$)" for v in versions)
    return f"({alternatives})"


def is_network_relevant(cve: Cve) -> bool:
    """Whether a CVE concerns a network-facing service."""
    if cve.ports:
        return True
    return any(
        ns in service.lower() for service in cve.affected_services for ns in _NETWORK_SERVICES
    )


def service_patterns() -> dict[str, list[str]]:
    """Banner substrings used to recognise common services."""
    return {
        "apache": ["Apache/", "httpd"],
        "nginx": ["nginx/", "nginx"],
        "ssh": ["OpenSSH", "SSH-"],
        "mysql": ["MySQL", "mysql"],
        "redis": ["Redis", "redis_version"],
    }


def _service_version_matches(cve: Cve, service: str, version: str, banner: str | None) -> bool:
    service_lower = service.lower()
    if not any(
        svc.lower() in service_lower or service_lower in svc.lower()
        for svc in cve.affected_services
    ):
        return False
    if cve.affected_versions and not any(
        version_is_vulnerable(version, v) for v in cve.affected_versions
    ):
        return False
    if banner is not None:
        banner_lower = banner.lower()
        return any(svc.lower() in banner_lower for svc in cve.affected_services)
    return True


def _vulnerability_match(
    cve: Cve, matched_service: str, matched_version: str, confidence: float
) -> VulnerabilityMatch:
    reference = cve.references[0] if cve.references else _nvd_url(cve.cve_id)
    return VulnerabilityMatch(
        cve_id=cve.cve_id,
        summary=cve.description[:100] + "...",
        explanation=short_explanation(cve),
        reference_url=reference,
        severity=cve.severity,
        cvss_score=cve.cvss_score,
        matched_service=matched_service,
        matched_version=matched_version,
        confidence=confidence,
    )


class CveDatabase:
    """CVE entries keyed by id, plus service-to-CVE mappings."""

    def __init__(self) -> None:
        self.cves: dict[str, Cve] = {cve.cve_id: cve for cve in known_cves()}
        self.service_vulns: dict[str, list[ServiceVulnerability]] = (
            known_service_vulnerabilities()
        )
        self.cache_dir = "cve_cache"

    def get_cve(self, cve_id: str) -> Cve | None:
        return self.cves.get(cve_id)

    def get_service_vulnerabilities(self, service: str) -> list[ServiceVulnerability] | None:
        return self.service_vulns.get(service)

    def search_by_service_and_version(self, service: str, version: str) -> list[Cve]:
        """CVEs mapped to a service whose affected versions occur in ``version``."""
        return [
            cve
            for service_vuln in self.service_vulns.get(service, [])
            for cve in service_vuln.cves
            if any(v in version for v in cve.affected_versions)
        ]

    def get_critical_cves(self) -> list[Cve]:
        return [cve for cve in self.cves.values() if cve.severity is Severity.CRITICAL]

    def get_exploitable_cves(self) -> list[Cve]:
        return [cve for cve in self.cves.values() if cve.exploitable]

    def match_service_version(
        self, service: str, version: str, banner: str | None = None
    ) -> list[Cve]:
        """CVEs affecting a service and version, highest CVSS score first."""
        matches = [
            cve
            for cve in self.cves.values()
            if _service_version_matches(cve, service, version, banner)
        ]
        matches.sort(key=lambda cve: cve.cvss_score, reverse=True)
        return matches

    def compact(self) -> CompactCveDatabase:
        """Compact form holding only high-impact, network-relevant CVEs."""
        entries = [
            CompactCveEntry(
                id=cve.cve_id,
                score=cve.cvss_score,
                severity=cve.severity.to_code(),
                services=list(cve.affected_services),
                versions=list(cve.affected_versions),
                ports=list(cve.ports),
                exploitable=cve.exploitable,
            )
            for cve in self.cves.values()
            if is_network_relevant(cve) and cve.cvss_score >= 7.0
        ]
        return CompactCveDatabase(
            cves=entries,
            service_patterns=service_patterns(),
            last_updated=int(time.time()),
        )

    def compress(self) -> bytes:
        """Serialise the compact database as gzip-compressed JSON."""
        serialized = json.dumps(self.compact().to_dict(), separators=(",", ":")).encode()
        compressed = gzip.compress(serialized, compresslevel=9)
        log.info(
            "Compression: %d bytes -> %d bytes (%.1f%% reduction)",
            len(serialized),
            len(compressed),
            (1.0 - len(compressed) / len(serialized)) * 100.0,
        )
        return compressed

    def load_compressed(self, data: bytes) -> None:
        """Replace all CVEs with those from a compressed database.

        Raises ValueError if the data is not a valid compressed database.
        """
        try:
            decompressed = gzip.decompress(data)
        except (OSError, EOFError) as exc:
            raise ValueError(f"invalid compressed CVE database: {exc}") from exc
        try:
            raw = json.loads(decompressed)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValueError(f"invalid CVE database JSON: {exc}") from exc
        compact_db = CompactCveDatabase.from_dict(raw)

        self.cves.clear()
        for entry in compact_db.cves:
            self.cves[entry.id] = Cve(
                cve_id=entry.id,
                description=f"CVE {entry.id} (Score: {entry.score:.1f})",
                severity=Severity.from_code(entry.severity),
                cvss_score=entry.score,
                affected_services=entry.services,
                affected_versions=entry.versions,
                ports=entry.ports,
                references=[_nvd_url(entry.id)],
                exploitable=entry.exploitable,
                patch_available=True,
            )
        log.info("Loaded %d CVEs from compressed database", len(self.cves))

    def update_service_cve_mappings(self) -> None:
        """Rebuild the service mappings from the CVEs currently held."""
        service_map: dict[str, list[ServiceVulnerability]] = {}
        for cve in self.cves.values():
            for service in cve.affected_services:
                key = normalize_service_name(service.lower())
                if key is None:
                    continue
                service_map.setdefault(key, []).append(
                    ServiceVulnerability(
                        service_name=key,
                        version_pattern=version_pattern(cve.affected_versions),
                        cves=[copy.deepcopy(cve)],
                    )
                )
        self.service_vulns = service_map
        log.info(
            "Updated mappings for %d services with %d CVEs",
            len(self.service_vulns),
            len(self.cves),
        )

    def search_vulnerabilities(
        self,
        service: str,
        version: str | None = None,
        cpe: str | None = None,
        min_cvss: float = 0.0,
    ) -> list[VulnerabilityMatch]:
        """Match CVEs by CPE first, then by service and version; highest score first."""
        results: list[VulnerabilityMatch] = []

        parsed = parse_cpe(cpe) if cpe is not None else None
        if parsed is not None:
            cpe_service = f"{parsed[0]}:{parsed[1]}"
            for service_vuln in self.service_vulns.get(cpe_service, []):
                for cve in service_vuln.cves:
                    if cve.cvss_score < min_cvss:
                        continue
                    if version is not None and not any(
                        v in version for v in cve.affected_versions
                    ):
                        continue
                    results.append(
                        _vulnerability_match(
                            cve, cpe_service, version or "unknown", CPE_CONFIDENCE
                        )
                    )

        if not results and version is not None:
            for service_vuln in self.service_vulns.get(service, []):
                for cve in service_vuln.cves:
                    if cve.cvss_score >= min_cvss and any(
                        v in version for v in cve.affected_versions
                    ):
                        results.append(
                            _vulnerability_match(cve, service, version, SERVICE_CONFIDENCE)
                        )

        results.sort(key=lambda m: m.cvss_score, reverse=True)
        return results