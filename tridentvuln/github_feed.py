"""Fetching CVE records from the public CVE list repository on GitHub."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .cve_database import CveDatabase
from .models import Cve, Severity

log = logging.getLogger(__name__)

RAW_BASE_URL = "https://raw.githubusercontent.com/CVEProject/cvelistV5/main/cves"
LISTING_BASE_URL = "https://api.github.com/repos/CVEProject/cvelistV5/contents/cves"
USER_AGENT = "tridentvuln"

CRITICAL_CVES = (
    "CVE-2021-44228",  # Log4Shell
    "CVE-2021-45046",  # Log4Shell follow-up
    "CVE-2017-0144",  # EternalBlue
    "CVE-2020-1472",  # Zerologon
    "CVE-2021-34527",  # PrintNightmare
    "CVE-2019-0708",  # BlueKeep
    "CVE-2022-0543",  # Redis Lua injection
    "CVE-2021-26855",  # Exchange ProxyLogon
    "CVE-2020-14882",  # Oracle WebLogic
    "CVE-2021-40444",  # MSHTML RCE
)

_HIGH_IMPACT_BY_YEAR = {
    2021: (
        "CVE-2021-44228",
        "CVE-2021-45046",
        "CVE-2021-34527",
        "CVE-2021-26855",
        "CVE-2021-40444",
    ),
    2020: ("CVE-2020-1472", "CVE-2020-14882", "CVE-2020-8277"),
    2019: ("CVE-2019-0708", "CVE-2019-11510"),
    2017: ("CVE-2017-0144", "CVE-2017-5638"),
}

_WEB_PORTS = (80, 443, 8080, 8443)

# Checked in order; the first matching rule decides a service's ports.
_PORT_RULES: tuple[tuple[tuple[str, ...], tuple[int, ...]], ...] = (
    (("apache", "httpd"), _WEB_PORTS),
    (("nginx",), _WEB_PORTS),
    (("mysql",), (3306,)),
    (("postgresql", "postgres"), (5432,)),
    (("redis",), (6379,)),
    (("ssh", "openssh"), (22,)),
    (("ftp",), (21,)),
    (("telnet",), (23,)),
    (("smtp",), (25,)),
    (("dns",), (53,)),
    (("snmp",), (161, 162)),
    (("smb", "samba"), (139, 445)),
)


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{what} must be an object")
    return value


def _field(data: Mapping[str, Any], key: str, kind: type, what: str) -> Any:
    if key not in data:
        raise ValueError(f"{what}: missing field {key!r}")
    value = data[key]
    if kind is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{what}: field {key!r} must be a number")
        return float(value)
    if not isinstance(value, kind):
        raise ValueError(f"{what}: field {key!r} has the wrong type")
    return value


def _optional_list(data: Mapping[str, Any], key: str, what: str) -> list[Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError(f"{what}: field {key!r} must be a list")
    return value


def guess_ports(services: Iterable[str]) -> list[int]:
    """Guess the usual network ports for product names; sorted and unique."""
    ports: set[int] = set()
    for service in services:
        lowered = service.lower()
        for needles, rule_ports in _PORT_RULES:
            if any(needle in lowered for needle in needles):
                ports.update(rule_ports)
                break
    return sorted(ports)


def cve_from_record(record: Mapping[str, Any]) -> Cve:
    """Convert a CVE JSON 5 record into a Cve; raises ValueError if malformed."""
    record = _mapping(record, "record")
    metadata = _mapping(_field(record, "cveMetadata", Mapping, "record"), "cveMetadata")
    cve_id = _field(metadata, "cveId", str, "cveMetadata")
    containers = _mapping(_field(record, "containers", Mapping, "record"), "containers")
    cna_raw = containers.get("cna")
    cna: Mapping[str, Any] = {} if cna_raw is None else _mapping(cna_raw, "cna")

    description = "No description available"
    for entry in _optional_list(cna, "descriptions", "cna") or []:
        entry = _mapping(entry, "description")
        lang = _field(entry, "lang", str, "description")
        value = _field(entry, "value", str, "description")
        if lang == "en":
            description = value
            break

    cvss_score, severity = 0.0, Severity.INFO
    metrics = _optional_list(cna, "metrics", "cna")
    if metrics:
        cvss = _mapping(metrics[0], "metric").get("cvssV3_1")
        if cvss is not None:
            cvss = _mapping(cvss, "cvssV3_1")
            cvss_score = _field(cvss, "baseScore", float, "cvssV3_1")
            severity = Severity.from_label(_field(cvss, "baseSeverity", str, "cvssV3_1"))

    affected_services: list[str] = []
    affected_versions: list[str] = []
    for product in _optional_list(cna, "affected", "cna") or []:
        product = _mapping(product, "affected product")
        name = product.get("product")
        if name is not None:
            if not isinstance(name, str):
                raise ValueError("affected product: field 'product' must be a string")
            affected_services.append(name)
        for version in _optional_list(product, "versions", "affected product") or []:
            version = _mapping(version, "product version")
            affected_versions.append(_field(version, "version", str, "product version"))

    references = [
        _field(_mapping(ref, "reference"), "url", str, "reference")
        for ref in _optional_list(cna, "references", "cna") or []
    ]

    return Cve(
        cve_id=cve_id,
        description=description,
        severity=severity,
        cvss_score=cvss_score,
        affected_services=affected_services,
        affected_versions=affected_versions,
        ports=guess_ports(affected_services),
        references=references,
        exploitable=cvss_score >= 7.0,
        patch_available=True,
    )


def high_impact_cves_for_year(year: int) -> list[str]:
    """Well-known high-impact CVE ids published in the given year."""
    return list(_HIGH_IMPACT_BY_YEAR.get(year, ()))


def is_relevant_cve(cve: Cve) -> bool:
    """Whether a CVE has network ports and is severe or exploitable."""
    severe = cve.severity in (Severity.HIGH, Severity.CRITICAL)
    return bool(cve.ports) and (severe or cve.exploitable)


def _cve_url(cve_id: str) -> str:
    if len(cve_id) < 12:
        raise ValueError(f"malformed CVE id {cve_id!r}")
    return f"{RAW_BASE_URL}/{cve_id[4:8]}/{cve_id[9:12]}/{cve_id}.json"


def _download(url: str, timeout: float) -> bytes | None:
    """Return the body of a successful response, or None for an HTTP error status."""
    request = Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urlopen(request, timeout=timeout) as response:
            return response.read()
    except HTTPError:
        return None


class GitHubCveFeed:
    """Downloads CVE records and adds them to a CveDatabase."""

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout
        self.listing_timeout = timeout * 3

    async def fetch_cve(self, cve_id: str) -> Cve | None:
        """Fetch one CVE; None if the repository does not have it.

        Network failures raise OSError, malformed records ValueError.
        """
        url = _cve_url(cve_id)
        body = await asyncio.to_thread(_download, url, self.timeout)
        if body is None:
            return None
        try:
            record = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValueError(f"invalid CVE record for {cve_id}: {exc}") from exc
        return cve_from_record(record)

    async def fetch_batch(
        self, database: CveDatabase, cve_ids: Iterable[str]
    ) -> tuple[int, int]:
        """Fetch CVEs into the database; returns (successful, failed) counts."""
        cve_ids = list(cve_ids)
        log.info("Fetching %d CVEs from GitHub repository", len(cve_ids))
        successful = failed = 0
        for cve_id in cve_ids:
            try:
                cve = await self.fetch_cve(cve_id)
            except (OSError, ValueError) as exc:
                log.warning("Failed to fetch %s: %s", cve_id, exc)
                failed += 1
                continue
            if cve is None:
                log.warning("CVE not found: %s", cve_id)
                failed += 1
            else:
                database.cves[cve_id] = cve
                successful += 1
        log.info("Successfully fetched %d CVEs, %d failed", successful, failed)
        return successful, failed

    async def update_with_latest(self, database: CveDatabase) -> tuple[int, int]:
        """Fetch a fixed list of critical recent CVEs into the database."""
        return await self.fetch_batch(database, CRITICAL_CVES)

    async def initialize(self, database: CveDatabase) -> tuple[int, int]:
        """Populate the database with the latest critical CVEs."""
        log.info("Initializing CVE database with GitHub data")
        counts = await self.update_with_latest(database)
        log.info("CVE database initialized with %d entries", len(database.cves))
        return counts

    async def fetch_cves_for_year(
        self, year: int, severity_filter: Severity | None = None
    ) -> list[Cve]:
        """Fetch the high-impact CVEs of a year, optionally of one severity only.

        Returns an empty list if the year's directory cannot be listed; a
        network failure while listing raises OSError.
        """
        listing_url = f"{LISTING_BASE_URL}/{year}"
        listing = await asyncio.to_thread(_download, listing_url, self.listing_timeout)
        if listing is None:
            return []
        cves = []
        for cve_id in high_impact_cves_for_year(year):
            try:
                cve = await self.fetch_cve(cve_id)
            except (OSError, ValueError):
                continue
            if cve is None:
                continue
            if severity_filter is None or cve.severity is severity_filter:
                cves.append(cve)
        return cves

    async def batch_process_years(
        self,
        database: CveDatabase,
        years: Iterable[int],
        severity_filter: Severity | None = None,
    ) -> tuple[int, int]:
        """Add the relevant CVEs of each year; returns (processed, added) counts."""
        total_processed = total_added = 0
        for year in years:
            year_cves = await self.fetch_cves_for_year(year, severity_filter)
            total_processed += len(year_cves)
            for cve in year_cves:
                if is_relevant_cve(cve):
                    database.cves[cve.cve_id] = cve
                    total_added += 1
            log.info("Processed %d CVEs for year %d", total_processed, year)
        log.info(
            "Batch processing complete: %d CVEs processed, %d relevant CVEs added",
            total_processed,
            total_added,
        )
        return total_processed, total_added


__all__ = [
    "CRITICAL_CVES",
    "GitHubCveFeed",
    "URLError",
    "cve_from_record",
    "guess_ports",
    "high_impact_cves_for_year",
    "is_relevant_cve",
]