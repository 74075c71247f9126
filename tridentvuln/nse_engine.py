"""Engine that runs the check scripts against a target and reports findings."""

from __future__ import annotations

import asyncio
import ipaddress
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Union

from .models import Finding
from .nse_scripts import NseScript, ProbeKind, VulnProbe, builtin_scripts, recommendations_for

IpLike = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]

CONNECT_TIMEOUT = 5.0
AUTH_CONNECT_TIMEOUT = 10.0
READ_SIZE = 4096
AUTH_READ_SIZE = 2048


def _nvd_url(cve_id: str) -> str:
    return f"https://nvd.nist.gov/vuln/detail/{cve_id}"


@dataclass
class ProbeResult:
    """Outcome of a single probe."""

    confidence: float
    evidence: list[str] = field(default_factory=list)
    vulnerability_detected: bool = False


async def _exchange(
    target_ip: IpLike, target_port: int, data: bytes, connect_timeout: float, read_size: int
) -> str | None:
    """Send data and return the first chunk of the reply, or None on failure."""
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(str(target_ip), target_port), connect_timeout
        )
    except (OSError, asyncio.TimeoutError):
        return None
    try:
        writer.write(data)
        await writer.drain()
        chunk = await reader.read(read_size)
    except OSError:
        return None
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
    return chunk.decode("utf-8", errors="replace")


class NmapStyleEngine:
    """Runs check scripts made of banner, HTTP and raw TCP probes."""

    def __init__(self, scripts: Mapping[str, NseScript] | None = None) -> None:
        self.scripts: dict[str, NseScript] = (
            builtin_scripts() if scripts is None else dict(scripts)
        )
        self._patterns: dict[str, re.Pattern[str]] = {}
        for script in self.scripts.values():
            for probe in script.probes:
                for pattern in probe.version_patterns:
                    if pattern in self._patterns:
                        continue
                    try:
                        self._patterns[pattern] = re.compile(pattern)
                    except re.error:
                        continue

    def get_script(self, name: str) -> NseScript | None:
        return self.scripts.get(name)

    @staticmethod
    def _applies_to(script: NseScript, port: int) -> bool:
        return not script.ports or port in script.ports

    async def run_script(
        self,
        script_name: str,
        target_ip: IpLike,
        target_port: int,
        banner: str | None = None,
    ) -> Finding | None:
        """Run one script by name; None if unknown, not applicable or not confirmed."""
        script = self.scripts.get(script_name)
        if script is None or not self._applies_to(script, target_port):
            return None
        return await self._execute_script(script, target_ip, target_port, banner)

    async def run_category_scripts(
        self,
        category: str,
        target_ip: IpLike,
        target_port: int,
        banner: str | None = None,
    ) -> list[Finding]:
        """Run every applicable script of a category and collect the findings."""
        findings = []
        for script in self.scripts.values():
            if category in script.categories and self._applies_to(script, target_port):
                finding = await self._execute_script(script, target_ip, target_port, banner)
                if finding is not None:
                    findings.append(finding)
        return findings

    async def _execute_script(
        self,
        script: NseScript,
        target_ip: IpLike,
        target_port: int,
        banner: str | None,
    ) -> Finding | None:
        total_confidence = 0.0
        evidence: list[str] = []
        confirmed = False
        for probe in script.probes:
            result = await self._execute_probe(probe, target_ip, target_port, banner)
            if result is None:
                continue
            total_confidence += result.confidence
            evidence.extend(result.evidence)
            confirmed = confirmed or result.vulnerability_detected

        average = total_confidence / len(script.probes) if script.probes else 0.0
        if not (confirmed and average >= script.confidence_threshold):
            return None

        metadata = {
            "script_name": script.name,
            "categories": ",".join(script.categories),
        }
        if script.cves:
            metadata["cve_ids"] = ",".join(script.cves)
        return Finding(
            title=script.name,
            description=script.description,
            severity=script.severity,
            confidence=average,
            evidence=evidence,
            recommendations=recommendations_for(script.name),
            references=[_nvd_url(cve) for cve in script.cves],
            metadata=metadata,
        )

    async def _execute_probe(
        self,
        probe: VulnProbe,
        target_ip: IpLike,
        target_port: int,
        banner: str | None,
    ) -> ProbeResult | None:
        kind = probe.kind
        if kind is ProbeKind.BANNER_GRAB:
            return None if banner is None else self.analyze_banner(probe, banner)
        if kind is ProbeKind.VERSION_CHECK:
            return None if banner is None else self.analyze_version_patterns(probe, banner)
        if kind is ProbeKind.HTTP_REQUEST:
            return await self._http_probe(probe, target_ip, target_port)
        if kind is ProbeKind.CUSTOM_TCP:
            response = await _exchange(
                target_ip, target_port, probe.data or b"", CONNECT_TIMEOUT, READ_SIZE
            )
            return None if response is None else self.analyze_tcp_response(probe, response)
        if kind is ProbeKind.AUTH_BYPASS:
            return await self._auth_bypass(probe, target_ip, target_port)
        # Exploit probes are deliberately never run.
        return None

    async def _http_probe(
        self, probe: VulnProbe, target_ip: IpLike, target_port: int
    ) -> ProbeResult | None:
        lines = [f"{probe.method} {probe.path} HTTP/1.1", f"Host: {target_ip}"]
        if probe.payload is not None:
            lines.append(probe.payload)
        lines.append("Connection: close")
        request = "\r\n".join(lines) + "\r\n\r\n"
        response = await _exchange(
            target_ip, target_port, request.encode(), CONNECT_TIMEOUT, READ_SIZE
        )
        return None if response is None else self.analyze_http_response(probe, response)

    async def _auth_bypass(
        self, probe: VulnProbe, target_ip: IpLike, target_port: int
    ) -> ProbeResult | None:
        if probe.payload is None:
            return None
        response = await _exchange(
            target_ip, target_port, probe.payload.encode(), AUTH_CONNECT_TIMEOUT, AUTH_READ_SIZE
        )
        if response is None:
            return None
        for expected in probe.expected_response:
            if expected in response:
                return ProbeResult(
                    confidence=probe.confidence_score,
                    evidence=[f"Authentication bypass successful: {expected}"],
                    vulnerability_detected=True,
                )
        return None

    def _matching_patterns(self, probe: VulnProbe, text: str) -> list[str]:
        return [
            pattern
            for pattern in probe.version_patterns
            if pattern in self._patterns and self._patterns[pattern].search(text)
        ]

    def analyze_banner(self, probe: VulnProbe, banner: str) -> ProbeResult:
        """Score a service banner against the probe's expectations."""
        confidence = 0.0
        evidence = []
        for expected in probe.expected_response:
            if expected in banner:
                confidence += 0.3
                evidence.append(f"Banner contains expected pattern: {expected}")
        for pattern in self._matching_patterns(probe, banner):
            confidence += 0.4
            evidence.append(f"Version pattern matched: {pattern}")
        return ProbeResult(
            confidence=min(confidence, probe.confidence_score),
            evidence=evidence,
            vulnerability_detected=bool(evidence),
        )

    def analyze_version_patterns(self, probe: VulnProbe, banner: str) -> ProbeResult:
        """Report the first vulnerable version found in a banner."""
        for pattern in probe.version_patterns:
            regex = self._patterns.get(pattern)
            if regex is None:
                continue
            match = regex.search(banner)
            if match:
                return ProbeResult(
                    confidence=probe.confidence_score,
                    evidence=[f"Vulnerable version detected: {match.group(0)}"],
                    vulnerability_detected=True,
                )
        return ProbeResult(confidence=0.0, evidence=[], vulnerability_detected=False)

    def analyze_http_response(self, probe: VulnProbe, response: str) -> ProbeResult:
        """Score an HTTP response; expected strings match case-insensitively."""
        confidence = 0.0
        evidence = []
        lowered = response.lower()
        for expected in probe.expected_response:
            if expected.lower() in lowered:
                confidence += 0.4
                evidence.append(f"HTTP response contains: {expected}")
        for pattern in self._matching_patterns(probe, response):
            confidence += 0.5
            evidence.append(f"Version pattern found in HTTP response: {pattern}")
        return ProbeResult(
            confidence=min(confidence, probe.confidence_score),
            evidence=evidence,
            vulnerability_detected=bool(evidence),
        )

    def analyze_tcp_response(self, probe: VulnProbe, response: str) -> ProbeResult:
        """Score a raw TCP reply against the expected strings."""
        confidence = 0.0
        evidence = []
        for expected in probe.expected_response:
            if expected in response:
                confidence += 0.5
                evidence.append(f"TCP response contains expected data: {expected}")
        return ProbeResult(
            confidence=min(confidence, probe.confidence_score),
            evidence=evidence,
            vulnerability_detected=bool(evidence),
        )

    def script_names_by_category(self, category: str) -> list[str]:
        return [s.name for s in self.scripts.values() if category in s.categories]

    def all_categories(self) -> list[str]:
        return sorted({c for s in self.scripts.values() for c in s.categories})