"""Built-in vulnerability check scripts and the probes they run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .models import Severity


class ProbeKind(Enum):
    """How a probe gathers the data it analyses."""

    BANNER_GRAB = "banner_grab"
    HTTP_REQUEST = "http_request"
    CUSTOM_TCP = "custom_tcp"
    VERSION_CHECK = "version_check"
    AUTH_BYPASS = "auth_bypass"
    EXPLOIT_PROBE = "exploit_probe"


@dataclass
class VulnProbe:
    """A single check performed by a script.

    HTTP probes carry ``method`` and ``path``, raw TCP probes carry ``data``
    and version checks carry ``service``.
    """

    name: str
    kind: ProbeKind
    payload: str | None = None
    expected_response: list[str] = field(default_factory=list)
    version_patterns: list[str] = field(default_factory=list)
    confidence_score: float = 0.0
    method: str | None = None
    path: str | None = None
    data: bytes | None = None
    service: str | None = None

    def __post_init__(self) -> None:
        if self.kind is ProbeKind.HTTP_REQUEST and (self.method is None or self.path is None):
            raise ValueError(f"HTTP probe {self.name!r} needs a method and a path")
        if self.kind is ProbeKind.CUSTOM_TCP and self.data is None:
            raise ValueError(f"TCP probe {self.name!r} needs data to send")
        if self.kind is ProbeKind.VERSION_CHECK and self.service is None:
            raise ValueError(f"version probe {self.name!r} needs a service")


@dataclass
class NseScript:
    """A named group of probes that together confirm a vulnerability."""

    name: str
    description: str
    author: str
    categories: list[str] = field(default_factory=list)
    ports: list[int] = field(default_factory=list)
    cves: list[str] = field(default_factory=list)
    probes: list[VulnProbe] = field(default_factory=list)
    severity: Severity = Severity.INFO
    confidence_threshold: float = 0.0


_AUTHOR = "Project Trident"
_WEB_PORTS = [80, 443, 8080, 8443]

_SMB_DIALECTS = (
    "PC NETWORK PROGRAM 1.0",
    "LANMAN1.0",
    "Windows for Workgroups 3.1a",
    "LM1.2X002",
    "LANMAN2.1",
    "NT LM 0.12",
)


def _smb_negotiate_request() -> bytes:
    """SMBv1 negotiate-protocol request wrapped in a NetBIOS session header."""
    header = (
        b"\xffSMB"  # protocol id
        + b"\x72"  # negotiate command
        + b"\x00" * 4  # status
        + b"\x18"  # flags
        + b"\x53\xc8"  # flags2
        + b"\x00" * 14  # pid high, signature, reserved, tid
        + b"\xff\xfe"  # pid
        + b"\x00" * 4  # uid, mid
    )
    dialects = b"".join(b"\x02" + name.encode("ascii") + b"\x00" for name in _SMB_DIALECTS)
    message = header + b"\x00" + len(dialects).to_bytes(2, "little") + dialects
    return b"\x00" + len(message).to_bytes(3, "big") + message


def builtin_scripts() -> dict[str, NseScript]:
    """Return fresh copies of the built-in scripts keyed by name."""
    scripts = [
        NseScript(
            name="ssh-vuln-cve2016-0777",
            description="Checks for OpenSSH client information leak vulnerability",
            author=_AUTHOR,
            categories=["vuln", "safe"],
            ports=[22],
            cves=["CVE-2016-0777"],
            probes=[
                VulnProbe(
                    name="ssh_version_check",
                    kind=ProbeKind.BANNER_GRAB,
                    expected_response=["SSH-2.0-OpenSSH"],
                    version_patterns=[
                        r"OpenSSH_([5-7]\.[0-9]+)",
                        r"OpenSSH_5\.[4-9]",
                        r"OpenSSH_6\.",
                        r"OpenSSH_7\.[0-1]",
                    ],
                    confidence_score=0.9,
                )
            ],
            severity=Severity.MEDIUM,
            confidence_threshold=0.8,
        ),
        NseScript(
            name="http-vuln-log4shell",
            description="Detects Log4j RCE vulnerability (Log4Shell)",
            author=_AUTHOR,
            categories=["vuln", "intrusive"],
            ports=list(_WEB_PORTS),
            cves=["CVE-2021-44228", "CVE-2021-45046"],
            probes=[
                VulnProbe(
                    name="java_service_detection",
                    kind=ProbeKind.HTTP_REQUEST,
                    method="GET",
                    path="/",
                    expected_response=["Tomcat", "Jetty", "Spring"],
                    version_patterns=[
                        r"Apache-Coyote",
                        r"Tomcat/[0-9]",
                        r"Jetty\([0-9]",
                        r"Spring",
                    ],
                    confidence_score=0.8,
                ),
                VulnProbe(
                    name="log4j_header_test",
                    kind=ProbeKind.HTTP_REQUEST,
                    method="GET",
                    path="/",
                    payload="X-Api-Version: ${jndi:ldap://detect.log4shell.com/test}",
                    expected_response=["java", "log4j"],
                    confidence_score=0.95,
                ),
            ],
            severity=Severity.CRITICAL,
            confidence_threshold=0.7,
        ),
        NseScript(
            name="smb-vuln-ms17-010",
            description="Checks for EternalBlue SMB vulnerability",
            author=_AUTHOR,
            categories=["vuln", "safe"],
            ports=[445, 139],
            cves=["CVE-2017-0144"],
            probes=[
                VulnProbe(
                    name="smb_dialect_check",
                    kind=ProbeKind.CUSTOM_TCP,
                    data=_smb_negotiate_request(),
                    expected_response=["SMB", "Windows"],
                    version_patterns=[
                        r"Windows.*Server.*2008",
                        r"Windows.*Server.*2012",
                        r"Windows.*7",
                        r"Windows.*Vista",
                    ],
                    confidence_score=0.85,
                )
            ],
            severity=Severity.CRITICAL,
            confidence_threshold=0.8,
        ),
        NseScript(
            name="redis-info-unauth",
            description="Checks for Redis unauthorized access",
            author=_AUTHOR,
            categories=["vuln", "auth"],
            ports=[6379],
            cves=["CVE-2022-0543"],
            probes=[
                VulnProbe(
                    name="redis_info_command",
                    kind=ProbeKind.CUSTOM_TCP,
                    data=b"INFO\r\n",
                    expected_response=["redis_version", "redis_mode"],
                    version_patterns=[r"redis_version:([5-6]\.[0-9]+\.[0-9]+)"],
                    confidence_score=0.95,
                )
            ],
            severity=Severity.HIGH,
            confidence_threshold=0.9,
        ),
        NseScript(
            name="http-server-header",
            description="Detects HTTP server information disclosure",
            author=_AUTHOR,
            categories=["discovery", "safe"],
            ports=list(_WEB_PORTS),
            cves=[],
            probes=[
                VulnProbe(
                    name="http_server_header",
                    kind=ProbeKind.HTTP_REQUEST,
                    method="HEAD",
                    path="/",
                    expected_response=["Server:"],
                    version_patterns=[
                        r"Apache/([0-9]+\.[0-9]+\.[0-9]+)",
                        r"nginx/([0-9]+\.[0-9]+\.[0-9]+)",
                        r"Microsoft-IIS/([0-9]+\.[0-9]+)",
                    ],
                    confidence_score=0.8,
                )
            ],
            severity=Severity.LOW,
            confidence_threshold=0.7,
        ),
        NseScript(
            name="ftp-anon",
            description="Checks for FTP anonymous login",
            author=_AUTHOR,
            categories=["auth", "safe"],
            ports=[21],
            cves=[],
            probes=[
                VulnProbe(
                    name="ftp_anonymous_login",
                    kind=ProbeKind.AUTH_BYPASS,
                    payload="USER anonymous\r\nPASS anonymous@\r\n",
                    expected_response=["230", "Login successful"],
                    confidence_score=0.9,
                )
            ],
            severity=Severity.MEDIUM,
            confidence_threshold=0.85,
        ),
    ]
    return {script.name: script for script in scripts}


_RECOMMENDATIONS = {
    "ssh-vuln-cve2016-0777": (
        "Update OpenSSH to version 7.1p2 or later",
        "Configure SSH client settings to prevent information leaks",
    ),
    "http-vuln-log4shell": (
        "IMMEDIATELY update Log4j to version 2.17.1 or later",
        "Implement WAF rules to block JNDI lookup attempts",
        "Monitor logs for exploitation attempts",
    ),
    "smb-vuln-ms17-010": (
        "Apply Microsoft security update MS17-010",
        "Disable SMBv1 protocol",
        "Enable network segmentation",
    ),
    "redis-info-unauth": (
        "Configure Redis authentication with requirepass",
        "Bind Redis to localhost only",
        "Use firewall to restrict access",
    ),
}

_DEFAULT_RECOMMENDATIONS = (
    "Review service configuration",
    "Apply security updates",
    "Follow security best practices",
)


def recommendations_for(script_name: str) -> list[str]:
    """Remediation advice for a script's finding; generic advice if unknown."""
    return list(_RECOMMENDATIONS.get(script_name, _DEFAULT_RECOMMENDATIONS))