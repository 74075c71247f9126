"""Built-in set of well-known CVEs and service-to-CVE mappings."""

from __future__ import annotations

from .models import Cve, ServiceVulnerability, Severity


def _nvd(cve_id: str) -> str:
    return f"https://nvd.nist.gov/vuln/detail/{cve_id}"


def _ssh_cves() -> list[Cve]:
    return [
        Cve(
            cve_id="CVE-2016-0777",
            description="OpenSSH client information leak vulnerability",
            severity=Severity.MEDIUM,
            cvss_score=5.3,
            affected_services=["openssh"],
            affected_versions=["5.4", "7.1"],
            ports=[22],
            references=[
                _nvd("CVE-2016-0777"),
                "https://www.openssh.com/txt/release-7.1p2",
            ],
            exploitable=True,
        ),
        Cve(
            cve_id="CVE-2020-14145",
            description="OpenSSH observable discrepancy leading to an information leak",
            severity=Severity.MEDIUM,
            cvss_score=5.9,
            affected_services=["openssh"],
            affected_versions=["6.2", "8.2"],
            ports=[22],
            references=[_nvd("CVE-2020-14145")],
            exploitable=False,
        ),
    ]


def _apache_cves() -> list[Cve]:
    return [
        Cve(
            cve_id="CVE-2021-44228",
            description=(
                "Apache Log4j2 JNDI features do not protect against attacker controlled "
                "LDAP and other JNDI related endpoints (Log4Shell)"
            ),
            severity=Severity.CRITICAL,
            cvss_score=10.0,
            affected_services=["apache", "tomcat", "java"],
            affected_versions=["2.0-beta9", "2.15.0"],
            ports=[80, 443, 8080, 8443],
            references=[
                _nvd("CVE-2021-44228"),
                "https://logging.apache.org/log4j/2.x/security.html",
            ],
            exploitable=True,
        ),
        Cve(
            cve_id="CVE-2022-22963",
            description="Spring Cloud Function SpEL Code Injection",
            severity=Severity.CRITICAL,
            cvss_score=9.8,
            affected_services=["spring", "java"],
            affected_versions=["3.1.6", "3.2.2"],
            ports=[80, 443, 8080, 8443],
            references=[_nvd("CVE-2022-22963")],
            exploitable=True,
        ),
    ]


def _mysql_cves() -> list[Cve]:
    return [
        Cve(
            cve_id="CVE-2021-2154",
            description="MySQL Server DML unspecified vulnerability",
            severity=Severity.MEDIUM,
            cvss_score=4.9,
            affected_services=["mysql"],
            affected_versions=["5.7.33", "8.0.23"],
            ports=[3306],
            references=[_nvd("CVE-2021-2154")],
            exploitable=False,
        )
    ]


def _smb_cves() -> list[Cve]:
    return [
        Cve(
            cve_id="CVE-2017-0144",
            description="Microsoft SMBv1 Server remote code execution vulnerability (EternalBlue)",
            severity=Severity.CRITICAL,
            cvss_score=9.3,
            affected_services=["smb", "microsoft-ds"],
            affected_versions=["Windows Vista", "Windows 10"],
            ports=[445, 139],
            references=[
                _nvd("CVE-2017-0144"),
                "https://docs.microsoft.com/en-us/security-updates/securitybulletins/2017/ms17-010",
            ],
            exploitable=True,
        )
    ]


def _redis_cves() -> list[Cve]:
    return [
        Cve(
            cve_id="CVE-2022-0543",
            description="Redis Lua library command injection vulnerability",
            severity=Severity.CRITICAL,
            cvss_score=10.0,
            affected_services=["redis"],
            affected_versions=["5.0.0", "6.2.6"],
            ports=[6379],
            references=[_nvd("CVE-2022-0543")],
            exploitable=True,
        )
    ]


def _ftp_cves() -> list[Cve]:
    return [
        Cve(
            cve_id="CVE-2020-8277",
            description="Pure-FTPd before 1.0.50 allows remote attackers to cause a denial of service",
            severity=Severity.HIGH,
            cvss_score=7.5,
            affected_services=["pure-ftpd", "ftp"],
            affected_versions=["1.0.49"],
            ports=[21],
            references=[_nvd("CVE-2020-8277")],
            exploitable=True,
        )
    ]


def known_cves() -> list[Cve]:
    """Return fresh copies of the built-in CVE entries."""
    return [
        *_ssh_cves(),
        *_apache_cves(),
        *_mysql_cves(),
        *_smb_cves(),
        *_redis_cves(),
        *_ftp_cves(),
    ]


def known_service_vulnerabilities() -> dict[str, list[ServiceVulnerability]]:
    """Return fresh built-in mappings from service key to vulnerable versions."""
    return {
        "ssh": [
            ServiceVulnerability("openssh", r"OpenSSH_([5-7]\.[0-9]+)", _ssh_cves()),
        ],
        "http": [
            ServiceVulnerability("apache", r"Apache/([0-9]+\.[0-9]+\.[0-9]+)", _apache_cves()),
            ServiceVulnerability("spring", r"Spring.*([3]\.[0-9]+\.[0-9]+)", _apache_cves()),
        ],
        "mysql": [
            ServiceVulnerability("mysql", r"MySQL.*([5-8]\.[0-9]+\.[0-9]+)", _mysql_cves()),
        ],
        "smb": [
            ServiceVulnerability("microsoft-ds", r"Microsoft Windows.*", _smb_cves()),
        ],
        "redis": [
            ServiceVulnerability("redis", r"Redis.*([5-6]\.[0-9]+\.[0-9]+)", _redis_cves()),
        ],
        "ftp": [
            ServiceVulnerability("pure-ftpd", r"Pure-FTPd.*([1]\.[0]\.[0-9]+)", _ftp_cves()),
        ],
    }