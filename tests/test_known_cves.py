import re

from tridentvuln.known_cves import known_cves, known_service_vulnerabilities
from tridentvuln.models import Severity


def test_ids_are_unique():
    ids = [cve.cve_id for cve in known_cves()]
    assert len(ids) == len(set(ids))


def test_log4shell_entry():
    by_id = {cve.cve_id: cve for cve in known_cves()}
    log4shell = by_id["CVE-2021-44228"]
    assert log4shell.cvss_score == 10.0
    assert log4shell.severity is Severity.CRITICAL
    assert log4shell.affected_versions == ["2.0-beta9", "2.15.0"]


def test_scores_in_cvss_range():
    assert all(0.0 <= cve.cvss_score <= 10.0 for cve in known_cves())


def test_every_entry_has_nvd_reference_first():
    for cve in known_cves():
        assert cve.references[0].endswith(cve.cve_id)


def test_returns_independent_copies():
    first = known_cves()
    first[0].ports.append(1)
    assert 1 not in known_cves()[0].ports


def test_service_keys():
    assert set(known_service_vulnerabilities()) == {
        "ssh", "http", "mysql", "smb", "redis", "ftp",
    }


def test_mapped_cves_are_known():
    ids = {cve.cve_id for cve in known_cves()}
    for entries in known_service_vulnerabilities().values():
        for entry in entries:
            assert {cve.cve_id for cve in entry.cves} <= ids


def test_patterns_compile_and_match():
    mapping = known_service_vulnerabilities()
    ssh_pattern = re.compile(mapping["ssh"][0].version_pattern)
    assert ssh_pattern.search("SSH-2.0-OpenSSH_6.6").group(1) == "6.6"
    for entries in mapping.values():
        for entry in entries:
            re.compile(entry.version_pattern)
            assert entry.cves


def test_http_has_apache_and_spring():
    http = known_service_vulnerabilities()["http"]
    assert [entry.service_name for entry in http] == ["apache", "spring"]