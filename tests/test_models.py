import json

import pytest

from tridentvuln.models import (
    CompactCveDatabase,
    CompactCveEntry,
    Cve,
    Finding,
    Severity,
)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("CRITICAL", Severity.CRITICAL),
        ("HIGH", Severity.HIGH),
        ("MEDIUM", Severity.MEDIUM),
        ("LOW", Severity.LOW),
        ("NONE", Severity.INFO),
        ("critical", Severity.INFO),
    ],
)
def test_severity_from_label(label, expected):
    assert Severity.from_label(label) is expected


@pytest.mark.parametrize("severity", list(Severity))
def test_severity_code_round_trip(severity):
    assert Severity.from_code(severity.to_code()) is severity


def test_severity_codes_fixed():
    assert Severity.CRITICAL.to_code() == 4
    assert Severity.INFO.to_code() == 0


@pytest.mark.parametrize("code", [5, 99, -1])
def test_severity_unknown_code_is_info(code):
    assert Severity.from_code(code) is Severity.INFO


def _entry():
    return CompactCveEntry(
        id="CVE-2022-0543",
        score=10.0,
        severity=Severity.CRITICAL.to_code(),
        services=["redis"],
        versions=["5.0.0", "6.2.6"],
        ports=[6379],
        exploitable=True,
    )


def test_compact_entry_round_trip():
    entry = _entry()
    assert CompactCveEntry.from_dict(entry.to_dict()) == entry


def test_compact_entry_dict_keys():
    assert set(_entry().to_dict()) == {
        "id", "score", "severity", "services", "versions", "ports", "exploitable",
    }


def test_compact_entry_missing_field():
    data = _entry().to_dict()
    del data["score"]
    with pytest.raises(ValueError):
        CompactCveEntry.from_dict(data)


def test_compact_entry_bad_port():
    data = _entry().to_dict()
    data["ports"] = [70000]
    with pytest.raises(ValueError):
        CompactCveEntry.from_dict(data)


def test_compact_database_json_round_trip():
    db = CompactCveDatabase(
        cves=[_entry()],
        service_patterns={"redis": ["Redis", "redis_version"]},
        last_updated=1_700_000_000,
    )
    restored = CompactCveDatabase.from_dict(json.loads(json.dumps(db.to_dict())))
    assert restored == db


def test_compact_database_missing_cves():
    with pytest.raises(ValueError):
        CompactCveDatabase.from_dict({"service_patterns": {}, "last_updated": 0})


def test_compact_database_not_a_mapping():
    with pytest.raises(ValueError):
        CompactCveDatabase.from_dict([1, 2, 3])


def test_finding_defaults_are_independent():
    first = Finding("a", "b", Severity.LOW, 0.5)
    second = Finding("c", "d", Severity.LOW, 0.5)
    first.evidence.append("seen")
    assert second.evidence == []


def test_cve_defaults():
    cve = Cve("CVE-2020-8277", "desc", Severity.HIGH, 7.5)
    assert cve.patch_available is True
    assert cve.exploitable is False
    assert cve.ports == []