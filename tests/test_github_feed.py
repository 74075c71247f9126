import io
import json
from email.message import Message
from unittest.mock import patch
from urllib.error import HTTPError, URLError

import pytest

from tridentvuln.cve_database import CveDatabase
from tridentvuln.github_feed import (
    CRITICAL_CVES,
    LISTING_BASE_URL,
    RAW_BASE_URL,
    GitHubCveFeed,
    cve_from_record,
    guess_ports,
    high_impact_cves_for_year,
    is_relevant_cve,
)
from tridentvuln.models import Cve, Severity


def make_record(cve_id, severity="CRITICAL", score=10.0, product="Apache Log4j"):
    return {
        "cveMetadata": {"cveId": cve_id, "assignerShortName": "example"},
        "containers": {
            "cna": {
                "descriptions": [
                    {"lang": "de", "value": "Beschreibung"},
                    {"lang": "en", "value": "English description"},
                ],
                "metrics": [{"cvssV3_1": {"baseScore": score, "baseSeverity": severity}}],
                "affected": [
                    {
                        "vendor": "Example",
                        "product": product,
                        "versions": [
                            {"version": "2.0", "status": "affected"},
                            {"version": "2.1"},
                        ],
                    },
                    {"vendor": "Other"},
                ],
                "references": [{"url": "https://example.com/advisory"}],
            }
        },
    }


def cve_url(cve_id):
    return f"{RAW_BASE_URL}/{cve_id[4:8]}/{cve_id[9:12]}/{cve_id}.json"


def fake_opener(responses):
    requested = []

    def opener(request, timeout=None):
        url = request.full_url
        requested.append(url)
        payload = responses.get(url)
        if payload is None:
            raise HTTPError(url, 404, "Not Found", Message(), None)
        if isinstance(payload, Exception):
            raise payload
        return io.BytesIO(payload)

    return opener, requested


def encode(record):
    return json.dumps(record).encode()


def test_cve_from_record_full():
    cve = cve_from_record(make_record("CVE-2021-44228"))
    assert cve.cve_id == "CVE-2021-44228"
    assert cve.description == "English description"
    assert cve.severity is Severity.CRITICAL
    assert cve.cvss_score == 10.0
    assert cve.affected_services == ["Apache Log4j"]
    assert cve.affected_versions == ["2.0", "2.1"]
    assert cve.references == ["https://example.com/advisory"]
    assert cve.ports == [80, 443, 8080, 8443]
    assert cve.exploitable is True
    assert cve.patch_available is True


def test_cve_from_record_without_cna():
    record = {"cveMetadata": {"cveId": "CVE-2020-1472"}, "containers": {}}
    cve = cve_from_record(record)
    assert cve.description == "No description available"
    assert cve.severity is Severity.INFO
    assert cve.cvss_score == 0.0
    assert cve.affected_services == []
    assert cve.ports == []
    assert cve.exploitable is False


def test_cve_from_record_unknown_label_and_low_score():
    cve = cve_from_record(make_record("CVE-2020-1472", severity="NONE", score=3.1))
    assert cve.severity is Severity.INFO
    assert cve.exploitable is False


def test_cve_from_record_missing_metadata():
    with pytest.raises(ValueError):
        cve_from_record({"containers": {}})


def test_cve_from_record_bad_score():
    record = make_record("CVE-2020-1472")
    record["containers"]["cna"]["metrics"][0]["cvssV3_1"]["baseScore"] = "high"
    with pytest.raises(ValueError):
        cve_from_record(record)


def test_guess_ports():
    assert guess_ports(["OpenSSH", "MySQL"]) == [22, 3306]
    assert guess_ports(["nginx", "Apache httpd"]) == [80, 443, 8080, 8443]
    assert guess_ports(["samba"]) == [139, 445]
    assert guess_ports(["snmpd"]) == [161, 162]
    assert guess_ports(["unknown thing"]) == []


def test_high_impact_cves_for_year():
    ids = high_impact_cves_for_year(2021)
    assert "CVE-2021-44228" in ids
    assert all(i.startswith("CVE-2021-") for i in ids)
    assert high_impact_cves_for_year(2018) == []


def test_is_relevant_cve():
    base = dict(cve_id="CVE-2020-1472", description="d", cvss_score=5.0)
    assert is_relevant_cve(Cve(severity=Severity.HIGH, ports=[445], **base))
    assert is_relevant_cve(Cve(severity=Severity.LOW, ports=[22], exploitable=True, **base))
    assert not is_relevant_cve(Cve(severity=Severity.LOW, ports=[22], **base))
    assert not is_relevant_cve(Cve(severity=Severity.CRITICAL, **base))


@pytest.mark.asyncio
async def test_fetch_cve_success():
    cve_id = "CVE-2021-44228"
    opener, requested = fake_opener({cve_url(cve_id): encode(make_record(cve_id))})
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        cve = await GitHubCveFeed().fetch_cve(cve_id)
    assert cve.cve_id == cve_id
    assert requested == [
        "https://raw.githubusercontent.com/CVEProject/cvelistV5/main/cves/2021/442/CVE-2021-44228.json"
    ]


@pytest.mark.asyncio
async def test_fetch_cve_not_found():
    opener, _ = fake_opener({})
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        assert await GitHubCveFeed().fetch_cve("CVE-2021-44228") is None


@pytest.mark.asyncio
async def test_fetch_cve_malformed_id():
    with pytest.raises(ValueError):
        await GitHubCveFeed().fetch_cve("CVE-1")


@pytest.mark.asyncio
async def test_fetch_cve_invalid_json():
    cve_id = "CVE-2021-44228"
    opener, _ = fake_opener({cve_url(cve_id): b"not json"})
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        with pytest.raises(ValueError):
            await GitHubCveFeed().fetch_cve(cve_id)


@pytest.mark.asyncio
async def test_fetch_batch_counts():
    good = "CVE-2020-14882"
    broken = "CVE-2020-1472"
    responses = {
        cve_url(good): encode(make_record(good, product="WebLogic")),
        cve_url(broken): URLError("unreachable"),
    }
    opener, _ = fake_opener(responses)
    database = CveDatabase()
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        counts = await GitHubCveFeed().fetch_batch(
            database, [good, broken, "CVE-2019-0708"]
        )
    assert counts == (1, 2)
    assert database.get_cve(good).affected_services == ["WebLogic"]
    assert database.get_cve(broken) is None


@pytest.mark.asyncio
async def test_update_with_latest_all_missing():
    opener, requested = fake_opener({})
    database = CveDatabase()
    before = dict(database.cves)
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        counts = await GitHubCveFeed().update_with_latest(database)
    assert counts == (0, len(CRITICAL_CVES))
    assert len(requested) == len(CRITICAL_CVES)
    assert database.cves == before


@pytest.mark.asyncio
async def test_initialize_replaces_entry():
    cve_id = "CVE-2022-0543"
    opener, _ = fake_opener({cve_url(cve_id): encode(make_record(cve_id, product="redis"))})
    database = CveDatabase()
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        successful, _failed = await GitHubCveFeed().initialize(database)
    assert successful == 1
    assert database.get_cve(cve_id).description == "English description"
    assert database.get_cve(cve_id).ports == [6379]


@pytest.mark.asyncio
async def test_fetch_cves_for_year_with_filter():
    responses = {
        f"{LISTING_BASE_URL}/2020": b"[]",
        cve_url("CVE-2020-1472"): encode(make_record("CVE-2020-1472", product="samba")),
        cve_url("CVE-2020-14882"): encode(
            make_record("CVE-2020-14882", severity="HIGH", score=7.5)
        ),
    }
    opener, _ = fake_opener(responses)
    feed = GitHubCveFeed()
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        everything = await feed.fetch_cves_for_year(2020)
        critical = await feed.fetch_cves_for_year(2020, Severity.CRITICAL)
    assert [c.cve_id for c in everything] == ["CVE-2020-1472", "CVE-2020-14882"]
    assert [c.cve_id for c in critical] == ["CVE-2020-1472"]


@pytest.mark.asyncio
async def test_fetch_cves_for_year_listing_missing():
    opener, requested = fake_opener({})
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        assert await GitHubCveFeed().fetch_cves_for_year(2021) == []
    assert requested == [f"{LISTING_BASE_URL}/2021"]


@pytest.mark.asyncio
async def test_fetch_cves_for_year_listing_network_error():
    opener, _ = fake_opener({f"{LISTING_BASE_URL}/2021": URLError("down")})
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        with pytest.raises(OSError):
            await GitHubCveFeed().fetch_cves_for_year(2021)


@pytest.mark.asyncio
async def test_batch_process_years():
    responses = {
        f"{LISTING_BASE_URL}/2019": b"[]",
        cve_url("CVE-2019-0708"): encode(make_record("CVE-2019-0708", product="rdp")),
        cve_url("CVE-2019-11510"): encode(make_record("CVE-2019-11510", product="nginx")),
    }
    opener, _ = fake_opener(responses)
    database = CveDatabase()
    with patch("tridentvuln.github_feed.urlopen", side_effect=opener):
        processed, added = await GitHubCveFeed().batch_process_years(
            database, range(2018, 2020)
        )
    assert processed == 2
    assert added == 1
    assert database.get_cve("CVE-2019-11510") is not None
    assert database.get_cve("CVE-2019-0708") is None