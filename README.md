# tridentvuln

A small vulnerability knowledge base for network scanners, using only the
Python standard library. It bundles:

- `tridentvuln.models`: the shared data types (`Severity`, `Cve`, `Finding`,
  `ServiceVulnerability`, `VulnerabilityMatch`, `CompactCveEntry`,
  `CompactCveDatabase`);
- `tridentvuln.known_cves`: built-in CVE entries for OpenSSH, Apache/Log4j,
  Spring, MySQL, SMB, Redis and Pure-FTPd, and their service mappings;
- `tridentvuln.cve_database`: `CveDatabase`, with lookups, loose version
  matching, CPE-aware search and a gzip-compressed JSON storage format;
- `tridentvuln.github_feed`: `GitHubCveFeed`, which downloads records in the
  CVE JSON 5 format from the public CVE list repository and adds them to a
  `CveDatabase`;
- `tridentvuln.nse_scripts` and `tridentvuln.nse_engine`: built-in check
  scripts and `NmapStyleEngine`, which runs banner, HTTP, raw TCP and
  anonymous-login probes against a host and turns confirmed matches into
  `Finding` objects.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Usage

### Searching the CVE database

```python
from tridentvuln.cve_database import CveDatabase

db = CveDatabase()
cve = db.get_cve("CVE-2022-0543")
print(cve.description, cve.cvss_score)

# Service/version search (a CPE, if given, is tried first); highest CVSS first.
for match in db.search_vulnerabilities("redis", "6.2.6", None, 7.0):
    print(match.cve_id, match.cvss_score, match.explanation)

# Loose version matching, optionally confirmed against a banner.
for cve in db.match_service_version("openssh", "7.1p1", "SSH-2.0-OpenSSH_7.1"):
    print(cve.cve_id)

print([c.cve_id for c in db.get_critical_cves()])
```

A CPE such as `cpe:/a:vendor:product:version` is looked up under the
mapping key `vendor:product`. `update_service_cve_mappings()` rebuilds the
service mappings from the CVEs currently held.

### Compact storage

`compress()` keeps only network-relevant CVEs with a CVSS score of 7.0 or
more and returns gzip-compressed JSON bytes; `load_compressed()` replaces all
CVEs with those in such a blob and raises `ValueError` on bad data.

```python
blob = db.compress()
other = CveDatabase()
other.load_compressed(blob)
```

### Fetching CVE records

```python
import asyncio
from tridentvuln.cve_database import CveDatabase
from tridentvuln.github_feed import GitHubCveFeed

async def refresh():
    db = CveDatabase()
    feed = GitHubCveFeed(timeout=10.0)
    successful, failed = await feed.update_with_latest(db)
    return db

asyncio.run(refresh())
```

`fetch_cve()` returns `None` when the record does not exist, raises
`OSError` on network failure and `ValueError` on a malformed record.
`cve_from_record()` converts an already-loaded record dictionary.
`batch_process_years()` adds the relevant well-known CVEs of the given
years and returns `(processed, added)`.

### Running Nmap-style scripts

```python
import asyncio
from tridentvuln.nse_engine import NmapStyleEngine

engine = NmapStyleEngine()
print(engine.all_categories())

finding = asyncio.run(
    engine.run_script("ssh-vuln-cve2016-0777", "192.0.2.10", 22, "SSH-2.0-OpenSSH_6.6")
)
if finding:
    print(finding.title, finding.severity, finding.confidence, finding.evidence)

findings = asyncio.run(engine.run_category_scripts("safe", "192.0.2.10", 6379))
```

A script runs only when the port is one of its ports (or it lists none),
and reports a finding only when a probe detected something and the average
probe confidence reaches the script's threshold. The analysis methods
(`analyze_banner`, `analyze_http_response`, `analyze_tcp_response`,
`analyze_version_patterns`) can be used on text you already have. Exploit
probes are never run.

Only scan hosts you are authorised to test.

Progress messages are written through the standard `logging` module.

## What it does not do

- There is no command-line tool; everything is used as a library.
- It does not discover hosts or open ports, and the banners that banner and
  version probes analyse must be supplied by the caller.
- There is no rule database mapping ports and services to configuration
  weaknesses; checks are limited to CVE matching and the built-in scripts.
- Nothing is stored on disk: `compress()` returns bytes and it is up to the
  caller to save and reload them.