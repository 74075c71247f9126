"""CVE matching, CVE record fetching and Nmap-style probes for network scanners."""

__version__ = "0.1.0"

__all__ = [
    "models",
    "known_cves",
    "cve_database",
    "github_feed",
    "nse_scripts",
    "nse_engine",
]