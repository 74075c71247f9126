[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "tridentvuln"
version = "0.1.0"
description = "CVE knowledge base, version matching and Nmap-style service probes for network scanners"
requires-python = ">=3.10"
dependencies = []
keywords = ["security", "cve", "vulnerability", "scanner", "nmap", "nse"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Information Technology",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.setuptools.packages.find]
include = ["tridentvuln*"]

[tool.pytest.ini_options]
addopts = "-ra"
