"""Pytest configuration and fixtures for devposture tests."""

import json
from datetime import UTC, datetime

import pytest

from devposture import normalize_profile
from devposture.config import Settings

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def now():
    """Fixed reference time used by time-dependent derivations."""
    return NOW


@pytest.fixture
def sample_raw_profile():
    """Device profile payload mixing the casings seen from upstream producers."""
    return {
        "device": {
            "DeviceName": "WS-042",
            "deviceId": "dev-42",
            "state": "active",
            "lastHeartbeat": "2024-06-15T11:50:00Z",
            "OS": "Windows 11 Pro",
            "summary": {"riskScore": 20},
        },
        "telemetry": {
            "latest": {
                "timestamp": "2024-06-15T11:50:00Z",
                "fields": {
                    "IPAddresses": "10.0.0.5; 192.168.1.20",
                    "UserName": "anNtaXRo",
                    "OSVersion": "Windows 11 Pro 23H2",
                    "AVProduct": "Windows Defender",
                    "CPU": "Intel Core i7-1185G7",
                },
            },
            "history": [],
            "changes": [],
        },
        "telemetryStatus": {
            "LastHeartbeat": "2024-06-15T11:50:00Z",
            "consecutiveFailures": "0",
        },
        "apps": {
            "items": [
                {
                    "name": "Google Chrome",
                    "vendor": "Google",
                    "version": "124.0",
                    "latestVersion": "125.0",
                    "status": "installed",
                    "isRunning": "running",
                    "installPath": "C:\\Program Files\\Google\\Chrome",
                    "runningPath": "C:\\Program Files\\Google\\Chrome\\chrome.exe",
                },
                {
                    "AppName": "7-Zip",
                    "AppVendor": "Igor Pavlov",
                    "ApplicationVersion": "23.01",
                    "AppStatus": "Installed",
                    "InstallPath": "C:\\Program Files\\7-Zip",
                },
                {"name": "Notepad++", "vendor": "Don Ho", "version": "8.6", "status": "updated"},
                {"name": "Zoom", "vendor": "Zoom", "version": "5.0", "status": "installed"},
            ]
        },
        "cves": {
            "items": [
                {
                    "cveId": "CVE-2024-0001",
                    "severity": "critical",
                    "cvssScore": 9.8,
                    "appName": "Google Chrome",
                    "hasKnownExploit": True,
                    "epssProbability": 0.92,
                    "firstDetected": "2024-06-05T08:00:00Z",
                    "lastDetected": "2024-06-15T08:00:00Z",
                    "matchConfidence": 2,
                    "remediationType": "Patch available",
                },
                {
                    "CveId": "CVE-2024-0002",
                    "Severity": "HIGH",
                    "Score": "7.5",
                    "AppName": "google chrome ",
                    "EPSS": 45,
                    "FirstDetected": "2024-06-10T00:00:00Z",
                    "LastDetected": "2024-06-12T00:00:00Z",
                    "MatchType": "fuzzy version",
                    "FixType": "Configuration change",
                },
                {
                    "id": "CVE-2024-0003",
                    "severity": "medium",
                    "cvss": 5.0,
                    "productName": "7-Zip",
                    "firstDetected": "2024-06-14T10:00:00Z",
                    "lastDetected": "2024-06-14T10:00:00Z",
                    "absoluteMatch": "yes",
                    "remediationType": "Workaround",
                },
                {
                    "cveId": "CVE-2024-0004",
                    "severity": "weird",
                    "cvssScore": 3.1,
                    "appName": "Zoom",
                    "remediationType": "No fix available",
                    "epssProbability": 0.05,
                },
            ]
        },
    }


@pytest.fixture
def sample_profile(sample_raw_profile):
    """Normalized form of the sample payload."""
    return normalize_profile(sample_raw_profile)


@pytest.fixture
def sample_profile_file(tmp_path, sample_raw_profile):
    """Sample payload written to disk inside the API's ``data`` envelope."""
    path = tmp_path / "device.json"
    path.write_text(json.dumps({"data": sample_raw_profile}), encoding="utf-8")
    return path


@pytest.fixture
def sample_kev_response():
    """Sample CISA KEV catalog response."""
    return {
        "title": "CISA Catalog of Known Exploited Vulnerabilities",
        "catalogVersion": "2024.06.14",
        "dateReleased": "2024-06-14T00:00:00.000Z",
        "count": 2,
        "vulnerabilities": [
            {
                "cveID": "CVE-2024-0001",
                "vendorProject": "Google",
                "product": "Chromium V8",
                "vulnerabilityName": "Google Chromium V8 Type Confusion Vulnerability",
                "dateAdded": "2024-06-10",
                "shortDescription": "Type confusion allowing heap corruption.",
                "requiredAction": "Apply mitigations per vendor instructions.",
                "dueDate": "2024-07-01",
                "knownRansomwareCampaignUse": "Known",
                "notes": "",
            },
            {
                "cveID": "CVE-2023-9999",
                "vendorProject": "Example Corp",
                "product": "Example Gateway",
                "vulnerabilityName": "Example Gateway Path Traversal",
                "dateAdded": "2023-11-02",
                "shortDescription": "Path traversal in the management interface.",
                "requiredAction": "Apply updates per vendor instructions.",
                "dueDate": "2023-11-23",
                "knownRansomwareCampaignUse": "Unknown",
                "notes": "",
            },
        ],
    }


@pytest.fixture
def test_settings():
    """Settings with default public intel endpoints."""
    return Settings(log_level="DEBUG")
