"""devposture - device security-posture scoring and telemetry normalization.

Turns an inconsistently shaped device payload (telemetry, installed
applications, detected vulnerabilities) into a canonical profile and derives
risk scores, key-risk metrics, action plans and detection trends from it.
"""

from typing import Any

__version__ = "1.0.0"

from devposture.config import Settings
from devposture.models.profile import NormalizedProfile


def normalize_profile(raw_profile: Any) -> NormalizedProfile:
    """Normalize a raw device profile payload. Never raises on malformed content."""
    return NormalizedProfile.from_raw(raw_profile)


__all__ = ["NormalizedProfile", "Settings", "__version__", "normalize_profile"]
