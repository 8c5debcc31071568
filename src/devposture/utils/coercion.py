"""Tolerant field extraction and coercion primitives.

Device payloads arrive from several upstream producers that disagree on
casing, synonyms and value types. Every normalizer reads fields through
these helpers so that malformed input degrades to a default instead of
raising.
"""

import base64
import binascii
import json
import math
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from loguru import logger

_TRUE_WORDS = frozenset({"true", "yes", "enabled", "online", "running"})
_FALSE_WORDS = frozenset({"false", "no", "disabled", "offline", "stopped"})

_BASE64_ALPHABET = re.compile(r"^[A-Za-z0-9+/=]+$")
_PRINTABLE_BYTES = frozenset({0x09, 0x0A, 0x0D, *range(0x20, 0x7F)})
_LIST_SEPARATORS = re.compile(r"[;,\n]+")
_EPOCH_MILLIS = re.compile(r"^-?\d+$")


def first_defined(*values: Any) -> Any:
    """Return the first value that is not None and not an empty string.

    Args:
        *values: Candidate values in priority order.

    Returns:
        The first usable candidate, or None when there is none.
    """
    for value in values:
        if value is not None and value != "":
            return value
    return None


def to_number(value: Any, fallback: Any = 0.0) -> Any:
    """Coerce a value to a finite float.

    Args:
        value: Raw value (number, numeric string, bool).
        fallback: Returned when the value is missing, non-numeric or not finite.

    Returns:
        The coerced float, or ``fallback``.
    """
    if value is None or isinstance(value, (list, tuple, dict, set)):
        return fallback
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return fallback
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    return number if math.isfinite(number) else fallback


def to_boolean(value: Any, fallback: bool = False) -> bool:
    """Coerce flags such as ``"Enabled"``, ``1`` or ``"stopped"`` to a bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value == 1:
            return True
        if value == 0:
            return False
        return fallback
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized == "1" or normalized in _TRUE_WORDS:
            return True
        if normalized == "0" or normalized in _FALSE_WORDS:
            return False
    return fallback


def decode_maybe_base64(value: Any) -> str:
    """Decode a value that may have been base64-encoded upstream.

    Decoding is attempted only for strings of at least 8 characters drawn
    from the base64 alphabet whose length is a multiple of 4. The decoded
    form is accepted only when it consists solely of printable ASCII and
    whitespace; otherwise the original (trimmed) string is returned.

    Args:
        value: Raw value, usually a username.

    Returns:
        Decoded text, or the input unchanged.
    """
    text = str(value or "").strip()
    if len(text) < 8:
        return text
    if not _BASE64_ALPHABET.match(text) or len(text) % 4 != 0:
        return text
    try:
        decoded = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return text
    if not decoded or any(byte not in _PRINTABLE_BYTES for byte in decoded):
        return text
    return decoded.decode("ascii")


def as_array(value: Any) -> list[Any]:
    """Coerce a list-ish value into a list.

    Lists pass through, JSON array strings are parsed, other strings are
    split on ``;``, ``,`` and newlines. Anything else yields an empty list.
    """
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    if not isinstance(value, str):
        return []

    trimmed = value.strip()
    if not trimmed:
        return []
    if (trimmed.startswith("[") and trimmed.endswith("]")) or (
        trimmed.startswith("{") and trimmed.endswith("}")
    ):
        try:
            parsed = json.loads(trimmed)
        except ValueError:
            logger.debug(f"Value looked like JSON but did not parse: {trimmed[:40]!r}")
        else:
            if isinstance(parsed, list):
                return parsed
    return [part.strip() for part in _LIST_SEPARATORS.split(trimmed) if part.strip()]


def as_mapping(value: Any) -> dict[str, Any]:
    """Return ``value`` as a dict, or an empty dict for non-mappings."""
    return dict(value) if isinstance(value, Mapping) else {}


def pick(mapping: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    """Return the first defined ``mapping[name]`` for ``names``, else ``default``."""
    value = first_defined(*(mapping.get(name) for name in names))
    return default if value is None else value


def lookup(mapping: Mapping[str, Any], *names: str) -> Any:
    """Look up the first populated key, trying exact names before any casing.

    Args:
        mapping: Raw object.
        *names: Candidate key names in priority order.

    Returns:
        The first defined value, or None.
    """
    exact = first_defined(*(mapping.get(name) for name in names))
    if exact is not None:
        return exact
    wanted = {name.lower() for name in names}
    return first_defined(
        *(value for key, value in mapping.items() if isinstance(key, str) and key.lower() in wanted)
    )


def text_or_none(value: Any) -> str | None:
    """Render a scalar as text, keeping None as None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp into an aware UTC datetime.

    Accepts datetimes, epoch milliseconds and ISO-8601 strings. Naive values
    are taken to be UTC. Unparseable input yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return _from_epoch_millis(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if _EPOCH_MILLIS.match(text) and len(text) > 8:
            return _from_epoch_millis(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _from_epoch_millis(millis: float) -> datetime | None:
    if not math.isfinite(millis):
        return None
    try:
        return datetime.fromtimestamp(millis / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def utc_now(now: datetime | None = None) -> datetime:
    """Return ``now`` as an aware UTC datetime, defaulting to the current time.

    Naive values are taken to be UTC, matching ``parse_timestamp``.
    """
    if now is None:
        return datetime.now(UTC)
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def to_iso(moment: datetime) -> str:
    """Format a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    moment = moment.astimezone(UTC)
    return f"{moment.strftime('%Y-%m-%dT%H:%M:%S')}.{moment.microsecond // 1000:03d}Z"


def js_round(value: float) -> int:
    """Round to the nearest integer with halves rounded toward +infinity."""
    return math.floor(value + 0.5)


def round_half_up(value: float, digits: int) -> float:
    """Round to a fixed number of decimals, halves away from zero."""
    try:
        quantum = Decimal(1).scaleb(-digits)
        return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return value


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
