"""Utility functions and helpers for devposture."""

from devposture.utils.coercion import (
    as_array,
    clamp,
    decode_maybe_base64,
    first_defined,
    js_round,
    parse_timestamp,
    round_half_up,
    to_boolean,
    to_iso,
    to_number,
    utc_now,
)
from devposture.utils.http_client import (
    HTTPClientError,
    NonRetryableHTTPError,
    RetryableHTTPError,
    create_http_client,
    create_retry_decorator,
    handle_response,
)

__all__ = [
    "HTTPClientError",
    "NonRetryableHTTPError",
    "RetryableHTTPError",
    "as_array",
    "clamp",
    "create_http_client",
    "create_retry_decorator",
    "decode_maybe_base64",
    "first_defined",
    "handle_response",
    "js_round",
    "parse_timestamp",
    "round_half_up",
    "to_boolean",
    "to_iso",
    "to_number",
    "utc_now",
]
