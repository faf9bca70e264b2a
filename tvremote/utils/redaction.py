"""Helpers to redact pairing secrets from frames before they are logged."""

from __future__ import annotations

from typing import Any

SENSITIVE_KEYS = {
    "client-key",
    "client_key",
    "clientkey",
    "pin",
    "secret",
    "token",
    "authorization",
}


def mask_value(value: Any, *, keep_prefix: int = 2, keep_suffix: int = 2) -> str:
    text = str(value or "")
    if not text:
        return ""
    if len(text) <= keep_prefix + keep_suffix:
        return "*" * len(text)
    return f"{text[:keep_prefix]}{'*' * (len(text) - keep_prefix - keep_suffix)}{text[-keep_suffix:]}"


def redact_sensitive_map(data: dict[str, Any]) -> dict[str, Any]:
    output: dict[str, Any] = {}
    for key, value in data.items():
        lower_key = str(key).strip().lower()
        if lower_key in SENSITIVE_KEYS:
            output[key] = mask_value(value)
            continue
        if lower_key == "manifest":
            # Static vendor blob, too noisy for frame logs.
            output[key] = "<manifest>"
            continue
        if isinstance(value, dict):
            output[key] = redact_sensitive_map(value)
            continue
        if isinstance(value, list):
            output[key] = [
                redact_sensitive_map(item) if isinstance(item, dict) else item for item in value
            ]
            continue
        output[key] = value
    return output
