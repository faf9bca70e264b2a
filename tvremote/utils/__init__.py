"""Utility helpers."""

from tvremote.utils.helpers import ensure_dir, get_data_path, utc_now_iso
from tvremote.utils.redaction import mask_value, redact_sensitive_map

__all__ = ["ensure_dir", "get_data_path", "utc_now_iso", "mask_value", "redact_sensitive_map"]
