"""Utility functions for tvremote runtime paths and timestamps."""

import os
from datetime import datetime, timezone
from pathlib import Path

DATA_DIR_NAME = ".tvremote"


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """
    Get the runtime data directory.

    Priority:
    1. `TVREMOTE_DATA_DIR` env override
    2. `~/.tvremote`
    """
    env_path = str(os.environ.get("TVREMOTE_DATA_DIR") or "").strip()
    if env_path:
        return ensure_dir(Path(env_path).expanduser())
    return ensure_dir(Path.home() / DATA_DIR_NAME)


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO-8601 format with microseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")
