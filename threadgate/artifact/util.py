"""
Small utilities for the artifact subsystem.

This module intentionally avoids third-party dependencies.
"""

from __future__ import annotations

import hashlib
import json
import math
import os
import re
import sys
import time
from datetime import datetime, timezone
from typing import Any

_UNSAFE_NAME = re.compile(r"[^a-zA-Z0-9_-]")
_RUN_ID = re.compile(r"[A-Za-z0-9_-]+")


def new_run_id(*, timestamp_ms: int | None = None) -> str:
    """
    Generate a run id: run_<epoch ms>_<6 hex chars>.

    Ids sort by creation time; the random suffix separates runs started in
    the same millisecond.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if timestamp_ms < 0:
        raise ValueError("timestamp_ms must be non-negative")
    return f"run_{timestamp_ms}_{os.urandom(3).hex()}"


def is_valid_run_id(run_id: str) -> bool:
    return bool(_RUN_ID.fullmatch(run_id))


def pid_is_running(pid: int) -> bool:
    """Whether a process with this pid exists on this host."""
    if pid <= 0:
        return False
    if sys.platform == "win32":
        import ctypes

        handle = ctypes.windll.kernel32.OpenProcess(0x1000, False, pid)
        if not handle:
            return False
        ctypes.windll.kernel32.CloseHandle(handle)
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_name(name: str) -> str:
    """Reduce a snapshot name to [A-Za-z0-9_-]."""
    return _UNSAFE_NAME.sub("_", name)


def _scrub(value: Any) -> Any:
    # Non-finite floats have no JSON form; write them as null.
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {str(k): _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def dumps_canonical(payload: Any) -> str:
    """Canonical JSON text: sorted keys, 2-space indent, UTF-8 as-is."""
    return json.dumps(_scrub(payload), indent=2, sort_keys=True, ensure_ascii=False, allow_nan=False)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
