"""Storage key derivation for uploaded blobs.

Keys look like ``apks/1700000000000-app_v1.apk``: namespace, millisecond
timestamp, then the client filename with anything outside ``[A-Za-z0-9.-]``
replaced by ``_``. Uniqueness is best-effort; two uploads of the same filename
in the same millisecond collide unless ``unique_suffix`` is enabled.
"""
from __future__ import annotations

import re
import secrets
import time
from typing import Callable, Optional

APK_NAMESPACE = "apks"
ICON_NAMESPACE = "icons"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9.-]")


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def sanitize_filename(filename: Optional[str]) -> str:
    if not filename:
        return "upload"
    return _UNSAFE_CHARS.sub("_", filename)


def generate_key(namespace: str, filename: Optional[str], timestamp_ms: Optional[int] = None) -> str:
    ts = _now_ms() if timestamp_ms is None else timestamp_ms
    return f"{namespace}/{ts}-{sanitize_filename(filename)}"


class KeyGenerator:
    def __init__(self, clock: Optional[Callable[[], int]] = None, unique_suffix: bool = False) -> None:
        self._clock = clock or _now_ms
        self._unique_suffix = unique_suffix

    def generate(self, namespace: str, filename: Optional[str]) -> str:
        ts = self._clock()
        if self._unique_suffix:
            return f"{namespace}/{ts}-{secrets.token_hex(4)}-{sanitize_filename(filename)}"
        return generate_key(namespace, filename, ts)
