"""Process-local one-time code store with per-entry expiry.

Entries are keyed by an opaque login session id and expire after
``ttl_seconds``. Expired entries are purged whenever the store is touched.
The store lives in a single process: a deployment with several workers
must route the login and verify calls to the same process, or swap this
class for a shared store exposing the same three methods.
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from attendance_console.config import settings


@dataclass(frozen=True)
class OtpEntry:
    code: str
    expires_at: float


class OtpStore:
    def __init__(
        self,
        ttl_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, OtpEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._purge_locked()
            return len(self._entries)

    def issue(self, session_id: str, code: str) -> OtpEntry:
        entry = OtpEntry(code=code, expires_at=self._clock() + self.ttl_seconds)
        with self._lock:
            self._purge_locked()
            self._entries[session_id] = entry
        return entry

    def verify(self, session_id: str, code: str) -> bool:
        """Return True and consume the entry when ``code`` matches an unexpired entry."""
        with self._lock:
            self._purge_locked()
            entry: Optional[OtpEntry] = self._entries.get(session_id)
            if entry is None:
                return False
            if not secrets.compare_digest(entry.code, code):
                return False
            del self._entries[session_id]
            return True

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)


def generate_code(length: int = settings.OTP_LENGTH) -> str:
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


otp_store = OtpStore(ttl_seconds=settings.OTP_TTL_SECONDS)
