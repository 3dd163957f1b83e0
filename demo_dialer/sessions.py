"""Session registry — correlation id → lead metadata for in-progress calls.

An entry is created when ``/make-call`` places an outbound call, read once
by the audio bridge when Twilio reports the media stream's ``start`` event,
and expired a fixed delay after Twilio reports a terminal call status.
Expiry is housekeeping only; a missing entry never breaks a call.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from typing import Optional

from demo_dialer.models.lead import CallSession

log = logging.getLogger("demo_dialer.sessions")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_call_id() -> str:
    """Return an opaque correlation id: base36 epoch-ms + random suffix."""
    return _to_base36(int(time.time() * 1000)) + secrets.token_hex(5)


def redact_pii(value: str) -> str:
    """Mask PII for logging — show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


class SessionRegistry:
    """Thread-safe in-memory map of correlation id → ``CallSession``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, CallSession] = {}

    def create(
        self,
        phone_number: str,
        name: str,
        company: str,
        email: str | None = None,
        attempt_number: int = 1,
    ) -> str:
        """Register a lead for a new call attempt and return its correlation id."""
        call_id = generate_call_id()
        session = CallSession(
            id=call_id,
            phone_number=phone_number,
            name=name,
            company=company,
            email=email or None,
            attempt_number=attempt_number,
        )
        with self._lock:
            self._sessions[call_id] = session
        log.info("Session registered: %s (to=%s)", call_id, redact_pii(phone_number))
        return call_id

    def get(self, call_id: str | None) -> Optional[CallSession]:
        """Look up a session; ``None`` when unknown or already expired."""
        if not call_id:
            return None
        with self._lock:
            return self._sessions.get(call_id)

    def delete(self, call_id: str) -> None:
        """Remove a session.  Safe to call for ids that are already gone."""
        with self._lock:
            removed = self._sessions.pop(call_id, None)
        if removed is not None:
            log.info("Session expired: %s", call_id)

    def schedule_expiry(self, call_id: str, delay: float) -> asyncio.TimerHandle:
        """Delete ``call_id`` after ``delay`` seconds on the running loop."""
        loop = asyncio.get_running_loop()
        log.debug("Session %s expires in %.0fs", call_id, delay)
        return loop.call_later(delay, self.delete, call_id)

    def __contains__(self, call_id: object) -> bool:
        with self._lock:
            return call_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class CallAttemptTracker:
    """Counts outbound call attempts per destination number."""

    def __init__(self, max_attempts: int = 2) -> None:
        self._lock = threading.Lock()
        self._attempts: dict[str, int] = {}
        self.max_attempts = max_attempts

    def attempts(self, phone_number: str) -> int:
        with self._lock:
            return self._attempts.get(phone_number, 0)

    def can_call(self, phone_number: str) -> bool:
        return self.attempts(phone_number) < self.max_attempts

    def record(self, phone_number: str) -> int:
        """Record a placed call and return the new attempt count."""
        with self._lock:
            count = self._attempts.get(phone_number, 0) + 1
            self._attempts[phone_number] = count
        return count
