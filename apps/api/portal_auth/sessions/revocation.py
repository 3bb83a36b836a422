"""
Bounded record of revoked session ids.

A revoked id only needs to be remembered for as long as the session it
belonged to could still be presented, so every entry expires after the
session TTL. Entries are kept in insertion order; with a fixed TTL that is
also expiry order, which keeps purging proportional to what is removed.
"""
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable

from portal_auth.sessions.types import utcnow


class RevocationList:
    def __init__(self, ttl: timedelta, clock: Callable[[], datetime] = utcnow):
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, datetime]" = OrderedDict()

    def add(self, session_id: str) -> None:
        self._entries.pop(session_id, None)
        self._entries[session_id] = self._clock() + self.ttl

    def __contains__(self, session_id: str) -> bool:
        expires_at = self._entries.get(session_id)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._entries[session_id]
            return False
        return True

    def __len__(self) -> int:
        return len(self._entries)

    def purge(self) -> int:
        """Drop expired records. Returns how many were removed."""
        now = self._clock()
        removed = 0
        while self._entries:
            session_id, expires_at = next(iter(self._entries.items()))
            if expires_at > now:
                break
            del self._entries[session_id]
            removed += 1
        return removed
