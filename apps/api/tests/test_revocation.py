"""
Tests for the bounded revocation list.
"""
from datetime import datetime, timedelta, timezone

from portal_auth.sessions.revocation import RevocationList

from helpers import FakeClock


def make_list():
    clock = FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))
    return RevocationList(timedelta(hours=24), clock=clock), clock


class TestRevocationList:
    def test_added_id_is_revoked(self):
        revoked, _ = make_list()
        revoked.add("abc")

        assert "abc" in revoked
        assert "other" not in revoked

    def test_entries_expire_after_ttl(self):
        revoked, clock = make_list()
        revoked.add("abc")

        clock.advance(hours=23, minutes=59)
        assert "abc" in revoked

        clock.advance(minutes=1)
        assert "abc" not in revoked
        assert len(revoked) == 0

    def test_purge_drops_only_expired(self):
        revoked, clock = make_list()
        revoked.add("old-1")
        revoked.add("old-2")
        clock.advance(hours=12)
        revoked.add("recent")
        clock.advance(hours=12)

        assert revoked.purge() == 2
        assert len(revoked) == 1
        assert "recent" in revoked
        assert revoked.purge() == 0

    def test_re_adding_extends_lifetime(self):
        revoked, clock = make_list()
        revoked.add("abc")
        clock.advance(hours=20)
        revoked.add("abc")
        clock.advance(hours=20)

        assert "abc" in revoked
        assert len(revoked) == 1
