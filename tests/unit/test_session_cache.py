"""
Tests for Session Cache.
"""

from datetime import timedelta

from freezegun import freeze_time

from slot_booker.infrastructure.session_cache import SessionCache, session_key


class TestSessionCache:
    """Tests for SessionCache."""

    def test_set_and_get(self, session_cache):
        session_cache.set("k", {"cookies": ["a=1"]})

        assert session_cache.get("k") == {"cookies": ["a=1"]}
        assert len(session_cache) == 1

    def test_missing_key(self, session_cache):
        assert session_cache.get("missing") is None

    def test_entry_expires(self):
        cache = SessionCache(ttl_seconds=60)

        with freeze_time("2026-10-21 12:00:00") as frozen:
            cache.set("k", "state")
            frozen.tick(delta=timedelta(seconds=59))
            assert cache.get("k") == "state"

            frozen.tick(delta=timedelta(seconds=1))
            assert cache.get("k") is None
            assert len(cache) == 0

    def test_per_entry_ttl(self):
        cache = SessionCache(ttl_seconds=60)

        with freeze_time("2026-10-21 12:00:00") as frozen:
            cache.set("short", "a", ttl_seconds=5)
            cache.set("long", "b")
            frozen.tick(delta=timedelta(seconds=10))

            assert cache.get("short") is None
            assert cache.get("long") == "b"

    def test_none_or_zero_ttl_deletes(self, session_cache):
        session_cache.set("k", "state")
        session_cache.set("k", None)
        assert session_cache.get("k") is None

        session_cache.set("k", "state")
        session_cache.set("k", "other", ttl_seconds=0)
        assert session_cache.get("k") is None

    def test_cleanup_expired(self):
        cache = SessionCache(ttl_seconds=60)

        with freeze_time("2026-10-21 12:00:00") as frozen:
            cache.set("a", 1)
            cache.set("b", 2, ttl_seconds=600)
            frozen.tick(delta=timedelta(seconds=120))

            assert cache.cleanup_expired() == 1
            assert len(cache) == 1


class TestSessionKey:
    """Tests for session_key."""

    def test_ignores_case_and_query(self):
        first = session_key("Player@Example.com", "https://site.test/activities/1?view=month")
        second = session_key("player@example.com", "https://site.test/activities/1")

        assert first == second
