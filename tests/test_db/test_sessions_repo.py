"""Focused tests for ``brother_nature.db.sessions_repo``."""

from __future__ import annotations

from datetime import timedelta

import pytest

from brother_nature.clock import utcnow
from brother_nature.db import sessions_repo
from brother_nature.db.connection import connection_scope


@pytest.mark.unit
@pytest.mark.db
@pytest.mark.auth
class TestSessions:
    def test_session_resolves_to_user(self, users):
        sessions_repo.create_session(users["alice"], "s-1", ttl_minutes=60)

        assert sessions_repo.get_session_user_id("s-1") == users["alice"]
        assert sessions_repo.count_active_sessions() == 1

    def test_expired_session_does_not_resolve(self, users):
        sessions_repo.create_session(users["alice"], "s-1", ttl_minutes=1)

        later = utcnow() + timedelta(minutes=2)

        assert sessions_repo.get_session_user_id("s-1", now=later) is None

    def test_zero_ttl_never_expires(self, users):
        sessions_repo.create_session(users["alice"], "s-1", ttl_minutes=0)

        far_future = utcnow() + timedelta(days=3650)

        assert sessions_repo.get_session_user_id("s-1", now=far_future) == users["alice"]

    def test_deactivated_user_session_does_not_resolve(self, users):
        sessions_repo.create_session(users["alice"], "s-1", ttl_minutes=60)
        with connection_scope(write=True) as conn:
            conn.execute("UPDATE users SET is_active = 0 WHERE id = ?", (users["alice"],))

        assert sessions_repo.get_session_user_id("s-1") is None

    def test_remove_and_touch(self, users):
        sessions_repo.create_session(users["alice"], "s-1", ttl_minutes=60)

        assert sessions_repo.touch_session("s-1") is True
        assert sessions_repo.remove_session("s-1") is True
        assert sessions_repo.remove_session("s-1") is False
        assert sessions_repo.touch_session("s-1") is False
        assert sessions_repo.get_session_user_id("s-1") is None
