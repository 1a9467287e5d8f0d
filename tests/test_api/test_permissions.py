"""
Unit tests for permissions module (brother_nature/api/permissions.py).

Tests cover:
- Role parsing
- Permission checks per role
- Principal permission helper

All tests are pure unit tests with no external dependencies.
"""

import pytest

from brother_nature.api.auth import Principal
from brother_nature.api.permissions import (
    ROLE_PERMISSIONS,
    Permission,
    Role,
    has_permission,
    parse_role,
)

# ============================================================================
# ROLE PARSING TESTS
# ============================================================================


@pytest.mark.unit
def test_role_enum_values():
    """Test Role enum has expected values."""
    assert Role.USER.value == "user"
    assert Role.STEWARD.value == "steward"
    assert Role.ADMIN.value == "admin"


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["steward", "STEWARD", "Steward"])
def test_parse_role_is_case_insensitive(raw):
    assert parse_role(raw) is Role.STEWARD


@pytest.mark.unit
def test_parse_unknown_role():
    assert parse_role("superuser") is None


# ============================================================================
# HAS_PERMISSION TESTS
# ============================================================================


@pytest.mark.unit
@pytest.mark.auth
def test_user_can_link_wallet_but_not_trigger_rewards():
    """Test that a plain user manages only their own wallet."""
    assert has_permission("user", Permission.LINK_WALLET)
    assert has_permission("user", Permission.VIEW_OWN_REWARDS)
    assert not has_permission("user", Permission.TRIGGER_REWARDS)
    assert not has_permission("user", Permission.VIEW_ALL_REWARDS)


@pytest.mark.unit
@pytest.mark.auth
def test_steward_triggers_and_views_rewards():
    assert has_permission("steward", Permission.TRIGGER_REWARDS)
    assert has_permission("steward", Permission.VIEW_ALL_REWARDS)
    assert has_permission("steward", Permission.LINK_WALLET)


@pytest.mark.unit
@pytest.mark.auth
def test_admin_has_every_permission():
    """Test that admin holds the full permission set."""
    assert ROLE_PERMISSIONS[Role.ADMIN] == set(Permission)


@pytest.mark.unit
@pytest.mark.auth
def test_unknown_role_has_no_permissions():
    assert not any(has_permission("ghost", permission) for permission in Permission)


@pytest.mark.unit
@pytest.mark.auth
def test_principal_can():
    steward = Principal(user_id=1, username="sage", role=Role.STEWARD, session_id="s")
    user = Principal(user_id=2, username="alice", role=Role.USER, session_id="t")

    assert steward.can(Permission.TRIGGER_REWARDS)
    assert not user.can(Permission.TRIGGER_REWARDS)


# ============================================================================
# ROUTE ENFORCEMENT TESTS
# ============================================================================


@pytest.mark.api
@pytest.mark.auth
def test_wallet_routes_require_link_permission(
    test_client, users, auth_headers, secp_key, monkeypatch
):
    monkeypatch.setitem(ROLE_PERMISSIONS, Role.USER, {Permission.VIEW_OWN_REWARDS})
    headers = auth_headers("alice")

    challenge = test_client.post(
        "/wallet/challenge", json={"address": secp_key.address}, headers=headers
    )
    unlink = test_client.delete("/wallet", headers=headers)
    rewards = test_client.get("/wallet/rewards", headers=headers)

    assert challenge.status_code == 403
    assert unlink.status_code == 403
    assert rewards.status_code == 200


@pytest.mark.api
@pytest.mark.auth
def test_wallet_rewards_require_view_permission(test_client, users, auth_headers, monkeypatch):
    monkeypatch.setitem(ROLE_PERMISSIONS, Role.USER, {Permission.LINK_WALLET})

    response = test_client.get("/wallet/rewards", headers=auth_headers("alice"))

    assert response.status_code == 403
