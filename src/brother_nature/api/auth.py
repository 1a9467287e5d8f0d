"""
Session management and the typed request principal.

Clients authenticate with ``Authorization: Bearer <session token>``. The
token is resolved once per request by :func:`get_principal` into a
:class:`Principal`; handlers receive that value and never look at the raw
header again.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from brother_nature.api.permissions import Permission, Role, has_permission, parse_role
from brother_nature.db import sessions_repo, users_repo
from brother_nature.db.types import UserRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated caller."""

    user_id: int
    username: str
    role: Role
    session_id: str

    def can(self, permission: Permission) -> bool:
        return has_permission(self.role.value, permission)


def create_session(user: UserRecord, *, ttl_minutes: int) -> str:
    """Start a session for ``user`` and return its bearer token."""
    session_id = str(uuid.uuid4())
    sessions_repo.create_session(user.id, session_id, ttl_minutes=ttl_minutes)
    logger.info("Session started for user %s", user.id)
    return session_id


def remove_session(session_id: str) -> bool:
    return sessions_repo.remove_session(session_id)


def get_active_session_count() -> int:
    return sessions_repo.count_active_sessions()


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token.strip()


def get_principal(authorization: str | None = Header(default=None)) -> Principal:
    """FastAPI dependency: resolve the bearer token into a :class:`Principal`."""
    session_id = _bearer_token(authorization)

    user_id = sessions_repo.get_session_user_id(session_id)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = users_repo.get_user(user_id)
    role = parse_role(user.role) if user else None
    if user is None or role is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    sessions_repo.touch_session(session_id)
    return Principal(user_id=user.id, username=user.username, role=role, session_id=session_id)


def require_permission(permission: Permission) -> Callable[..., Principal]:
    """Build a dependency that also checks ``permission``."""

    def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.can(permission):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return principal

    return dependency


require_steward = require_permission(Permission.TRIGGER_REWARDS)
require_wallet_owner = require_permission(Permission.LINK_WALLET)
require_reward_viewer = require_permission(Permission.VIEW_OWN_REWARDS)
