"""Login, logout and profile endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from brother_nature.api.auth import Principal, create_session, get_principal, remove_session
from brother_nature.api.models import LoginRequest, LoginResponse, UserResponse
from brother_nature.api.services import Services, get_services
from brother_nature.db import users_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, services: Services = Depends(get_services)):
    """Exchange username and password for a bearer session token."""
    username = request.username.strip()
    if not username or not request.password:
        raise HTTPException(status_code=400, detail="Username and password are required")

    user = users_repo.verify_credentials(username, request.password)
    if user is None:
        logger.info("Failed login for %r", username)
        raise HTTPException(status_code=401, detail="Invalid username or password")

    token = create_session(user, ttl_minutes=services.config.session.ttl_minutes)
    return LoginResponse(token=token, user=UserResponse.from_record(user))


@router.post("/logout")
async def logout(principal: Principal = Depends(get_principal)):
    """End the caller's session."""
    remove_session(principal.session_id)
    return {"success": True, "message": f"Goodbye, {principal.username}!"}


@router.get("/me", response_model=UserResponse)
async def me(principal: Principal = Depends(get_principal)):
    """Return the caller's profile including the bound wallet."""
    user = users_repo.get_user(principal.user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.from_record(user)
