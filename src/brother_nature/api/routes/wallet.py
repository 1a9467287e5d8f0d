"""Wallet linking endpoints.

Flow: ``POST /wallet/challenge`` → the user signs ``message`` in their
wallet → ``POST /wallet/verify`` with the signature and public key. Every
verification failure comes back as its own error code so the client can
tell whether to re-issue, re-sign, or pick another address.
"""

from fastapi import APIRouter, Depends

from brother_nature.api.auth import Principal, require_reward_viewer, require_wallet_owner
from brother_nature.api.models import (
    ChallengeRequest,
    ChallengeResponse,
    RewardResponse,
    UserResponse,
    VerifyRequest,
    VerifyResponse,
    WalletRewardsResponse,
)
from brother_nature.api.services import Services, get_services
from brother_nature.db import users_repo
from brother_nature.errors import NotFound

router = APIRouter(prefix="/wallet", tags=["wallet"])

RECENT_REWARDS_LIMIT = 20


@router.post("/challenge", response_model=ChallengeResponse)
async def request_challenge(
    request: ChallengeRequest,
    principal: Principal = Depends(require_wallet_owner),
    services: Services = Depends(get_services),
):
    challenge = services.challenges.issue(principal.user_id, request.address.strip())
    return ChallengeResponse(
        nonce=challenge.nonce,
        message=challenge.message,
        expires_at=challenge.expires_at,
    )


@router.post("/verify", response_model=VerifyResponse)
async def verify_wallet(
    request: VerifyRequest,
    principal: Principal = Depends(require_wallet_owner),
    services: Services = Depends(get_services),
):
    result = services.verification.verify(
        request.nonce.strip(),
        request.address.strip(),
        request.signature.strip(),
        request.public_key.strip(),
        principal.user_id,
    )
    return VerifyResponse(user=UserResponse.from_record(result.user))


@router.delete("", response_model=UserResponse)
async def unlink_wallet(
    principal: Principal = Depends(require_wallet_owner),
    services: Services = Depends(get_services),
):
    user = services.verification.unlink(principal.user_id)
    return UserResponse.from_record(user)


@router.get("/rewards", response_model=WalletRewardsResponse)
async def wallet_rewards(
    principal: Principal = Depends(require_reward_viewer),
    services: Services = Depends(get_services),
):
    """Bound address, confirmed totals per token kind and recent rewards."""
    user = users_repo.get_user(principal.user_id)
    if user is None:
        raise NotFound("User not found")
    recent = services.ledger.list_for_user(user.id, limit=RECENT_REWARDS_LIMIT)
    return WalletRewardsResponse(
        wallet_address=user.wallet_address,
        totals=services.ledger.totals_for_user(user.id),
        recent=[RewardResponse.from_request(item) for item in recent],
    )
