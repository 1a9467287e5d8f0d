"""Reward trigger and status endpoints.

``POST /rewards/contributions`` is the hook the contribution workflow calls
once a steward has verified a contribution. It records the reward request
and queues it for background submission; the response never waits on the
external ledger. A reward that cannot be created (no linked wallet, an
earlier payment still settling, or the ledger side unavailable) is reported
alongside the accepted trigger instead of failing it.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from brother_nature.api.auth import Principal, get_principal, require_steward
from brother_nature.api.models import (
    ApiModel,
    RewardListResponse,
    RewardResponse,
    RewardTriggerRequest,
)
from brother_nature.api.permissions import Permission
from brother_nature.api.services import Services, get_services
from brother_nature.db.types import RewardStatus
from brother_nature.errors import (
    ChainSubmissionError,
    ChainTimeoutError,
    Conflict,
    CoreError,
    Forbidden,
    NoWalletLinked,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rewards", tags=["rewards"])


class RewardErrorBody(ApiModel):
    error: str
    message: str


class RewardTriggerResponse(ApiModel):
    accepted: bool = True
    contribution_ref: str
    reward: RewardResponse | None = None
    reward_error: RewardErrorBody | None = Field(default=None)


def _accepted_without_reward(contribution_ref: str, exc: CoreError) -> RewardTriggerResponse:
    return RewardTriggerResponse(
        contribution_ref=contribution_ref,
        reward_error=RewardErrorBody(error=exc.code, message=exc.message),
    )


@router.post(
    "/contributions",
    response_model=RewardTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def trigger_reward(
    request: RewardTriggerRequest,
    principal: Principal = Depends(require_steward),
    services: Services = Depends(get_services),
):
    amount = request.amount if request.amount is not None else services.config.chain.default_reward_amount
    try:
        reward = await services.ledger.create(
            request.beneficiary_user_id,
            amount,
            request.token_kind,
            request.reason,
            request.contribution_ref,
        )
    except NoWalletLinked as exc:
        logger.info(
            "Contribution %s accepted without reward: user %s has no wallet",
            request.contribution_ref,
            request.beneficiary_user_id,
        )
        return _accepted_without_reward(request.contribution_ref, exc)
    except (Conflict, ChainSubmissionError, ChainTimeoutError) as exc:
        logger.warning(
            "Contribution %s accepted without reward: %s",
            request.contribution_ref,
            exc.message,
        )
        return _accepted_without_reward(request.contribution_ref, exc)

    if reward.status is RewardStatus.PENDING:
        services.worker.enqueue(reward.id)
    logger.info(
        "Steward %s triggered reward %s for contribution %s",
        principal.user_id,
        reward.id,
        reward.contribution_ref,
    )
    return RewardTriggerResponse(
        contribution_ref=reward.contribution_ref,
        reward=RewardResponse.from_request(reward),
    )


@router.get("", response_model=RewardListResponse)
async def rewards_for_contribution(
    contribution_ref: str = Query(..., alias="contributionRef", min_length=1),
    principal: Principal = Depends(require_steward),
    services: Services = Depends(get_services),
):
    rewards = services.ledger.list_for_contribution(contribution_ref)
    return RewardListResponse(rewards=[RewardResponse.from_request(item) for item in rewards])


@router.get("/{request_id}", response_model=RewardResponse)
async def reward_status(
    request_id: str,
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
):
    reward = services.ledger.get(request_id)
    if reward.beneficiary_user_id != principal.user_id and not principal.can(
        Permission.VIEW_ALL_REWARDS
    ):
        raise Forbidden("This reward belongs to another user")
    return RewardResponse.from_request(reward)
