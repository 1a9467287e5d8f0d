"""
Pydantic models for API requests and responses.

JSON field names are camelCase on the wire (``publicKey``, ``expiresAt``);
Python attributes stay snake_case. Both spellings are accepted on input.

Models are organized into two categories:
1. Request models: Data sent FROM the client TO the server
2. Response models: Data sent FROM the server TO the client
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from brother_nature.db.types import RewardRequest, UserRecord


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class LoginRequest(ApiModel):
    """
    Login request with username and password.

    Attributes:
        username: Account username (case-sensitive)
        password: Plain text password (verified against the bcrypt hash)
    """

    username: str
    password: str


class ChallengeRequest(ApiModel):
    """Request a wallet challenge for ``address``."""

    address: str


class VerifyRequest(ApiModel):
    """
    Signed challenge submitted for verification.

    Attributes:
        nonce: Verification code from the challenge (64 lowercase hex chars)
        address: Claimed XRPL classic address
        signature: Hex signature over the UTF-8 bytes of the challenge message
        public_key: Hex public key of the signing keypair
    """

    nonce: str
    address: str
    signature: str
    public_key: str


class RewardTriggerRequest(ApiModel):
    """
    A verified contribution that should earn its author a reward.

    Attributes:
        beneficiary_user_id: Account receiving the reward
        contribution_ref: Stable reference to the contribution (post id, ...)
        amount: Optional decimal amount; defaults to the configured amount
        token_kind: EXPLORER, REGEN or GUARDIAN (default REGEN)
        reason: Optional human-readable reason stored on the request
    """

    beneficiary_user_id: int
    contribution_ref: str
    amount: Decimal | str | None = None
    token_kind: str = "REGEN"
    reason: str | None = None


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class UserResponse(ApiModel):
    id: int
    username: str
    role: str
    wallet_address: str | None = None

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            role=user.role,
            wallet_address=user.wallet_address,
        )


class LoginResponse(ApiModel):
    token: str
    user: UserResponse


class ChallengeResponse(ApiModel):
    nonce: str
    message: str
    expires_at: datetime
    instructions: str = (
        "Sign the message with your XRPL wallet, then submit the signature "
        "and public key to /wallet/verify."
    )


class VerifyResponse(ApiModel):
    message: str = "Wallet verified and linked successfully"
    user: UserResponse


class RewardResponse(ApiModel):
    id: str
    beneficiary_user_id: int
    token_kind: str
    currency_code: str
    amount: str
    reason: str
    contribution_ref: str
    destination_address: str
    issuer_address: str
    status: str
    external_tx_ref: str | None = None
    error_detail: str | None = None
    attempts: int = 0
    created_at: datetime
    processed_at: datetime | None = None
    confirmed_at: datetime | None = None

    @classmethod
    def from_request(cls, request: RewardRequest) -> "RewardResponse":
        return cls(
            id=request.id,
            beneficiary_user_id=request.beneficiary_user_id,
            token_kind=request.token_kind,
            currency_code=request.currency_code,
            amount=request.amount,
            reason=request.reason,
            contribution_ref=request.contribution_ref,
            destination_address=request.destination_address,
            issuer_address=request.issuer_address,
            status=request.status.value,
            external_tx_ref=request.external_tx_ref,
            error_detail=request.error_detail,
            attempts=request.attempts,
            created_at=request.created_at,
            processed_at=request.processed_at,
            confirmed_at=request.confirmed_at,
        )


class RewardListResponse(ApiModel):
    rewards: list[RewardResponse] = Field(default_factory=list)


class WalletRewardsResponse(ApiModel):
    wallet_address: str | None = None
    totals: dict[str, str] = Field(default_factory=dict)
    recent: list[RewardResponse] = Field(default_factory=list)
