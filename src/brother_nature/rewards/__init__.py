"""Reward issuance: request ledger, token kinds and the background worker."""

from brother_nature.rewards.ledger import RewardLedger
from brother_nature.rewards.tokens import TokenKind
from brother_nature.rewards.worker import RewardWorker

__all__ = ["RewardLedger", "RewardWorker", "TokenKind"]
