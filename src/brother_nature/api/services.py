"""Service container shared by the route modules.

The application factory builds one :class:`Services` and stores it on
``app.state``. Handlers receive it through the :func:`get_services`
dependency, so nothing here is a module-level singleton.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from brother_nature.chain.client import ChainClient
from brother_nature.config import ServerConfig
from brother_nature.rewards.ledger import RewardLedger
from brother_nature.rewards.worker import RewardWorker
from brother_nature.wallet.challenges import ChallengeManager
from brother_nature.wallet.verification import VerificationProtocol


@dataclass(slots=True)
class Services:
    config: ServerConfig
    chain: ChainClient
    challenges: ChallengeManager
    verification: VerificationProtocol
    ledger: RewardLedger
    worker: RewardWorker


def get_services(request: Request) -> Services:
    return request.app.state.services
