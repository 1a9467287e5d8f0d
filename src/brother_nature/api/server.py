"""
FastAPI application factory.

:func:`create_app` wires the wallet and reward services together and binds
their lifecycle to the application's lifespan:

- on startup: connect to the ledger, reconcile rewards interrupted by a
  previous shutdown, start the reward worker and re-queue PENDING rewards;
- on shutdown: stop the worker and disconnect.

Run with ``bn-server run`` or
``uvicorn brother_nature.api.server:create_app --factory``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from brother_nature import __version__
from brother_nature.api.errors import register_exception_handlers
from brother_nature.api.routes import register_routes
from brother_nature.api.services import Services
from brother_nature.chain.client import ChainClient
from brother_nature.clock import Clock, utcnow
from brother_nature.config import ServerConfig
from brother_nature.errors import ChainSubmissionError
from brother_nature.rewards.ledger import RewardLedger
from brother_nature.rewards.worker import RewardWorker
from brother_nature.secrets import SecretStore, SecretUnavailableError, get_issuer_seed
from brother_nature.wallet.challenges import ChallengeManager
from brother_nature.wallet.signatures import SignatureVerifier
from brother_nature.wallet.verification import VerificationProtocol

logger = logging.getLogger(__name__)


def build_chain_client(cfg: ServerConfig, store: SecretStore | None = None) -> ChainClient:
    """Create the ledger client, signing with the issuer seed when available."""
    store = store or SecretStore(cfg)
    try:
        seed: str | None = get_issuer_seed(store)
    except SecretUnavailableError as exc:
        logger.warning("Issuer credential unavailable; rewards cannot be paid out: %s", exc)
        seed = None
    chain = ChainClient(cfg.chain.server_url, issuer_seed=seed)
    if seed and cfg.chain.issuer_address and chain.issuer_address != cfg.chain.issuer_address:
        logger.warning("Configured issuer address does not match the issuer seed")
    return chain


def build_services(
    cfg: ServerConfig,
    *,
    chain: ChainClient | None = None,
    clock: Clock = utcnow,
    ledger_options: dict | None = None,
) -> Services:
    chain = chain or build_chain_client(cfg)
    ledger = RewardLedger.from_config(chain, cfg, clock=clock, **(ledger_options or {}))
    if not ledger.issuer_address and chain.issuer_address:
        ledger.issuer_address = chain.issuer_address
    return Services(
        config=cfg,
        chain=chain,
        challenges=ChallengeManager(
            ttl_seconds=cfg.challenge.ttl_seconds,
            app_name=cfg.challenge.app_name,
            clock=clock,
        ),
        verification=VerificationProtocol(SignatureVerifier(), clock=clock),
        ledger=ledger,
        worker=RewardWorker(ledger),
    )


def create_app(
    cfg: ServerConfig | None = None,
    *,
    services: Services | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        cfg: Configuration; defaults to the module-level ``config``.
        services: Pre-built services (tests inject a fake chain this way).
    """
    if cfg is None:
        from brother_nature import config as config_module

        cfg = config_module.config

    services = services or build_services(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await services.chain.connect()
        except ChainSubmissionError:
            logger.warning("Starting without a ledger connection; submissions will retry")

        recovered = await services.ledger.recover_interrupted()
        if recovered:
            logger.info("Reconciled %d interrupted rewards", len(recovered))

        await services.worker.start()
        for request_id in services.ledger.pending_ids():
            services.worker.enqueue(request_id)

        try:
            yield
        finally:
            await services.worker.stop()
            await services.chain.disconnect()

    docs_enabled = cfg.docs_should_be_enabled
    app = FastAPI(
        title="Brother Nature Core",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.security.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    register_exception_handlers(app)
    register_routes(app)
    return app
