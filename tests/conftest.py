"""
Shared pytest fixtures for the Brother Nature core test suite.

This module provides fixtures that are automatically available to all test files:
- Temporary SQLite databases wired in through ``use_test_database``
- Accounts for every role
- Real XRPL keypairs (secp256k1 and ed25519) for signing challenges
- An in-memory ChainClient double and a reward ledger built on it
- FastAPI TestClient instances with the application lifespan running
"""

import shutil
import tempfile
from collections.abc import Callable, Generator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from xrpl.constants import CryptoAlgorithm
from xrpl.core.keypairs import derive_classic_address, derive_keypair, generate_seed, sign

from brother_nature.api.auth import create_session
from brother_nature.api.server import build_services, create_app
from brother_nature.config import TokenSettings, config, use_test_database
from brother_nature.db import users_repo
from brother_nature.db.schema import init_database
from brother_nature.rewards.ledger import RewardLedger
from brother_nature.rewards.tokens import currency_map
from brother_nature.wallet.challenges import ChallengeManager
from brother_nature.wallet.verification import VerificationProtocol
from tests.constants import FROZEN_TIME_ISO, ISSUER_ADDRESS, TEST_PASSWORD
from tests.fakes import FakeChainClient, FrozenClock, no_sleep

# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """
    Create a temporary database file for testing.

    Each test function gets its own database, so tests never observe each
    other's rows.

    Yields:
        Path to temporary database file
    """
    temp_dir = tempfile.mkdtemp()
    temp_db = Path(temp_dir) / "test_brother_nature.db"

    with use_test_database(temp_db):
        yield temp_db

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="function")
def test_db(temp_db_path: Path) -> Generator[None, None, None]:
    """Initialize the schema without the bootstrap admin."""
    init_database(skip_admin=True)
    yield


@pytest.fixture(scope="function")
def users(test_db) -> dict[str, int]:
    """
    Create one account per role.

    - alice, bob: role ``user``
    - sage: role ``steward``
    - root: role ``admin``

    All accounts use TEST_PASSWORD.

    Returns:
        Dict mapping usernames to user ids
    """
    roles = {"alice": "user", "bob": "user", "sage": "steward", "root": "admin"}
    created = {}
    for username, role in roles.items():
        user_id = users_repo.create_user(username, TEST_PASSWORD, role=role)
        assert user_id is not None
        created[username] = user_id
    return created


# ============================================================================
# CLOCK FIXTURES
# ============================================================================


@pytest.fixture
def frozen_clock() -> FrozenClock:
    return FrozenClock(datetime.fromisoformat(FROZEN_TIME_ISO))


# ============================================================================
# XRPL KEYPAIR FIXTURES
# ============================================================================


@dataclass
class SigningKey:
    """A locally generated XRPL keypair and its classic address."""

    seed: str
    public_key: str
    private_key: str
    address: str

    def sign(self, message: str) -> str:
        return sign(message.encode("utf-8"), self.private_key)


def make_signing_key(algorithm: CryptoAlgorithm = CryptoAlgorithm.SECP256K1) -> SigningKey:
    seed = generate_seed(algorithm=algorithm)
    public_key, private_key = derive_keypair(seed)
    return SigningKey(
        seed=seed,
        public_key=public_key,
        private_key=private_key,
        address=derive_classic_address(public_key),
    )


@pytest.fixture
def secp_key() -> SigningKey:
    return make_signing_key(CryptoAlgorithm.SECP256K1)


@pytest.fixture
def ed_key() -> SigningKey:
    return make_signing_key(CryptoAlgorithm.ED25519)


@pytest.fixture
def other_key() -> SigningKey:
    return make_signing_key(CryptoAlgorithm.SECP256K1)


# ============================================================================
# WALLET SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def challenges(test_db, frozen_clock: FrozenClock) -> ChallengeManager:
    return ChallengeManager(ttl_seconds=300, clock=frozen_clock)


@pytest.fixture
def protocol(test_db, frozen_clock: FrozenClock) -> VerificationProtocol:
    return VerificationProtocol(clock=frozen_clock)


@pytest.fixture
def link_wallet(
    challenges: ChallengeManager, protocol: VerificationProtocol
) -> Callable[[int, SigningKey], None]:
    """Return a helper that runs the full challenge flow for a user and key."""

    def _link(user_id: int, key: SigningKey) -> None:
        challenge = challenges.issue(user_id, key.address)
        protocol.verify(
            challenge.nonce,
            key.address,
            key.sign(challenge.message),
            key.public_key,
            user_id,
        )

    return _link


# ============================================================================
# REWARD FIXTURES
# ============================================================================


@pytest.fixture
def fake_chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def ledger(test_db, fake_chain: FakeChainClient) -> RewardLedger:
    return RewardLedger(
        fake_chain,  # type: ignore[arg-type]
        issuer_address=ISSUER_ADDRESS,
        currencies=currency_map(TokenSettings()),
        max_attempts=3,
        backoff_base=0.01,
        backoff_max=0.05,
        finality_timeout=0.2,
        sleep=no_sleep,
    )


# ============================================================================
# FASTAPI TEST CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def app_services(test_db, fake_chain: FakeChainClient):
    return build_services(
        config,
        chain=fake_chain,  # type: ignore[arg-type]
        ledger_options={"sleep": no_sleep, "finality_timeout": 1.0},
    )


@pytest.fixture
def test_client(app_services) -> Generator[TestClient, None, None]:
    """
    Create a FastAPI TestClient with the application lifespan running.

    The reward worker is live and submits through ``fake_chain``.

    Example:
        def test_health(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    app = create_app(config, services=app_services)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers(users: dict[str, int]) -> Callable[[str], dict[str, str]]:
    """Return a helper building bearer headers for one of the ``users``."""

    def _headers(username: str) -> dict[str, str]:
        user = users_repo.get_user(users[username])
        assert user is not None
        token = create_session(user, ttl_minutes=60)
        return {"Authorization": f"Bearer {token}"}

    return _headers
