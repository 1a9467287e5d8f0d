"""
Server configuration management.

Configuration is loaded from multiple sources with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/server.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The ServerConfig
dataclass provides typed access to all settings.

Usage:
    from brother_nature.config import config

    print(config.chain.server_url)
    print(config.challenge.ttl_seconds)

Environment Variable Mapping:
    BN_HOST                    -> server.host
    BN_PORT                    -> server.port
    BN_PRODUCTION              -> security.production
    BN_CORS_ORIGINS            -> security.cors_origins
    BN_DB_PATH                 -> database.path
    BN_LOG_LEVEL               -> logging.level
    BN_CHALLENGE_TTL_SECONDS   -> challenge.ttl_seconds
    BN_XRPL_SERVER             -> chain.server_url
    BN_XRPL_ISSUER_ADDRESS     -> chain.issuer_address
    BN_FINALITY_TIMEOUT        -> chain.finality_timeout_seconds
    BN_EXPLORER_CURRENCY       -> tokens.explorer_currency
    BN_REGEN_CURRENCY          -> tokens.regen_currency
    BN_GUARDIAN_CURRENCY       -> tokens.guardian_currency
    BN_SECRETS_PROVIDER        -> secrets.provider
    BN_VAULT_URL               -> secrets.vault_url
    BN_VAULT_TOKEN             -> secrets.vault_token

The issuer seed itself is never part of this object; it is resolved through
:mod:`brother_nature.secrets`.
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "server.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "server.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """Network server configuration."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8000


@dataclass
class SecuritySettings:
    """Security-related configuration."""

    production: bool = False
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    docs_enabled: Literal["auto", "enabled", "disabled"] = "auto"


@dataclass
class SessionSettings:
    """Bearer session configuration."""

    ttl_minutes: int = 7 * 24 * 60  # 0 = no expiry


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/brother_nature.db"

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class ChallengeSettings:
    """Wallet challenge configuration."""

    ttl_seconds: int = 300
    app_name: str = "Brother Nature"
    retention_days: int = 30


@dataclass
class ChainSettings:
    """External ledger (XRPL) connection and submission policy."""

    server_url: str = "wss://s.altnet.rippletest.net:51233"
    issuer_address: str = ""
    finality_timeout_seconds: float = 30.0
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 8.0
    default_reward_amount: str = "10"


@dataclass
class TokenSettings:
    """Issued-currency codes for each reward token kind."""

    explorer_currency: str = "EXP"
    regen_currency: str = "RGN"
    guardian_currency: str = "GRD"


@dataclass
class SecretSettings:
    """Where signing secrets are fetched from."""

    provider: Literal["env", "vault"] = "env"
    vault_url: str = ""
    vault_token: str = ""
    timeout_seconds: float = 5.0


@dataclass
class ServerConfig:
    """
    Complete server configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    session: SessionSettings = field(default_factory=SessionSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    challenge: ChallengeSettings = field(default_factory=ChallengeSettings)
    chain: ChainSettings = field(default_factory=ChainSettings)
    tokens: TokenSettings = field(default_factory=TokenSettings)
    secrets: SecretSettings = field(default_factory=SecretSettings)

    @property
    def is_production(self) -> bool:
        """Convenience property for production mode check."""
        return self.security.production

    @property
    def docs_should_be_enabled(self) -> bool:
        """Determine if API docs should be enabled based on settings."""
        if self.security.docs_enabled == "enabled":
            return True
        if self.security.docs_enabled == "disabled":
            return False
        return not self.is_production


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_from_ini(parser: configparser.ConfigParser, cfg: ServerConfig) -> None:
    """Load configuration from parsed INI file into ServerConfig."""
    if parser.has_section("server"):
        if parser.has_option("server", "host"):
            cfg.server.host = parser.get("server", "host")
        if parser.has_option("server", "port"):
            cfg.server.port = parser.getint("server", "port")

    if parser.has_section("security"):
        if parser.has_option("security", "production"):
            cfg.security.production = _parse_bool(parser.get("security", "production"))
        if parser.has_option("security", "cors_origins"):
            cfg.security.cors_origins = _parse_list(parser.get("security", "cors_origins"))
        if parser.has_option("security", "docs_enabled"):
            val = parser.get("security", "docs_enabled").lower()
            if val in ("auto", "enabled", "disabled"):
                cfg.security.docs_enabled = val  # type: ignore[assignment]

    if parser.has_section("session"):
        if parser.has_option("session", "ttl_minutes"):
            cfg.session.ttl_minutes = parser.getint("session", "ttl_minutes")

    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")

    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]

    if parser.has_section("challenge"):
        if parser.has_option("challenge", "ttl_seconds"):
            cfg.challenge.ttl_seconds = parser.getint("challenge", "ttl_seconds")
        if parser.has_option("challenge", "app_name"):
            cfg.challenge.app_name = parser.get("challenge", "app_name")
        if parser.has_option("challenge", "retention_days"):
            cfg.challenge.retention_days = parser.getint("challenge", "retention_days")

    if parser.has_section("chain"):
        if parser.has_option("chain", "server_url"):
            cfg.chain.server_url = parser.get("chain", "server_url")
        if parser.has_option("chain", "issuer_address"):
            cfg.chain.issuer_address = parser.get("chain", "issuer_address")
        if parser.has_option("chain", "finality_timeout_seconds"):
            cfg.chain.finality_timeout_seconds = parser.getfloat(
                "chain", "finality_timeout_seconds"
            )
        if parser.has_option("chain", "max_attempts"):
            cfg.chain.max_attempts = parser.getint("chain", "max_attempts")
        if parser.has_option("chain", "backoff_base_seconds"):
            cfg.chain.backoff_base_seconds = parser.getfloat("chain", "backoff_base_seconds")
        if parser.has_option("chain", "backoff_max_seconds"):
            cfg.chain.backoff_max_seconds = parser.getfloat("chain", "backoff_max_seconds")
        if parser.has_option("chain", "default_reward_amount"):
            cfg.chain.default_reward_amount = parser.get("chain", "default_reward_amount")

    if parser.has_section("tokens"):
        for option in ("explorer_currency", "regen_currency", "guardian_currency"):
            if parser.has_option("tokens", option):
                setattr(cfg.tokens, option, parser.get("tokens", option))

    if parser.has_section("secrets"):
        if parser.has_option("secrets", "provider"):
            val = parser.get("secrets", "provider").lower()
            if val in ("env", "vault"):
                cfg.secrets.provider = val  # type: ignore[assignment]
        if parser.has_option("secrets", "vault_url"):
            cfg.secrets.vault_url = parser.get("secrets", "vault_url")
        if parser.has_option("secrets", "timeout_seconds"):
            cfg.secrets.timeout_seconds = parser.getfloat("secrets", "timeout_seconds")


def _apply_env_overrides(cfg: ServerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    if env_host := os.getenv("BN_HOST"):
        cfg.server.host = env_host
    if env_port := os.getenv("BN_PORT"):
        cfg.server.port = int(env_port)

    if env_production := os.getenv("BN_PRODUCTION"):
        cfg.security.production = _parse_bool(env_production)
    if env_cors := os.getenv("BN_CORS_ORIGINS"):
        cfg.security.cors_origins = _parse_list(env_cors)

    if env_db := os.getenv("BN_DB_PATH"):
        cfg.database.path = env_db

    if env_log := os.getenv("BN_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()

    if env_ttl := os.getenv("BN_CHALLENGE_TTL_SECONDS"):
        cfg.challenge.ttl_seconds = int(env_ttl)

    if env_server := os.getenv("BN_XRPL_SERVER"):
        cfg.chain.server_url = env_server
    if env_issuer := os.getenv("BN_XRPL_ISSUER_ADDRESS"):
        cfg.chain.issuer_address = env_issuer
    if env_timeout := os.getenv("BN_FINALITY_TIMEOUT"):
        cfg.chain.finality_timeout_seconds = float(env_timeout)

    if env_exp := os.getenv("BN_EXPLORER_CURRENCY"):
        cfg.tokens.explorer_currency = env_exp
    if env_rgn := os.getenv("BN_REGEN_CURRENCY"):
        cfg.tokens.regen_currency = env_rgn
    if env_grd := os.getenv("BN_GUARDIAN_CURRENCY"):
        cfg.tokens.guardian_currency = env_grd

    if env_provider := os.getenv("BN_SECRETS_PROVIDER"):
        if env_provider.lower() in ("env", "vault"):
            cfg.secrets.provider = env_provider.lower()  # type: ignore[assignment]
    if env_vault := os.getenv("BN_VAULT_URL"):
        cfg.secrets.vault_url = env_vault
    if env_vault_token := os.getenv("BN_VAULT_TOKEN"):
        cfg.secrets.vault_token = env_vault_token


def load_config() -> ServerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/server.ini
        3. config/server.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        ServerConfig: Fully populated configuration object.
    """
    cfg = ServerConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "ServerConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Components that were
    constructed from the previous object keep their own copies.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information. Secret values
    are never included.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "production_mode": config.is_production,
        "chain_server": config.chain.server_url,
        "issuer_configured": bool(config.chain.issuer_address),
        "secrets_provider": config.secrets.provider,
    }


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    Usage:
        from brother_nature.config import use_test_database

        def test_something(tmp_path):
            with use_test_database(tmp_path / "test.db"):
                init_database()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Set up test database path."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None
