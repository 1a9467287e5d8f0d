"""
Signing secret retrieval.

Two providers are supported:

    env    Read the secret from an environment variable. Development and
           tests only; refused when ``security.production`` is on.
    vault  ``GET {vault_url}/v1/secrets/{key}`` with the configured token.
           The response body is ``{"value": "..."}``.

Values are cached per process after the first successful read. Secret
values are never logged.
"""

from __future__ import annotations

import logging
import os

import requests

from brother_nature.config import ServerConfig

logger = logging.getLogger(__name__)

ISSUER_SECRET_KEY = "BN_XRPL_ISSUER_SECRET"


class SecretUnavailableError(RuntimeError):
    """A required secret could not be retrieved."""


class SecretStore:
    """Fetches named secrets from the configured provider."""

    def __init__(self, cfg: ServerConfig, *, session: requests.Session | None = None) -> None:
        self._settings = cfg.secrets
        self._production = cfg.is_production
        self._session = session or requests.Session()
        self._cache: dict[str, str] = {}

    def get(self, key: str) -> str:
        if key in self._cache:
            return self._cache[key]

        if self._settings.provider == "vault":
            value = self._from_vault(key)
        else:
            if self._production:
                raise SecretUnavailableError(
                    "Environment secrets are disabled in production; configure the vault provider"
                )
            value = self._from_env(key)

        self._cache[key] = value
        logger.info("Loaded secret %s from %s provider", key, self._settings.provider)
        return value

    def clear(self) -> None:
        self._cache.clear()

    def _from_env(self, key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise SecretUnavailableError(f"Secret {key!r} is not set in the environment")
        return value

    def _from_vault(self, key: str) -> str:
        base_url = self._settings.vault_url.strip().rstrip("/")
        if not base_url or not self._settings.vault_token:
            raise SecretUnavailableError("Vault URL and token must be configured")

        try:
            response = self._session.get(
                f"{base_url}/v1/secrets/{key}",
                headers={"Authorization": f"Bearer {self._settings.vault_token}"},
                timeout=self._settings.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            logger.warning("Vault request for %s failed: %s", key, exc.__class__.__name__)
            raise SecretUnavailableError(f"Vault request for {key!r} failed") from exc
        except ValueError as exc:
            raise SecretUnavailableError(f"Vault returned malformed JSON for {key!r}") from exc

        value = payload.get("value") if isinstance(payload, dict) else None
        if not isinstance(value, str) or not value:
            raise SecretUnavailableError(f"Secret {key!r} not found in vault")
        return value


def get_issuer_seed(store: SecretStore) -> str:
    """Return the issuer account's family seed."""
    return store.get(ISSUER_SECRET_KEY)
