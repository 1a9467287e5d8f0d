"""
XRPL client adapter.

Wraps ``xrpl-py``'s async clients behind the small surface the reward ledger
needs: connect, look up an account, build and sign an issued-currency
payment, submit it and wait for a validated result, look a transaction up
by hash, and read the latest validated ledger index.

Failure mapping:
    - Network and RPC transport problems raise
      :class:`ChainSubmissionError` with ``transient=True``; retrying the
      same signed blob is safe.
    - Validated failures (``tec*``), malformed transactions (``tem*``) and
      expired submissions raise :class:`ChainSubmissionError` with
      ``transient=False``.
    - Internal timeouts raise :class:`ChainTimeoutError`.

The issuer wallet is built once from the issuer seed. The seed itself is
never logged or exposed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx
from xrpl.asyncio.account import does_account_exist
from xrpl.asyncio.clients import AsyncJsonRpcClient, AsyncWebsocketClient
from xrpl.asyncio.clients.exceptions import (
    XRPLRequestFailureException,
    XRPLWebsocketException,
)
from xrpl.asyncio.ledger import get_latest_validated_ledger_sequence
from xrpl.asyncio.transaction import (
    XRPLReliableSubmissionException,
    autofill_and_sign,
)
from xrpl.asyncio.transaction import submit_and_wait as xrpl_submit_and_wait
from xrpl.constants import XRPLException
from xrpl.core.binarycodec import encode
from xrpl.models.amounts import IssuedCurrencyAmount
from xrpl.models.requests import Tx
from xrpl.models.transactions import Payment, Transaction
from xrpl.wallet import Wallet

from brother_nature.errors import ChainSubmissionError, ChainTimeoutError

logger = logging.getLogger(__name__)

SUCCESS_CODE = "tesSUCCESS"

_RESULT_CODE = re.compile(r"\b(te[cfmlrs][A-Z_]+)\b")

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    httpx.HTTPError,
    XRPLWebsocketException,
    XRPLRequestFailureException,
)


@dataclass(frozen=True, slots=True)
class SignedPayment:
    """An autofilled, signed payment ready for (re)submission.

    Resubmitting the same ``transaction`` can never produce a second payout:
    the ledger accepts one transaction per account sequence number and the
    hash identifies it.
    """

    transaction: Transaction
    tx_blob: str
    tx_hash: str
    last_ledger_sequence: int | None = None


@dataclass(frozen=True, slots=True)
class ChainReceipt:
    """Outcome of a transaction as reported by the ledger."""

    tx_hash: str
    result_code: str
    validated: bool

    @property
    def succeeded(self) -> bool:
        return self.validated and self.result_code == SUCCESS_CODE


def _extract_result_code(text: str) -> str | None:
    match = _RESULT_CODE.search(text)
    return match.group(1) if match else None


class ChainClient:
    """
    Injected handle on one XRPL node and one issuer wallet.

    Args:
        server_url: ``wss://`` / ``ws://`` URLs use a websocket client,
            ``http(s)://`` URLs use JSON-RPC.
        issuer_seed: Family seed of the issuer account. ``None`` makes the
            client read-only; :meth:`prepare_payment` then refuses to sign.
        client: Pre-built xrpl-py async client, mainly for tests.
    """

    def __init__(
        self,
        server_url: str,
        *,
        issuer_seed: str | None = None,
        client: AsyncWebsocketClient | AsyncJsonRpcClient | None = None,
    ) -> None:
        self.server_url = server_url
        if client is None:
            if server_url.startswith(("http://", "https://")):
                client = AsyncJsonRpcClient(server_url)
            else:
                client = AsyncWebsocketClient(server_url)
        self._client = client
        self._wallet = Wallet.from_seed(issuer_seed) if issuer_seed else None
        self._connected = False

    @property
    def issuer_address(self) -> str | None:
        """Classic address of the signing wallet, if one is configured."""
        return self._wallet.address if self._wallet else None

    @property
    def is_connected(self) -> bool:
        if isinstance(self._client, AsyncWebsocketClient):
            return self._client.is_open()
        return self._connected

    async def connect(self) -> None:
        """Open the connection. Safe to call repeatedly."""
        if self.is_connected:
            return
        try:
            if isinstance(self._client, AsyncWebsocketClient):
                await self._client.open()
        except _TRANSIENT_ERRORS as exc:
            logger.warning("Failed to connect to XRPL node %s", self.server_url, exc_info=True)
            raise ChainSubmissionError(f"XRPL connection failed: {exc}", transient=True) from exc
        self._connected = True
        logger.info("Connected to XRPL node %s", self.server_url)

    async def disconnect(self) -> None:
        if isinstance(self._client, AsyncWebsocketClient) and self._client.is_open():
            await self._client.close()
        if self._connected:
            logger.info("Disconnected from XRPL node %s", self.server_url)
        self._connected = False

    async def account_exists(self, address: str) -> bool:
        await self.connect()
        try:
            return await does_account_exist(address, self._client)
        except _TRANSIENT_ERRORS as exc:
            raise ChainSubmissionError(f"Account lookup failed: {exc}", transient=True) from exc

    async def prepare_payment(
        self, destination: str, currency: str, issuer: str, value: str
    ) -> SignedPayment:
        """Build, autofill and sign an issued-currency payment from the issuer wallet."""
        if self._wallet is None:
            raise ChainSubmissionError("Issuer credential is not available")
        if issuer != self._wallet.address:
            raise ChainSubmissionError("Issuer address does not match the signing wallet")

        await self.connect()
        payment = Payment(
            account=self._wallet.address,
            destination=destination,
            amount=IssuedCurrencyAmount(currency=currency, issuer=issuer, value=value),
        )
        try:
            signed = await autofill_and_sign(payment, self._client, self._wallet)
        except _TRANSIENT_ERRORS as exc:
            raise ChainSubmissionError(f"Could not prepare payment: {exc}", transient=True) from exc
        except XRPLException as exc:
            raise ChainSubmissionError(f"Could not prepare payment: {exc}") from exc

        return SignedPayment(
            transaction=signed,
            tx_blob=encode(signed.to_xrpl()),
            tx_hash=signed.get_hash(),
            last_ledger_sequence=signed.last_ledger_sequence,
        )

    async def submit_and_wait(self, signed: SignedPayment) -> ChainReceipt:
        """Submit ``signed`` and wait until the ledger validates or rejects it."""
        await self.connect()
        try:
            response = await xrpl_submit_and_wait(signed.transaction, self._client)
        except XRPLReliableSubmissionException as exc:
            result_code = _extract_result_code(str(exc))
            logger.warning("Payment %s rejected: %s", signed.tx_hash, exc)
            raise ChainSubmissionError(
                f"Payment rejected: {exc}", result_code=result_code
            ) from exc
        except TimeoutError as exc:
            raise ChainTimeoutError(f"Timed out waiting for {signed.tx_hash}") from exc
        except _TRANSIENT_ERRORS as exc:
            logger.warning("Payment %s submission failed", signed.tx_hash, exc_info=True)
            raise ChainSubmissionError(f"Submission failed: {exc}", transient=True) from exc
        except XRPLException as exc:
            raise ChainSubmissionError(f"Submission failed: {exc}") from exc

        result = response.result
        meta = result.get("meta") or {}
        return ChainReceipt(
            tx_hash=result.get("hash", signed.tx_hash),
            result_code=meta.get("TransactionResult", "unknown") if isinstance(meta, dict) else "unknown",
            validated=bool(result.get("validated", False)),
        )

    async def lookup_transaction(self, tx_hash: str) -> ChainReceipt | None:
        """Return the ledger's view of ``tx_hash``, or None if it is unknown."""
        await self.connect()
        try:
            response = await self._client.request(Tx(transaction=tx_hash))
        except _TRANSIENT_ERRORS as exc:
            raise ChainSubmissionError(f"Transaction lookup failed: {exc}", transient=True) from exc

        if not response.is_successful():
            if response.result.get("error") == "txnNotFound":
                return None
            raise ChainSubmissionError(
                f"Transaction lookup failed: {response.result.get('error', 'unknown error')}",
                transient=True,
            )

        meta = response.result.get("meta") or {}
        return ChainReceipt(
            tx_hash=tx_hash,
            result_code=meta.get("TransactionResult", "unknown") if isinstance(meta, dict) else "unknown",
            validated=bool(response.result.get("validated", False)),
        )

    async def validated_ledger_index(self) -> int:
        """Sequence number of the most recent validated ledger.

        A transaction whose ``LastLedgerSequence`` is at or below this value and
        that is not in the ledger can never be included.
        """
        await self.connect()
        try:
            return await get_latest_validated_ledger_sequence(self._client)
        except _TRANSIENT_ERRORS as exc:
            raise ChainSubmissionError(f"Ledger index lookup failed: {exc}", transient=True) from exc
