"""External ledger (XRPL) boundary.

Everything that talks to the network lives behind :class:`ChainClient`, an
explicitly constructed object with its own ``connect``/``disconnect``
lifecycle. Callers receive it by injection; there is no process-wide client.
"""

from brother_nature.chain.client import ChainClient, ChainReceipt, SignedPayment

__all__ = ["ChainClient", "ChainReceipt", "SignedPayment"]
