"""Brother Nature core: wallet ownership verification and contribution rewards.

The forum links each contributor account to at most one XRPL wallet by way of
a signed, single-use challenge, and pays stewards' reward decisions out of a
platform-controlled issuer account.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("brother-nature-core")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
