"""Tests for dynamic version management.

Verifies that ``brother_nature.__version__`` is resolved from the installed
package metadata and that the FastAPI app and the root ``/`` endpoint report
the same value.
"""

from __future__ import annotations

import re

import pytest

import brother_nature
from brother_nature.api.server import create_app

_SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(-[A-Za-z0-9]+(\.[A-Za-z0-9]+)*)?$")


@pytest.mark.unit
class TestVersionAttribute:
    """Verify the ``brother_nature.__version__`` package attribute."""

    def test_version_matches_semver(self) -> None:
        assert _SEMVER_RE.match(brother_nature.__version__)

    def test_version_is_not_fallback(self) -> None:
        """The ``0.0.0-dev`` fallback only appears when the package is not installed."""
        assert brother_nature.__version__ != "0.0.0-dev"


@pytest.mark.unit
class TestVersionInApp:
    def test_openapi_version_matches_package(self, app_services) -> None:
        app = create_app(app_services.config, services=app_services)

        assert app.version == brother_nature.__version__

    def test_root_endpoint_version_matches_package(self, test_client) -> None:
        data = test_client.get("/").json()

        assert data["version"] == brother_nature.__version__
