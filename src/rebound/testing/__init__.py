"""Test utilities for rebound servers and bundles.

    from rebound.testing import TestClient
"""

from rebound.testing.client import TestClient

__all__ = ["TestClient"]
