"""Test utilities for ferry applications.

Provides an in-process test client that drives an app through its
ASGI interface::

    from ferry.testing import TestClient
"""

from ferry.testing.client import TestClient

__all__ = ["TestClient"]
