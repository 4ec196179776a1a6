"""Test utilities for waypoint routers.

    from waypoint.testing import TestClient
"""

from waypoint.testing.client import TestClient, TestResponse

__all__ = ["TestClient", "TestResponse"]
