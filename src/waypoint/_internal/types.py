"""Shared type aliases used across waypoint modules."""

from collections.abc import Callable
from typing import Any, TypeAlias

# Route handler: called with (request, response), sync or async
Handler: TypeAlias = Callable[..., Any]
