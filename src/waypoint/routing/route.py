"""Route and RouteMatch frozen dataclasses."""

from dataclasses import dataclass

from waypoint._internal.types import Handler
from waypoint.routing.pattern import RoutePattern

ANY_METHOD = "*"


@dataclass(frozen=True, slots=True)
class Route:
    """A registered (method, pattern, handler) binding.

    Created by ``RouteTable.register`` and never modified afterwards.
    The handler is referenced, not owned.
    """

    method: str
    pattern: RoutePattern
    handler: Handler
    name: str | None = None

    @property
    def path(self) -> str:
        """The template this route was registered with."""
        return self.pattern.template

    def accepts(self, method: str) -> bool:
        """True if this route applies to requests using *method*."""
        return self.method == ANY_METHOD or self.method == method.upper()


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match.

    ``index`` is the route's position in the table so a scan can resume
    with the route after it.
    """

    route: Route
    params: dict[str, str]
    index: int
