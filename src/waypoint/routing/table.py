"""Ordered route table with first-match lookup.

Routes are matched strictly in registration order. There is no
specificity ranking: a ``*`` route registered before a specific one
shadows it for every request it matches.
"""

import logging
from collections.abc import Iterator

from waypoint._internal.types import Handler
from waypoint.routing.pattern import compile_pattern
from waypoint.routing.route import ANY_METHOD, Route, RouteMatch

logger = logging.getLogger("waypoint.routing")


class RouteTable:
    """Append-only sequence of routes; insertion order is priority.

    Usage::

        table = RouteTable()
        table.register("GET", "/users/:id", show_user)
        table.register("*", "/files/*", serve_file)
        table.freeze()
        match = table.find_match("GET", "/users/42")
    """

    __slots__ = ("_frozen", "_routes")

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._frozen = False

    def register(
        self,
        method: str,
        template: str,
        handler: Handler,
        *,
        name: str | None = None,
    ) -> Route:
        """Compile *template* and append a route. Must be called before freeze().

        Raises:
            MalformedPattern: If the template is ambiguous.
            RuntimeError: If the table is already frozen.
        """
        if self._frozen:
            msg = "Cannot register routes after the route table is frozen."
            raise RuntimeError(msg)

        verb = method.strip().upper() or ANY_METHOD
        route = Route(method=verb, pattern=compile_pattern(template), handler=handler, name=name)
        self._routes.append(route)
        logger.debug("registered #%d %s %s", len(self._routes) - 1, verb, template)
        return route

    def find_match(self, method: str, path: str, *, start: int = 0) -> RouteMatch | None:
        """Return the first route at or after *start* matching *method* and *path*.

        Returns ``None`` once the table is exhausted.
        """
        for index in range(start, len(self._routes)):
            route = self._routes[index]
            if not route.accepts(method):
                continue
            params = route.pattern.match(path)
            if params is not None:
                return RouteMatch(route=route, params=params, index=index)
        return None

    def matches(self, method: str, path: str) -> Iterator[RouteMatch]:
        """Yield every matching route in priority order.

        Each step resumes the scan with the route after the previous match.
        """
        match = self.find_match(method, path)
        while match is not None:
            yield match
            match = self.find_match(method, path, start=match.index + 1)

    def freeze(self) -> None:
        """Freeze the table. No more routes can be registered."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def routes(self) -> tuple[Route, ...]:
        """All registered routes in priority order."""
        return tuple(self._routes)

    def __iter__(self) -> Iterator[Route]:
        return iter(self.routes)

    def __len__(self) -> int:
        return len(self._routes)
