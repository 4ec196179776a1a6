"""Waypoint: a small embeddable HTTP router.

Routes are tried in registration order. A handler that sends ends the
request; one that returns without sending passes it to the next match.

Basic usage::

    from waypoint import Router

    router = Router()

    @router.get("/hello/:name")
    def hello(req, res):
        res.send(f"Hello, {req.keys['name']}!")

    router.start(8080)
"""

__version__ = "0.1.0"
__all__ = [
    "ConfigurationError",
    "HTTPError",
    "MalformedPattern",
    "NotFound",
    "ParsedURL",
    "Request",
    "Response",
    "ResponseAlreadySent",
    "Route",
    "RoutePattern",
    "RouteTable",
    "Router",
    "RouterConfig",
    "WaypointError",
    "compile_pattern",
    "parse_url",
    "url_decode",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import waypoint`` cheap until something is actually used.
    """
    if name == "Router":
        from waypoint.app import Router

        return Router

    if name == "RouterConfig":
        from waypoint.config import RouterConfig

        return RouterConfig

    if name == "Request":
        from waypoint.http.request import Request

        return Request

    if name == "Response":
        from waypoint.http.response import Response

        return Response

    if name in ("ParsedURL", "parse_url", "url_decode"):
        from waypoint.http import url as _url

        return getattr(_url, name)

    if name in ("RoutePattern", "compile_pattern"):
        from waypoint.routing import pattern as _pattern

        return getattr(_pattern, name)

    if name == "Route":
        from waypoint.routing.route import Route

        return Route

    if name == "RouteTable":
        from waypoint.routing.table import RouteTable

        return RouteTable

    if name in (
        "ConfigurationError",
        "HTTPError",
        "MalformedPattern",
        "NotFound",
        "ResponseAlreadySent",
        "WaypointError",
    ):
        from waypoint import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
