"""Waypoint exception hierarchy.

Shared across the route table, dispatcher, response facade, and listener
so every module raises and catches the same types.
"""

from dataclasses import dataclass


class WaypointError(Exception):
    """Base for all waypoint-specific errors."""


class ConfigurationError(WaypointError):
    """Raised when router setup is invalid.

    Surfaces during route registration, before the listener starts.
    """


class MalformedPattern(ConfigurationError):
    """A route template that cannot be compiled unambiguously.

    Raised for duplicate ``:name`` parameters within one template.
    """

    def __init__(self, template: str, detail: str) -> None:
        self.template = template
        self.detail = detail
        super().__init__(f"Malformed route template {template!r}: {detail}")


class ResponseAlreadySent(WaypointError):  # noqa: N818
    """Raised when ``send`` is called on a response that is already complete."""

    def __init__(self, detail: str = "Attempting to send on a completed response.") -> None:
        super().__init__(detail)


@dataclass(frozen=True, slots=True)
class HTTPError(WaypointError):
    """An error that maps directly to an HTTP status code.

    Handlers may raise it to answer with *status* and *detail* as the body
    instead of the generic 500 produced for unexpected exceptions.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: no route completed the request."""

    def __init__(self, detail: str = "Not found") -> None:
        super().__init__(status=404, detail=detail)
