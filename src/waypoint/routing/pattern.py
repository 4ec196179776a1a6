"""Route template compilation.

Turns a path template into an anchored regular expression::

    "/users/:id"        -> ^/users/(?P<id>[^/]+)$
    "/files/*"          -> ^/files/.*$
    "/users/:id/posts/:postId"
                        -> ^/users/(?P<id>[^/]+)/posts/(?P<postId>[^/]+)$

``:name`` captures one or more characters up to the next ``/``. ``*``
matches the rest of the path, slashes included, and is not captured.
Everything else matches literally.
"""

import re
from dataclasses import dataclass, field

from waypoint.errors import MalformedPattern

# :name tokens and bare wildcards, in template order
_TOKEN = re.compile(r":(?P<param>[A-Za-z_]+)|(?P<wildcard>\*)")

PARAM_PATTERN = r"[^/]+"
WILDCARD_PATTERN = r".*"


@dataclass(frozen=True, slots=True)
class RoutePattern:
    """A compiled route template.

    Attributes:
        template: The template string as registered.
        regex: Anchored pattern; use :meth:`match` rather than calling it directly.
        param_names: Named parameters in declaration order.
    """

    template: str
    regex: re.Pattern[str] = field(compare=False)
    param_names: tuple[str, ...] = ()

    def match(self, path: str) -> dict[str, str] | None:
        """Match *path* in full and return the named parameter values.

        Returns ``None`` when the path does not match. A template without
        parameters yields an empty dict on success.
        """
        m = self.regex.fullmatch(path)
        if m is None:
            return None
        return m.groupdict()


def compile_pattern(template: str) -> RoutePattern:
    """Compile a route template into a :class:`RoutePattern`.

    Raises:
        MalformedPattern: If the template declares the same parameter twice.
    """
    parts: list[str] = []
    names: list[str] = []
    pos = 0

    for token in _TOKEN.finditer(template):
        parts.append(re.escape(template[pos : token.start()]))
        param = token.group("param")
        if param is not None:
            if param in names:
                raise MalformedPattern(template, f"duplicate parameter ':{param}'")
            names.append(param)
            parts.append(f"(?P<{param}>{PARAM_PATTERN})")
        else:
            parts.append(WILDCARD_PATTERN)
        pos = token.end()

    parts.append(re.escape(template[pos:]))
    regex = re.compile("^" + "".join(parts) + "$", re.DOTALL)

    return RoutePattern(template=template, regex=regex, param_names=tuple(names))
