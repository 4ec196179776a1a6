"""``waypoint routes``: list registered routes in matching order."""

import argparse
import sys

from waypoint.cli._resolve import resolve_router


def run_routes(args: argparse.Namespace) -> None:
    """Print ``#``, METHOD, PATH and HANDLER for each route of ``args.router``."""
    try:
        router = resolve_router(args.router)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    routes = router.routes
    if not routes:
        print("No routes registered.")
        return

    rows: list[tuple[str, str, str, str]] = []
    for index, route in enumerate(routes):
        handler_name = getattr(route.handler, "__qualname__", None) or repr(route.handler)
        if route.name:
            handler_name = f"{handler_name} ({route.name})"
        rows.append((str(index), route.method, route.path, handler_name))

    max_index = max(len(r[0]) for r in rows)
    max_method = max(max(len(r[1]) for r in rows), 6)  # "METHOD" header
    max_path = max(max(len(r[2]) for r in rows), 4)  # "PATH" header

    fmt = f"{{:>{max_index}}}  {{:<{max_method}}}  {{:<{max_path}}}  {{}}"
    print(fmt.format("#", "METHOD", "PATH", "HANDLER"))
    sep_len = max_index + max_method + max_path + 6 + max(len(r[3]) for r in rows)
    print("-" * min(sep_len, 80))
    for row in rows:
        print(fmt.format(*row))
