"""``waypoint run``: serve a router in the foreground."""

import argparse
import sys

from waypoint.cli._resolve import resolve_router


def run_server(args: argparse.Namespace) -> None:
    """Resolve ``args.router`` and serve it until interrupted.

    ``--host``, ``--port`` and ``--log-level`` override the router's config.
    """
    try:
        router = resolve_router(args.router)
    except (ModuleNotFoundError, AttributeError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    router.run(host=args.host, port=args.port, log_level=args.log_level)
