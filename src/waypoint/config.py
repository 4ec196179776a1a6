"""Router configuration.

RouterConfig is a frozen dataclass and cannot change once the router is built.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RouterConfig:
    """Router configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = RouterConfig(host="0.0.0.0", port=3000, debug=True)
    """

    # Listener
    host: str = "127.0.0.1"
    port: int = 8000
    backlog: int = 128
    server_header: str = "waypoint"

    # Diagnostics
    debug: bool = False
    # applied by Router.run and the CLI; start() and serve() leave logging alone
    log_level: str = "info"

    # Dispatch: plain ``def`` handlers run on an anyio worker thread
    threaded_sync_handlers: bool = True

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB
    max_incomplete_event_size: int = 16 * 1024  # h11 request-head buffer
