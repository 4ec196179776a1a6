"""Waypoint router application.

Mutable during setup (route registration). Frozen at runtime when the
router is started or first called as an ASGI app.
"""

import inspect
import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import anyio

from waypoint._internal.asgi import Receive, Scope, Send
from waypoint._internal.logging import configure_logging
from waypoint._internal.types import Handler
from waypoint.config import RouterConfig
from waypoint.routing.route import ANY_METHOD, Route
from waypoint.routing.table import RouteTable
from waypoint.server.dispatcher import dispatch
from waypoint.server.listener import Listener

logger = logging.getLogger("waypoint.server")


class Router:
    """An embeddable HTTP router.

    Routes are tried in the order they were registered. A handler that
    sends a response ends the request; one that returns without sending
    hands the request to the next matching route. When none sends, the
    client gets ``404 Not found``.

    Usage::

        router = Router()

        def auth(req, res):
            if "authorization" not in req.headers:
                res.status_code(401)
                res.send("Unauthorized")

        router.route("*", "/admin/*", auth)

        @router.get("/users/:id")
        async def show_user(req, res):
            res.send_json({"id": req.keys["id"]})

        router.start(8080)

    Thread safety:
        Registration is single-threaded setup work. The freeze transition
        uses a Lock + double-check so exactly one thread freezes the
        table even when several ASGI workers receive their first request
        at once. After that the table is read-only.
    """

    __slots__ = (
        "_freeze_lock",
        "_listener",
        "_shutdown_hooks",
        "_startup_hooks",
        "_table",
        "config",
    )

    def __init__(self, config: RouterConfig | None = None) -> None:
        self.config: RouterConfig = config or RouterConfig()
        self._table = RouteTable()
        self._freeze_lock = threading.Lock()
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._listener: Listener | None = None

    # -- Route registration --

    def route(
        self,
        method: str,
        path: str,
        handler: Handler | None = None,
        *,
        name: str | None = None,
    ) -> Any:
        """Register *handler* for *method* (or ``"*"``) and *path*.

        Called with a handler, registers it and returns the ``Route``.
        Called without one, returns a decorator::

            router.route("GET", "/", index)

            @router.route("POST", "/users")
            def create_user(req, res): ...

        Raises:
            MalformedPattern: If *path* repeats a parameter name.
            RuntimeError: If the router has already started serving.
        """
        if handler is not None:
            return self._register(method, path, handler, name)

        def decorator(func: Handler) -> Handler:
            self._register(method, path, func, name)
            return func

        return decorator

    def get(self, path: str, *, name: str | None = None) -> Callable[[Handler], Handler]:
        """Decorator form of ``route("GET", path)``."""
        return self.route("GET", path, name=name)

    def post(self, path: str, *, name: str | None = None) -> Callable[[Handler], Handler]:
        """Decorator form of ``route("POST", path)``."""
        return self.route("POST", path, name=name)

    def put(self, path: str, *, name: str | None = None) -> Callable[[Handler], Handler]:
        return self.route("PUT", path, name=name)

    def patch(self, path: str, *, name: str | None = None) -> Callable[[Handler], Handler]:
        return self.route("PATCH", path, name=name)

    def delete(self, path: str, *, name: str | None = None) -> Callable[[Handler], Handler]:
        return self.route("DELETE", path, name=name)

    def any(self, path: str, *, name: str | None = None) -> Callable[[Handler], Handler]:
        """Decorator for a route that accepts every HTTP method."""
        return self.route(ANY_METHOD, path, name=name)

    def _register(self, method: str, path: str, handler: Handler, name: str | None) -> Route:
        self._check_not_frozen()
        return self._table.register(method, path, handler, name=name)

    @property
    def routes(self) -> tuple[Route, ...]:
        """Registered routes in matching order."""
        return self._table.routes

    @property
    def table(self) -> RouteTable:
        return self._table

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync hook run on ASGI lifespan startup."""
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync hook run on ASGI lifespan shutdown."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Server --

    def start(self, port: int | None = None) -> int:
        """Bind *port* (default ``config.port``) and serve in the background.

        Returns the bound port once the listener is accepting, which is
        useful with port ``0``. Registration is closed from here on.

        Raises:
            RuntimeError: If the router is already listening.
        """
        if self._listener is not None and self._listener.is_listening:
            msg = "Router is already listening."
            raise RuntimeError(msg)
        self._ensure_frozen()
        self._listener = Listener(self, self.config)
        return self._listener.start(port)

    def stop(self) -> None:
        """Stop accepting connections. No-op when not listening."""
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()

    @property
    def is_listening(self) -> bool:
        return self._listener is not None and self._listener.is_listening

    async def serve(self, port: int | None = None) -> None:
        """Serve on the current event loop until cancelled."""
        self._ensure_frozen()
        await Listener(self, self.config).serve(port)

    def run(
        self,
        host: str | None = None,
        port: int | None = None,
        log_level: str | None = None,
    ) -> None:
        """Serve in the foreground until interrupted.

        Installs a stderr log handler at *log_level*, falling back to
        ``config.log_level``. Embedders that configure logging themselves
        should use :meth:`start` or :meth:`serve` instead.
        """
        self._ensure_frozen()
        config = self.config
        configure_logging(log_level or config.log_level)
        if host is not None:
            config = replace(config, host=host)
        listener = Listener(self, config)
        try:
            anyio.run(listener.serve, port)
        except KeyboardInterrupt:
            logger.info("interrupted, shutting down")

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point.

        Handles the lifespan protocol directly and sends HTTP scopes
        through the dispatcher. Other scope types are ignored.
        """
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return

        if scope["type"] != "http":
            return

        self._ensure_frozen()
        await dispatch(scope, receive, send, table=self._table, config=self.config)

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Run the ASGI lifespan protocol and the registered hooks."""
        self._ensure_frozen()

        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    for hook in self._startup_hooks:
                        result = hook()
                        if inspect.isawaitable(result):
                            await result
                except Exception as exc:
                    logger.exception("startup hook failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                try:
                    for hook in self._shutdown_hooks:
                        result = hook()
                        if inspect.isawaitable(result):
                            await result
                except Exception as exc:
                    logger.exception("shutdown hook failed")
                    await send({"type": "lifespan.shutdown.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._table.frozen:
            return
        with self._freeze_lock:
            if self._table.frozen:
                return
            self._table.freeze()
            logger.debug("route table frozen with %d routes", len(self._table))

    def _check_not_frozen(self) -> None:
        if self._table.frozen:
            msg = (
                "Cannot modify the router after it has started serving requests. "
                "Register routes before calling start() or run()."
            )
            raise RuntimeError(msg)
