"""TCP listener: accepts connections and feeds them to an ASGI app.

Connections are accepted one at a time and each is served in its own
task of an anyio task group, so a slow or failing connection never holds
up the accept loop. Failures inside a connection are logged and end only
that connection.

HTTP/1.1 framing is done by h11. Each request head becomes an ASGI HTTP
scope; the request body is exposed through ``receive()`` and the ASGI
``send()`` messages become h11 events. Requests on one connection are
served in sequence until either side asks to close.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from concurrent.futures import Future
from contextlib import AbstractContextManager
from http import HTTPStatus
from typing import Any
from urllib.parse import unquote, urlsplit

import anyio
import h11
from anyio.abc import SocketAttribute, SocketStream, TaskStatus
from anyio.from_thread import BlockingPortal, start_blocking_portal

from waypoint._internal.asgi import ASGIApp
from waypoint.config import RouterConfig
from waypoint.errors import HTTPError

logger = logging.getLogger("waypoint.server")

RECEIVE_CHUNK_SIZE = 64 * 1024
LINGER_TIMEOUT = 1.0  # seconds


def split_target(target: bytes) -> tuple[bytes, bytes]:
    """Split an HTTP request-target into (raw path, query string).

    Handles origin-form (``/a?b``), absolute-form (``http://h/a?b``)
    and the asterisk form used by ``OPTIONS *``.
    """
    if target.startswith(b"/") or target == b"*":
        raw_path, _, query = target.partition(b"?")
        return raw_path, query
    parts = urlsplit(target.decode("latin-1"))
    raw_path = (parts.path or "/").encode("latin-1")
    return raw_path, parts.query.encode("latin-1")


def _address(value: Any) -> tuple[str, int] | None:
    if isinstance(value, tuple) and len(value) >= 2:
        return str(value[0]), int(value[1])
    return None


def _plain_response(status: int, body: bytes) -> list[Any]:
    """h11 events for a minimal close-after response."""
    return [
        h11.Response(
            status_code=status,
            headers=[
                (b"content-type", b"text/plain; charset=utf-8"),
                (b"content-length", str(len(body)).encode("ascii")),
                (b"connection", b"close"),
            ],
            reason=HTTPStatus(status).phrase.encode("ascii"),
        ),
        h11.Data(data=body),
        h11.EndOfMessage(),
    ]


class _Exchange:
    """ASGI receive/send pair for one request on an h11 connection."""

    __slots__ = (
        "_body_done",
        "_connection",
        "_expects_continue",
        "_head_only",
        "_received",
        "response_complete",
        "response_started",
    )

    def __init__(self, connection: _Connection, method: bytes) -> None:
        self._connection = connection
        self._expects_continue = connection.h11.they_are_waiting_for_100_continue
        self._head_only = method == b"HEAD"
        self._body_done = False
        self._received = 0
        self.response_started = False
        self.response_complete = False

    async def receive(self) -> dict[str, Any]:
        conn = self._connection
        if self._body_done or self.response_complete:
            return {"type": "http.disconnect"}

        if self._expects_continue and not self.response_started:
            await conn.send_event(h11.InformationalResponse(status_code=100, headers=[]))
            self._expects_continue = False

        event = await conn.next_event()
        if isinstance(event, h11.Data):
            self._received += len(event.data)
            if self._received > conn.config.max_content_length:
                raise HTTPError(status=413, detail="Request body too large")
            return {"type": "http.request", "body": bytes(event.data), "more_body": True}
        if isinstance(event, h11.EndOfMessage):
            self._body_done = True
            return {"type": "http.request", "body": b"", "more_body": False}

        self._body_done = True
        return {"type": "http.disconnect"}

    async def discard_body(self) -> bool:
        """Read and drop whatever request body the app left unread.

        Returns False when the connection cannot take another request: the
        body is over the size limit, the client is still waiting for
        ``100 Continue``, or it stopped sending.
        """
        conn = self._connection
        # without a 100 the client may never send the body
        if self._expects_continue:
            return False
        while not self._body_done:
            if self._received > conn.config.max_content_length:
                return False
            try:
                event = await conn.next_event()
            except h11.RemoteProtocolError:
                return False
            if isinstance(event, h11.Data):
                self._received += len(event.data)
                continue
            self._body_done = True
            if not isinstance(event, h11.EndOfMessage):
                return False
        return True

    async def send(self, message: Any) -> None:
        conn = self._connection
        if message["type"] == "http.response.start":
            if self.response_started:
                msg = "ASGI response already started"
                raise RuntimeError(msg)
            status = message["status"]
            headers = list(message.get("headers", []))
            if conn.config.server_header and not any(n.lower() == b"server" for n, _ in headers):
                headers.append((b"server", conn.config.server_header.encode("latin-1")))
            try:
                reason = HTTPStatus(status).phrase.encode("ascii")
            except ValueError:
                reason = b""
            # h11 validates status and headers here, before anything is written
            response = h11.Response(status_code=status, headers=headers, reason=reason)
            await conn.send_event(response)
            self.response_started = True
        elif message["type"] == "http.response.body":
            if not self.response_started:
                msg = "ASGI body sent before response start"
                raise RuntimeError(msg)
            body = message.get("body", b"")
            if body and not self._head_only:
                await conn.send_event(h11.Data(data=body))
            if not message.get("more_body", False):
                await conn.send_event(h11.EndOfMessage())
                self.response_complete = True


class _Connection:
    """One accepted socket, served request by request."""

    __slots__ = ("app", "client", "config", "h11", "server", "stream")

    def __init__(self, stream: SocketStream, app: ASGIApp, config: RouterConfig) -> None:
        self.stream = stream
        self.app = app
        self.config = config
        self.h11 = h11.Connection(
            h11.SERVER,
            max_incomplete_event_size=config.max_incomplete_event_size,
        )
        self.server = _address(stream.extra(SocketAttribute.local_address, None))
        self.client = _address(stream.extra(SocketAttribute.remote_address, None))

    async def next_event(self) -> Any:
        while True:
            event = self.h11.next_event()
            if event is not h11.NEED_DATA:
                return event
            try:
                data = await self.stream.receive(RECEIVE_CHUNK_SIZE)
            except (anyio.EndOfStream, anyio.BrokenResourceError, anyio.ClosedResourceError):
                data = b""
            self.h11.receive_data(data)

    async def send_event(self, event: Any) -> None:
        data = self.h11.send(event)
        if data:
            await self.stream.send(data)

    async def send_events(self, events: Iterable[Any]) -> None:
        for event in events:
            await self.send_event(event)

    async def run(self) -> None:
        while True:
            try:
                event = await self.next_event()
            except h11.RemoteProtocolError as exc:
                logger.debug("bad request from %s: %s", self.client, exc)
                if self.h11.our_state in {h11.IDLE, h11.SEND_RESPONSE}:
                    await self.send_events(
                        _plain_response(exc.error_status_hint, b"Bad Request")
                    )
                break

            if not isinstance(event, h11.Request):
                break

            await self._serve_request(event)

            if self.h11.our_state is not h11.DONE or self.h11.their_state is not h11.DONE:
                break
            self.h11.start_next_cycle()

        if self.h11.their_state is not h11.CLOSED:
            await self._linger()

    async def _linger(self) -> None:
        """Half-close, then drain input until the peer closes too.

        Closing with unread request bytes makes the kernel send a reset,
        which can destroy a response the client has not read yet.
        """
        try:
            await self.stream.send_eof()
            with anyio.move_on_after(LINGER_TIMEOUT):
                while True:
                    await self.stream.receive(RECEIVE_CHUNK_SIZE)
        except (anyio.EndOfStream, anyio.BrokenResourceError, anyio.ClosedResourceError):
            return

    async def _serve_request(self, event: h11.Request) -> None:
        content_length = next(
            (v for n, v in event.headers if n == b"content-length"), None
        )
        if content_length is not None and int(content_length) > self.config.max_content_length:
            await self.send_events(_plain_response(413, b"Request body too large"))
            return

        raw_path, query_string = split_target(event.target)
        scope: dict[str, Any] = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": "2.3"},
            "http_version": event.http_version.decode("ascii"),
            "method": event.method.decode("ascii"),
            "scheme": "http",
            "path": unquote(raw_path.decode("latin-1")),
            "raw_path": raw_path,
            "query_string": query_string,
            "root_path": "",
            "headers": [(bytes(n), bytes(v)) for n, v in event.headers],
            "server": self.server,
            "client": self.client,
        }

        exchange = _Exchange(self, event.method)
        try:
            await self.app(scope, exchange.receive, exchange.send)
        except Exception:
            logger.exception("ASGI application failed for %s %s", scope["method"], scope["path"])
            if not exchange.response_started and self.h11.our_state is h11.SEND_RESPONSE:
                await self.send_events(_plain_response(500, b"Internal Server Error"))
            return

        if not exchange.response_complete:
            logger.error("ASGI application returned without completing the response")
            if not exchange.response_started and self.h11.our_state is h11.SEND_RESPONSE:
                await self.send_events(_plain_response(500, b"Internal Server Error"))
            return

        # a body the handler never read still has to be consumed before the
        # next request on this connection can be parsed
        if self.h11.their_state is h11.SEND_BODY and not await exchange.discard_body():
            logger.debug("closing connection from %s with unread request body", self.client)


class _Lifespan:
    """Drives the ASGI lifespan protocol against an app.

    Apps that do not implement lifespan (they raise or return on the
    scope) are tolerated: the remaining steps become no-ops. The app task
    is shielded so shutdown still reaches it when the server is cancelled;
    :meth:`close` ends it.
    """

    __slots__ = (
        "_app_inbox",
        "_app_outbox",
        "_from_app",
        "_scope",
        "_to_app",
        "app",
        "supported",
    )

    def __init__(self, app: ASGIApp) -> None:
        self.app = app
        self.supported = True
        self._scope = anyio.CancelScope(shield=True)
        self._to_app, self._app_inbox = anyio.create_memory_object_stream[dict[str, Any]](
            math.inf
        )
        self._app_outbox, self._from_app = anyio.create_memory_object_stream[dict[str, Any]](
            math.inf
        )

    async def run_app(self) -> None:
        scope = {"type": "lifespan", "asgi": {"version": "3.0", "spec_version": "2.0"}}
        with self._scope:
            async with self._app_outbox:
                try:
                    await self.app(scope, self._app_inbox.receive, self._app_outbox.send)
                except Exception:
                    logger.debug("application does not handle lifespan", exc_info=True)

    async def step(self, phase: str) -> str | None:
        """Send ``lifespan.<phase>`` and return the failure message, if any."""
        if not self.supported:
            return None
        await self._to_app.send({"type": f"lifespan.{phase}"})
        try:
            message = await self._from_app.receive()
        except anyio.EndOfStream:
            self.supported = False
            return None
        if message["type"] == f"lifespan.{phase}.failed":
            return message.get("message") or f"lifespan {phase} failed"
        return None

    def close(self) -> None:
        self._scope.cancel()


class Listener:
    """Serves an ASGI app on a TCP port.

    Either await :meth:`serve` inside your own event loop, or call
    :meth:`start` to run it on a background thread and :meth:`stop` to
    shut it down::

        listener = Listener(router, RouterConfig(port=8080))
        port = listener.start()
        ...
        listener.stop()

    The app's lifespan startup runs before the socket is bound and its
    shutdown after the accept loop ends, however it ends.
    """

    __slots__ = ("_cancel_scope", "_future", "_portal", "_portal_cm", "app", "config", "port")

    def __init__(self, app: ASGIApp, config: RouterConfig | None = None) -> None:
        self.app = app
        self.config = config or RouterConfig()
        self.port: int | None = None
        self._cancel_scope: anyio.CancelScope | None = None
        self._portal: BlockingPortal | None = None
        self._portal_cm: AbstractContextManager[BlockingPortal] | None = None
        self._future: Future[None] | None = None

    @property
    def is_listening(self) -> bool:
        return self._cancel_scope is not None

    async def serve(
        self,
        port: int | None = None,
        *,
        task_status: TaskStatus[int] = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        """Run lifespan startup, bind, and accept connections until stopped.

        Reports the bound port through *task_status* (useful with port 0).
        Returns normally after :meth:`stop`; outside cancellation propagates
        once shutdown has run.

        Raises:
            RuntimeError: If the app reports a lifespan startup failure.
            OSError: If the port cannot be bound.
        """
        bind_port = self.config.port if port is None else port
        # Raised after the task group exits so callers see the bare exception
        failure: Exception | None = None

        async with anyio.create_task_group() as tg:
            lifespan = _Lifespan(self.app)
            tg.start_soon(lifespan.run_app)
            try:
                startup_error = await lifespan.step("startup")
                if startup_error is not None:
                    failure = RuntimeError(f"Application startup failed: {startup_error}")
                else:
                    try:
                        with anyio.CancelScope() as scope:
                            self._cancel_scope = scope
                            await self._accept(bind_port, task_status)
                    except Exception as exc:
                        failure = exc
                    finally:
                        self._cancel_scope = None
                        with anyio.CancelScope(shield=True):
                            shutdown_error = await lifespan.step("shutdown")
                        if shutdown_error is not None:
                            logger.error("application shutdown failed: %s", shutdown_error)
            finally:
                lifespan.close()

        if failure is not None:
            raise failure
        logger.info("stopped listening on %s:%s", self.config.host, self.port)

    async def _accept(self, bind_port: int, task_status: TaskStatus[int]) -> None:
        listener = await anyio.create_tcp_listener(
            local_host=self.config.host,
            local_port=bind_port,
            backlog=self.config.backlog,
        )
        async with listener:
            self.port = listener.extra(SocketAttribute.local_port)
            logger.info("listening on http://%s:%d", self.config.host, self.port)
            task_status.started(self.port)
            await listener.serve(self._handle_connection)

    async def _handle_connection(self, stream: SocketStream) -> None:
        async with stream:
            connection = _Connection(stream, self.app, self.config)
            try:
                await connection.run()
            except (anyio.EndOfStream, anyio.BrokenResourceError, anyio.ClosedResourceError):
                logger.debug("connection from %s dropped", connection.client)
            except Exception:
                logger.exception("connection from %s failed", connection.client)

    # -- Background-thread lifecycle --

    def start(self, port: int | None = None) -> int:
        """Start serving on a background event-loop thread.

        Returns once the socket is bound, with the bound port.

        Raises:
            RuntimeError: If this listener is already running, or startup failed.
            OSError: If the port cannot be bound.
        """
        if self._portal is not None:
            msg = "Listener is already running."
            raise RuntimeError(msg)

        portal_cm = start_blocking_portal()
        portal = portal_cm.__enter__()
        try:
            future, bound = portal.start_task(self.serve, port)
        except BaseException:
            portal_cm.__exit__(None, None, None)
            raise

        self._portal_cm = portal_cm
        self._portal = portal
        self._future = future
        return bound

    def stop(self) -> None:
        """Stop a listener started with :meth:`start`. No-op if not running."""
        portal, portal_cm, future = self._portal, self._portal_cm, self._future
        if portal is None or portal_cm is None or future is None:
            return
        self._portal = self._portal_cm = self._future = None
        try:
            scope = self._cancel_scope
            if scope is not None:
                portal.call(scope.cancel)
            future.result()
        finally:
            portal_cm.__exit__(None, None, None)
