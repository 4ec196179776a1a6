"""Request dispatch: runs one request through the route table.

The only component that turns ASGI scope/messages into waypoint types
and back. Per request:

1. Scan the table for the first route accepting the method and path.
2. Put that route's parameters in ``request.keys`` and run its handler.
3. If the handler sent a response, stop. Otherwise resume the scan with
   the route after it.
4. If the scan runs out, answer 404 ``Not found``.

A request whose URI cannot be parsed never reaches the table; it gets a 400.

Handlers run one at a time and each is awaited to completion before the
response is inspected. A handler exception ends the scan: an unsent
response becomes a 500 (or the ``HTTPError`` status), an already sent one
stands. Nothing escapes to the listener.
"""

import logging

from waypoint._internal.asgi import Receive, Scope, Send
from waypoint._internal.invoke import invoke
from waypoint.config import RouterConfig
from waypoint.errors import HTTPError
from waypoint.http.request import Request
from waypoint.http.response import OutgoingResponse, Response
from waypoint.routing.route import RouteMatch
from waypoint.routing.table import RouteTable
from waypoint.server.errors import (
    bad_request_response,
    http_error_response,
    internal_error_response,
    log_error,
    not_found_response,
)
from waypoint.server.sender import send_response

logger = logging.getLogger("waypoint.server")


async def dispatch(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    table: RouteTable,
    config: RouterConfig,
) -> None:
    """Process a single HTTP request through the route table."""
    try:
        request = Request.from_asgi(scope, receive)
    except ValueError as exc:
        logger.debug("400 %s %s: %s", scope.get("method"), scope.get("path"), exc)
        await send_response(bad_request_response(), send)
        return
    response = Response()

    outgoing = await run_routes(request, response, table=table, config=config)
    await send_response(outgoing, send)


async def run_routes(
    request: Request,
    response: Response,
    *,
    table: RouteTable,
    config: RouterConfig,
) -> OutgoingResponse:
    """Walk the table for *request* and return what should be sent.

    Split out from :func:`dispatch` so the state machine can be driven
    without an ASGI channel.
    """
    for match in table.matches(request.method, request.path):
        try:
            await _invoke_route(match, request, response, config=config)
        except HTTPError as exc:
            logger.debug(
                "%d %s %s: %s", exc.status, request.method, request.path, exc.detail
            )
            return _after_failure(response, http_error_response(exc))
        except Exception as exc:
            log_error(exc, request)
            return _after_failure(response, internal_error_response(exc, debug=config.debug))

        if response.outgoing is not None:
            logger.debug(
                "%s %s matched #%d %s (%d)",
                request.method,
                request.path,
                match.index,
                match.route.path,
                response.outgoing.status,
            )
            return response.outgoing

        logger.debug(
            "%s %s fallthrough: #%d %s did not send",
            request.method,
            request.path,
            match.index,
            match.route.path,
        )

    logger.debug("404 %s %s", request.method, request.path)
    return not_found_response()


async def _invoke_route(
    match: RouteMatch,
    request: Request,
    response: Response,
    *,
    config: RouterConfig,
) -> None:
    """Expose the match's parameters and run its handler to completion."""
    request.keys = dict(match.params)
    await invoke(
        match.route.handler,
        request,
        response,
        threaded=config.threaded_sync_handlers,
    )


def _after_failure(response: Response, fallback: OutgoingResponse) -> OutgoingResponse:
    """Keep a response the handler already sent; otherwise use *fallback*."""
    if response.outgoing is not None:
        return response.outgoing
    return fallback
