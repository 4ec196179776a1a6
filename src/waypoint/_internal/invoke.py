"""Invoke helpers: call sync or async handlers uniformly.

Route handlers can be ``def`` or ``async def``. Any code that calls a
user-provided handler must handle both cases. This module provides a
single helper so the sync/async check lives in exactly one place.

Usage::

    from waypoint._internal.invoke import invoke

    await invoke(handler, request, response, threaded=True)
"""

import functools
import inspect
from typing import Any

import anyio.to_thread


async def invoke(handler: Any, *args: Any, threaded: bool = False) -> Any:
    """Call a handler and await the result if it's awaitable.

    Coroutine functions are awaited on the current event loop. Plain
    callables run on an anyio worker thread when *threaded* is true,
    otherwise inline::

        # sync: offloaded, the event loop keeps serving other connections
        def report(req, res):
            res.send(build_report())

        # async: awaited directly
        async def user(req, res):
            res.send_json(await load_user(req.keys["id"]))
    """
    if inspect.iscoroutinefunction(handler) or not threaded:
        result = handler(*args)
    else:
        result = await anyio.to_thread.run_sync(functools.partial(handler, *args))
    if inspect.isawaitable(result):
        result = await result
    return result
