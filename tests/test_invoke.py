"""Tests for waypoint._internal.invoke: uniform sync/async handler calls."""

import threading

import pytest

from waypoint._internal.invoke import invoke


class TestInvoke:
    @pytest.mark.asyncio
    async def test_async_function(self) -> None:
        async def handler(x: int) -> int:
            return x * 2

        assert await invoke(handler, 4) == 8

    @pytest.mark.asyncio
    async def test_sync_function_inline(self) -> None:
        caller = threading.current_thread()
        seen: list[threading.Thread] = []

        def handler() -> str:
            seen.append(threading.current_thread())
            return "ok"

        assert await invoke(handler) == "ok"
        assert seen == [caller]

    @pytest.mark.asyncio
    async def test_sync_function_threaded(self) -> None:
        caller = threading.current_thread()
        seen: list[threading.Thread] = []

        def handler(a: int, b: int) -> int:
            seen.append(threading.current_thread())
            return a + b

        assert await invoke(handler, 1, 2, threaded=True) == 3
        assert seen[0] is not caller

    @pytest.mark.asyncio
    async def test_sync_returning_awaitable(self) -> None:
        async def inner() -> str:
            return "awaited"

        def handler():
            return inner()

        assert await invoke(handler) == "awaited"

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self) -> None:
        def handler() -> None:
            raise LookupError("gone")

        with pytest.raises(LookupError):
            await invoke(handler, threaded=True)
