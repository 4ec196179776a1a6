"""Tests for waypoint.server.dispatcher: ordered, fall-through dispatch."""

import threading
from typing import Any

import pytest

from waypoint.app import Router
from waypoint.config import RouterConfig
from waypoint.errors import HTTPError, NotFound, ResponseAlreadySent
from waypoint.http.headers import Headers
from waypoint.http.query import QueryParams
from waypoint.http.request import Request
from waypoint.http.response import Response
from waypoint.http.url import parse_url
from waypoint.routing.table import RouteTable
from waypoint.server.dispatcher import run_routes
from waypoint.testing import TestClient


def _request(method: str, uri: str) -> Request:
    url = parse_url(uri)
    return Request(method=method, url=url, headers=Headers(), query=QueryParams(url.query))


class TestPrecedence:
    @pytest.mark.asyncio
    async def test_first_registered_route_wins(self) -> None:
        calls: list[str] = []
        router = Router()

        def h1(req, res):
            calls.append("h1")
            res.send("one")

        def h2(req, res):
            calls.append("h2")
            res.send("two")

        router.route("*", "/a", h1)
        router.route("GET", "/a", h2)

        async with TestClient(router) as client:
            response = await client.get("/a")

        assert response.text == "one"
        assert calls == ["h1"]

    @pytest.mark.asyncio
    async def test_incomplete_handler_falls_through(self) -> None:
        calls: list[str] = []
        router = Router()

        def h1(req, res):
            calls.append("h1")
            res.set_header("X-Seen", "h1")

        def h2(req, res):
            calls.append("h2")
            res.send("two")

        router.route("*", "/a", h1)
        router.route("GET", "/a", h2)

        async with TestClient(router) as client:
            response = await client.get("/a")

        assert calls == ["h1", "h2"]
        assert response.text == "two"
        assert response.headers["x-seen"] == "h1"

    @pytest.mark.asyncio
    async def test_specific_route_not_ranked_above_earlier_wildcard(self) -> None:
        router = Router()
        router.route("GET", "/users/*", lambda req, res: res.send("wild"))
        router.route("GET", "/users/me", lambda req, res: res.send("me"))

        async with TestClient(router) as client:
            response = await client.get("/users/me")

        assert response.text == "wild"

    @pytest.mark.asyncio
    async def test_method_mismatch_skips_route(self) -> None:
        router = Router()
        router.route("POST", "/a", lambda req, res: res.send("post"))
        router.route("*", "/a", lambda req, res: res.send("any"))

        async with TestClient(router) as client:
            assert (await client.get("/a")).text == "any"
            assert (await client.post("/a")).text == "post"

    @pytest.mark.asyncio
    async def test_method_wildcard_accepts_every_verb(self) -> None:
        router = Router()
        router.route("*", "/ping", lambda req, res: res.send(req.method))

        async with TestClient(router) as client:
            for method in ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"):
                response = await client.request(method, "/ping")
                assert response.text == method


class TestParameters:
    @pytest.mark.asyncio
    async def test_keys_hold_named_parameters(self) -> None:
        router = Router()

        @router.get("/users/:id/posts/:postId")
        def show(req, res):
            res.send_json(req.keys)

        async with TestClient(router) as client:
            response = await client.get("/users/42/posts/7")

        assert response.json() == {"id": "42", "postId": "7"}

    @pytest.mark.asyncio
    async def test_keys_replaced_for_each_route(self) -> None:
        seen: list[dict[str, str]] = []
        router = Router()

        @router.any("/:first/*")
        def middleware(req, res):
            seen.append(dict(req.keys))

        @router.get("/users/:id")
        def show(req, res):
            seen.append(dict(req.keys))
            res.send("ok")

        async with TestClient(router) as client:
            await client.get("/users/5")

        assert seen == [{"first": "users"}, {"id": "5"}]

    @pytest.mark.asyncio
    async def test_parameters_are_decoded(self) -> None:
        router = Router()
        router.route("GET", "/files/:name", lambda req, res: res.send(req.keys["name"]))

        async with TestClient(router) as client:
            response = await client.get("/files/a%20b")

        assert response.text == "a b"

    @pytest.mark.asyncio
    async def test_trailing_slash_ignored(self) -> None:
        router = Router()
        router.route("GET", "/foo", lambda req, res: res.send("foo"))

        async with TestClient(router) as client:
            assert (await client.get("/foo/")).text == "foo"

    @pytest.mark.asyncio
    async def test_wildcard(self) -> None:
        router = Router()
        router.route("GET", "/files/*", lambda req, res: res.send_json(req.keys))

        async with TestClient(router) as client:
            response = await client.get("/files/a/b/c.txt")

        assert response.status == 200
        assert response.json() == {}


class TestFallback:
    @pytest.mark.asyncio
    async def test_no_route_is_404(self) -> None:
        router = Router()

        async with TestClient(router) as client:
            response = await client.get("/nonexistent")

        assert response.status == 404
        assert response.text == "Not found"

    @pytest.mark.asyncio
    async def test_all_routes_decline_is_404(self) -> None:
        router = Router()
        router.route("*", "*", lambda req, res: None)

        async with TestClient(router) as client:
            response = await client.get("/anything")

        assert response.status == 404
        assert response.text == "Not found"

    @pytest.mark.asyncio
    async def test_unparseable_host_is_400(self) -> None:
        calls: list[str] = []
        router = Router()
        router.route("*", "*", lambda req, res: calls.append("ran"))

        async with TestClient(router) as client:
            response = await client.get("/a", headers={"Host": "example.com:abc"})

        assert response.status == 400
        assert response.text == "Bad Request"
        assert calls == []

    @pytest.mark.asyncio
    async def test_run_routes_without_asgi(self) -> None:
        table = RouteTable()
        table.register("GET", "/a", lambda req, res: res.send("a"))
        config = RouterConfig(threaded_sync_handlers=False)

        outgoing = await run_routes(_request("GET", "/a"), Response(), table=table, config=config)
        assert outgoing.body == b"a"

        outgoing = await run_routes(_request("GET", "/b"), Response(), table=table, config=config)
        assert outgoing.status == 404


class TestHandlerFailures:
    @pytest.mark.asyncio
    async def test_exception_is_500_not_404(self) -> None:
        router = Router()

        def boom(req, res):
            raise ValueError("boom")

        router.route("GET", "/a", boom)
        router.route("GET", "/a", lambda req, res: res.send("never"))

        async with TestClient(router) as client:
            response = await client.get("/a")

        assert response.status == 500
        assert response.text == "Internal Server Error"

    @pytest.mark.asyncio
    async def test_invalid_header_from_handler_is_500(self) -> None:
        router = Router()

        def injects(req, res):
            res.set_header("X-Next", "a\r\nSet-Cookie: stolen=1")
            res.send("unreachable")

        router.route("GET", "/a", injects)

        async with TestClient(router) as client:
            response = await client.get("/a")

        assert response.status == 500
        assert "set-cookie" not in response.headers

    @pytest.mark.asyncio
    async def test_exception_after_send_keeps_sent_response(self) -> None:
        router = Router()

        async def sent_then_failed(req, res):
            res.send("done")
            raise RuntimeError("late")

        router.route("GET", "/a", sent_then_failed)

        async with TestClient(router) as client:
            response = await client.get("/a")

        assert response.status == 200
        assert response.text == "done"

    @pytest.mark.asyncio
    async def test_double_send_keeps_first_response(self) -> None:
        errors: list[Exception] = []
        router = Router()

        def twice(req, res):
            res.send("first")
            try:
                res.send("second")
            except ResponseAlreadySent as exc:
                errors.append(exc)
                raise

        router.route("GET", "/a", twice)

        async with TestClient(router) as client:
            response = await client.get("/a")

        assert len(errors) == 1
        assert response.status == 200
        assert response.text == "first"

    @pytest.mark.asyncio
    async def test_http_error_sets_status(self) -> None:
        router = Router()

        def forbidden(req, res):
            raise HTTPError(status=403, detail="Forbidden here", headers=(("X-Reason", "acl"),))

        router.route("GET", "/a", forbidden)

        async with TestClient(router) as client:
            response = await client.get("/a")

        assert response.status == 403
        assert response.text == "Forbidden here"
        assert response.headers["x-reason"] == "acl"

    @pytest.mark.asyncio
    async def test_not_found_raised_by_handler(self) -> None:
        router = Router()

        async def missing(req, res):
            raise NotFound()

        router.route("GET", "/users/:id", missing)

        async with TestClient(router) as client:
            response = await client.get("/users/9")

        assert response.status == 404
        assert response.text == "Not found"

    @pytest.mark.asyncio
    async def test_debug_includes_traceback(self) -> None:
        router = Router(RouterConfig(debug=True))

        def boom(req, res):
            raise ValueError("kaboom")

        router.route("GET", "/a", boom)

        async with TestClient(router) as client:
            response = await client.get("/a")

        assert response.status == 500
        assert "ValueError: kaboom" in response.text

    @pytest.mark.asyncio
    async def test_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        router = Router()

        def boom(req, res):
            raise ValueError("logged")

        router.route("GET", "/a", boom)

        with caplog.at_level("ERROR", logger="waypoint.server"):
            async with TestClient(router) as client:
                await client.get("/a")

        assert any("500 GET /a" in record.getMessage() for record in caplog.records)


class TestHandlerKinds:
    @pytest.mark.asyncio
    async def test_async_handler(self) -> None:
        router = Router()

        @router.post("/echo")
        async def echo(req, res):
            res.send(await req.body())

        async with TestClient(router) as client:
            response = await client.post("/echo", body=b"payload")

        assert response.body == b"payload"

    @pytest.mark.asyncio
    async def test_sync_handler_runs_off_the_event_loop(self) -> None:
        threads: list[Any] = []
        router = Router()

        @router.get("/t")
        def where(req, res):
            threads.append(threading.current_thread())
            res.send("ok")

        async with TestClient(router) as client:
            await client.get("/t")

        assert threads[0] is not threading.main_thread()

    @pytest.mark.asyncio
    async def test_sync_handler_inline_when_not_threaded(self) -> None:
        threads: list[Any] = []
        router = Router(RouterConfig(threaded_sync_handlers=False))

        @router.get("/t")
        def where(req, res):
            threads.append(threading.current_thread())
            res.send("ok")

        async with TestClient(router) as client:
            await client.get("/t")

        assert threads[0] is threading.current_thread()

    @pytest.mark.asyncio
    async def test_body_shared_across_routes(self) -> None:
        router = Router()
        seen: list[bytes] = []

        @router.any("/upload")
        async def peek(req, res):
            seen.append(await req.body())

        @router.post("/upload")
        async def store(req, res):
            res.send(await req.body())

        async with TestClient(router) as client:
            response = await client.post("/upload", body=b"data")

        assert seen == [b"data"]
        assert response.body == b"data"

    @pytest.mark.asyncio
    async def test_json_round_trip(self) -> None:
        router = Router()

        @router.put("/items/:id")
        async def update(req, res):
            payload = await req.json()
            res.send_json({"id": req.keys["id"], **payload}, status=202)

        async with TestClient(router) as client:
            response = await client.put("/items/3", json={"name": "lamp"})

        assert response.status == 202
        assert response.content_type == "application/json"
        assert response.json() == {"id": "3", "name": "lamp"}
