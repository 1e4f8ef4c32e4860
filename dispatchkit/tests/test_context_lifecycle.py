"""
Where: dispatchkit/tests/test_context_lifecycle.py
What: Context lifecycle of wrapped middleware and route handlers over HTTP.
Why: Each stage must get its own context, ended exactly once on every path.
"""

import asyncio
import logging

import httpx


def test_sync_next_ends_middleware_context(make_client):
    events = []
    captured = {}

    def sync_middleware(req, res, next_):
        captured["middleware"] = req.ctx
        captured["original"] = req.original_context
        events.append(("before-next", req.ctx.aborted))
        next_()
        events.append(("after-next", captured["middleware"].aborted))

    def handler(req, res):
        captured["handler"] = req.ctx
        events.append(("handler", req.ctx.aborted))
        res.json({"ok": True})

    client = make_client({"GET /test": {"before_auth": [sync_middleware], "handler": handler}})
    response = client.get("/test")

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert captured["middleware"] is not captured["handler"]
    assert captured["middleware"].aborted
    assert captured["handler"].aborted
    assert dict(events) == {"before-next": False, "after-next": True, "handler": False}


def test_async_next_ends_context_only_when_called(make_client):
    events = []
    captured = {}

    def timer_middleware(req, res, next_):
        captured["middleware"] = req.ctx

        def fire():
            events.append(("before-next", captured["middleware"].aborted))
            next_()
            events.append(("after-next", captured["middleware"].aborted))

        asyncio.get_running_loop().call_later(0.01, fire)

    def handler(req, res):
        events.append(("handler", req.ctx.aborted))
        res.json({"ok": True})

    client = make_client({"GET /test": {"before_auth": [timer_middleware], "handler": handler}})
    response = client.get("/test")

    assert response.status_code == 200
    assert captured["middleware"].aborted
    assert dict(events) == {"before-next": False, "after-next": True, "handler": False}


def test_awaiting_middleware_hands_off_after_await(make_client):
    order = []

    async def slow_middleware(req, res, next_):
        await asyncio.sleep(0.01)
        order.append("slow")
        next_()

    def handler(req, res):
        order.append("handler")
        res.json({"ok": True})

    client = make_client({"GET /test": {"before_auth": [slow_middleware], "handler": handler}})

    assert client.get("/test").status_code == 200
    assert order == ["slow", "handler"]


def test_middleware_error_ends_context_and_reaches_error_chain(make_client):
    captured = {}
    handler_called = []

    def failing_middleware(req, res, next_):
        captured["middleware"] = req.ctx
        raise RuntimeError("Middleware error")

    def handler(req, res):
        handler_called.append(True)
        res.json({"ok": True})

    client = make_client({"GET /test": {"before_auth": [failing_middleware], "handler": handler}})
    response = client.get("/test")

    assert response.status_code == 500
    assert response.text == "Internal server error"
    assert handler_called == []
    assert captured["middleware"].aborted
    assert captured["middleware"].failed


def test_middleware_next_with_error(make_client):
    class Forbidden(Exception):
        status_code = 403

    def rejecting_middleware(req, res, next_):
        next_(Forbidden("nope"))

    def handler(req, res):
        res.json({"ok": True})

    client = make_client({"GET /test": {"before_auth": [rejecting_middleware], "handler": handler}})
    response = client.get("/test")

    assert response.status_code == 403
    assert response.text == "Bad request"


def test_middleware_responding_without_next(make_client):
    captured = {}
    handler_called = []

    def response_middleware(req, res, next_):
        captured["middleware"] = req.ctx
        res.json({"early": True})

    def handler(req, res):
        handler_called.append(True)
        res.json({"ok": True})

    client = make_client({"GET /test": {"before_auth": [response_middleware], "handler": handler}})
    response = client.get("/test")

    assert response.json() == {"early": True}
    assert handler_called == []
    assert captured["middleware"].aborted


def test_error_after_next_is_discarded(make_client, caplog):
    captured = {}

    async def problematic_middleware(req, res, next_):
        captured["middleware"] = req.ctx
        next_()
        raise RuntimeError("Error after next")

    def handler(req, res):
        captured["handler"] = req.ctx
        res.json({"ok": True})

    client = make_client(
        {"GET /test": {"before_auth": [problematic_middleware], "handler": handler}}
    )
    with caplog.at_level(logging.DEBUG):
        response = client.get("/test")

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert captured["handler"] is not captured["middleware"]
    assert captured["middleware"].aborted
    assert not captured["middleware"].failed
    assert captured["handler"].aborted
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
    discarded = [r for r in caplog.records if "after next()" in r.getMessage()]
    assert len(discarded) == 1
    assert discarded[0].levelno == logging.DEBUG


def test_second_next_call_is_ignored(make_client):
    calls = []

    def double_next(req, res, next_):
        next_()
        next_(RuntimeError("ignored"))

    def handler(req, res):
        calls.append("handler")
        res.json({"ok": True})

    client = make_client({"GET /test": {"before_auth": [double_next], "handler": handler}})
    response = client.get("/test")

    assert response.status_code == 200
    assert calls == ["handler"]


def test_handler_context_is_child_of_original(make_client):
    captured = {}

    def handler(req, res):
        captured["handler"] = req.ctx
        captured["original"] = req.original_context
        res.json({"ok": True})

    client = make_client({"GET /test": handler})
    client.get("/test")

    assert captured["handler"] is not captured["original"]
    assert captured["handler"].parent is captured["original"]
    assert captured["handler"].aborted
    assert captured["original"].aborted


def test_handler_error_fails_context(make_client):
    captured = {}

    def handler(req, res):
        captured["handler"] = req.ctx
        raise RuntimeError("Handler error")

    client = make_client({"GET /test": handler})
    response = client.get("/test")

    assert response.status_code == 500
    assert captured["handler"].aborted
    assert captured["handler"].failed


def test_context_chain_original_middleware_handler(make_client):
    captured = {}

    def middleware(req, res, next_):
        captured["middleware"] = req.ctx
        captured["middleware_original"] = req.original_context
        next_()

    def handler(req, res):
        captured["handler"] = req.ctx
        captured["handler_original"] = req.original_context
        res.json({"ok": True})

    client = make_client({"GET /test": {"before_auth": [middleware], "handler": handler}})
    client.get("/test")

    original = captured["middleware_original"]
    assert original is captured["handler_original"]
    assert captured["middleware"] is not captured["handler"]
    assert captured["middleware"] is not original
    assert captured["middleware"].parent is original
    assert captured["handler"].parent is original
    assert captured["middleware"].aborted
    assert captured["handler"].aborted
    assert original.aborted
    assert original.open_descendants() == []


def test_context_names_follow_stage_names(make_client):
    captured = {}

    def check_access(req, res, next_):
        captured["middleware"] = req.ctx.name
        next_()

    def get_item(req, res):
        captured["handler"] = req.ctx.name
        res.json({"ok": True})

    client = make_client({"GET /items": {"before_auth": [check_access], "handler": get_item}})
    client.get("/items")

    assert captured == {"middleware": "check_access middleware", "handler": "get_item handler"}


def test_concurrent_requests_are_isolated(make_client):
    seen = {}

    async def tag_request(req, res, next_):
        req.route_info.metadata["caller"] = req.query["caller"]
        await asyncio.sleep(0.01)
        next_()

    async def handler(req, res):
        await asyncio.sleep(0.01)
        seen[req.query["caller"]] = (req.route_info.metadata["caller"], req.ctx.root is req.original_context)
        res.json({"caller": req.route_info.metadata["caller"]})

    client = make_client({"GET /who": {"before_auth": [tag_request], "handler": handler}})

    async def fire_both():
        transport = httpx.ASGITransport(app=client.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            return await asyncio.gather(
                http.get("/who", params={"caller": "a"}), http.get("/who", params={"caller": "b"})
            )

    first, second = asyncio.run(fire_both())

    assert first.json() == {"caller": "a"}
    assert second.json() == {"caller": "b"}
    assert seen == {"a": ("a", True), "b": ("b", True)}
