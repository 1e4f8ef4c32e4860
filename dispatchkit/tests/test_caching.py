from dispatchkit.core.stages import NO_CACHE_HEADERS

NO_CACHE = "no-store, max-age=0, must-revalidate, proxy-revalidate"


def ok(req, res):
    res.json({"ok": True})


def test_no_cache_headers_by_default(make_client):
    client = make_client({"GET /test": ok})

    response = client.get("/test")

    assert response.headers["cache-control"] == NO_CACHE
    assert response.headers["surrogate-control"] == "no-store"


def test_caching_allowed_by_config(make_client, make_config):
    client = make_client({"GET /test": ok}, config=make_config(APP_ENABLE_CACHING=True))

    response = client.get("/test")

    assert "cache-control" not in response.headers
    assert "surrogate-control" not in response.headers


def test_route_level_enable_caching(make_client):
    client = make_client(
        {
            "GET /cached": {"enable_caching": True, "handler": ok},
            "GET /not-cached": {"enable_caching": False, "handler": ok},
        }
    )

    assert "cache-control" not in client.get("/cached").headers
    assert client.get("/not-cached").headers["cache-control"] == NO_CACHE


def test_route_overrides_config(make_client, make_config):
    client = make_client(
        {"GET /override": {"enable_caching": False, "handler": ok}},
        config=make_config(APP_ENABLE_CACHING=True),
    )

    assert client.get("/override").headers["cache-control"] == NO_CACHE


def test_enable_caching_in_route_info(make_client, make_config):
    def info(req, res):
        res.json({"enable_caching": req.route_info.enable_caching})

    client = make_client({"GET /info": info}, config=make_config(APP_ENABLE_CACHING=True))

    assert client.get("/info").json() == {"enable_caching": True}


def test_handler_can_replace_cache_headers(make_client):
    def cached_for_a_minute(req, res):
        res.set_header("cache-control", "public, max-age=60")
        res.remove_header("surrogate-control")
        res.json({"ok": True})

    client = make_client({"GET /minute": cached_for_a_minute})
    response = client.get("/minute")

    assert response.headers["cache-control"] == "public, max-age=60"
    assert "surrogate-control" not in response.headers
    assert set(NO_CACHE_HEADERS) == {"cache-control", "surrogate-control"}
