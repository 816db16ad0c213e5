from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import GEOCODE_PAYLOAD, SCRIPT_BODY, SUGGEST_PAYLOAD, TILE_BODY, FakeMappable

DATA_ENDPOINTS = [
    ("GET", "/api/map-script", None),
    ("GET", "/api/map-proxy/tiles/v1/10/5/3.png", None),
    ("POST", "/api/suggest", {"query": "Dubai"}),
    ("POST", "/api/geocode", {"uri": "ymapsbm1://geo?data=abc"}),
]


def test_check_key_false_for_fresh_session(client: TestClient) -> None:
    response = client.get("/api/checkApiKey")
    assert response.status_code == 200
    assert response.json() == {"apiKeyExists": False}


def test_set_key_then_check_key_round_trip(client: TestClient) -> None:
    response = client.post("/api/setApiKey", json={"apiKey": "ABC123"})
    assert response.status_code == 200
    assert response.text == "API key set successfully."
    assert response.headers["content-type"].startswith("text/plain")

    check = client.get("/api/checkApiKey")
    assert check.json() == {"apiKeyExists": True}
    assert "ABC123" not in check.text


@pytest.mark.parametrize("body", [{"apiKey": ""}, {"apiKey": "   "}, {}, None])
def test_set_key_rejects_missing_input(client: TestClient, body: dict | None) -> None:
    response = client.post("/api/setApiKey", json=body) if body is not None else client.post("/api/setApiKey")
    assert response.status_code == 400
    assert response.json() == {"detail": "API key is required."}
    assert client.get("/api/checkApiKey").json() == {"apiKeyExists": False}


def test_sessions_are_isolated_per_cookie(app, keyed_client: TestClient) -> None:
    other = TestClient(app)
    assert other.get("/api/checkApiKey").json() == {"apiKeyExists": False}
    assert keyed_client.get("/api/checkApiKey").json() == {"apiKeyExists": True}


@pytest.mark.parametrize(("method", "path", "body"), DATA_ENDPOINTS)
def test_data_endpoints_require_key_and_skip_upstream(
    client: TestClient, fake_mappable: FakeMappable, method: str, path: str, body: dict | None
) -> None:
    response = client.request(method, path, json=body)
    assert response.status_code == 400
    assert response.json() == {"detail": "API key is not set."}
    assert fake_mappable.requests == []


def test_map_script_forwards_key_and_relays_javascript(
    keyed_client: TestClient, fake_mappable: FakeMappable
) -> None:
    assert keyed_client.get("/api/checkApiKey").json() == {"apiKeyExists": True}

    response = keyed_client.get("/api/map-script")

    assert response.status_code == 200
    assert response.content == SCRIPT_BODY
    assert response.headers["content-type"].startswith("application/javascript")
    (upstream,) = fake_mappable.calls_to("js.api.mappable.world")
    assert upstream.method == "GET"
    assert upstream.url.path == "/v3/"
    assert upstream.url.params["apikey"] == "ABC123"
    assert upstream.url.params["lang"] == "en_US"


def test_map_proxy_streams_tile_with_upstream_content_type(
    keyed_client: TestClient, fake_mappable: FakeMappable
) -> None:
    response = keyed_client.get("/api/map-proxy/tiles/v1/10/5/3.png?scale=2&lang=en_US")

    assert response.status_code == 200
    assert response.content == TILE_BODY
    assert response.headers["content-type"] == "image/png"
    (upstream,) = fake_mappable.calls_to("tiles.mappable.world")
    assert upstream.url.path == "/tiles/v1/10/5/3.png"
    assert upstream.url.params["scale"] == "2"
    assert upstream.url.params["apikey"] == "ABC123"


def test_map_proxy_ignores_client_supplied_apikey(
    keyed_client: TestClient, fake_mappable: FakeMappable
) -> None:
    keyed_client.get("/api/map-proxy/tiles/v1/1/1/1.png?apikey=ATTACKER&apiKey=OTHER")

    (upstream,) = fake_mappable.calls_to("tiles.mappable.world")
    assert upstream.url.params.get_list("apikey") == ["ABC123"]
    assert "apiKey" not in upstream.url.params


@pytest.mark.parametrize(
    "path",
    [
        "/api/map-proxy/tiles/%2e%2e/%2e%2e/secret",
        "/api/map-proxy/tiles/%252e%252e/secret",
        "/api/map-proxy/tiles%2f..%2fsecret",
        "/api/map-proxy//evil.example.com/x.png",
        "/api/map-proxy/https:/evil.example.com/x.png",
        "/api/map-proxy/tiles%5c..%5csecret",
    ],
)
def test_map_proxy_rejects_unsafe_paths(
    keyed_client: TestClient, fake_mappable: FakeMappable, path: str
) -> None:
    response = keyed_client.get(path)
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid resource path."}
    assert fake_mappable.requests == []


def test_suggest_forwards_fixed_params_and_relays_json(
    keyed_client: TestClient, fake_mappable: FakeMappable
) -> None:
    response = keyed_client.post("/api/suggest", json={"query": "Dubai"})

    assert response.status_code == 200
    assert response.json() == SUGGEST_PAYLOAD
    (upstream,) = fake_mappable.calls_to("suggest.api.mappable.world")
    assert upstream.url.path == "/v1/suggest"
    assert dict(upstream.url.params) == {
        "lang": "en_US",
        "apikey": "ABC123",
        "text": "Dubai",
        "print_address": "1",
        "attrs": "uri",
    }


def test_geocode_forwards_fixed_params_and_relays_json(
    keyed_client: TestClient, fake_mappable: FakeMappable
) -> None:
    uri = "ymapsbm1://geo?data=Cgg1NjE2MTc3NhI"
    response = keyed_client.post("/api/geocode", json={"uri": uri})

    assert response.status_code == 200
    assert response.json() == GEOCODE_PAYLOAD
    (upstream,) = fake_mappable.calls_to("geocoder.api.mappable.world")
    assert upstream.url.path == "/v1"
    assert dict(upstream.url.params) == {
        "lang": "en_US",
        "format": "json",
        "apikey": "ABC123",
        "uri": uri,
    }


@pytest.mark.parametrize(
    ("path", "body", "detail"),
    [
        ("/api/suggest", {"query": ""}, "Query is required."),
        ("/api/suggest", {}, "Query is required."),
        ("/api/geocode", {"uri": ""}, "URI is required."),
        ("/api/geocode", {"uri": "  "}, "URI is required."),
        ("/api/geocode", {}, "URI is required."),
    ],
)
def test_empty_inputs_fail_without_upstream_call(
    keyed_client: TestClient, fake_mappable: FakeMappable, path: str, body: dict, detail: str
) -> None:
    response = keyed_client.post(path, json=body)
    assert response.status_code == 400
    assert response.json() == {"detail": detail}
    assert fake_mappable.requests == []


@pytest.mark.parametrize(
    ("path", "body", "detail"),
    [
        ("/api/setApiKey", {"apiKey": ["SECRETKEY"]}, "API key is required."),
        ("/api/setApiKey", {"apiKey": {"value": "SECRETKEY"}}, "API key is required."),
        ("/api/suggest", {"query": 123}, "Query is required."),
        ("/api/suggest", {"query": ["SECRETKEY"]}, "Query is required."),
        ("/api/geocode", {"uri": ["SECRETKEY"]}, "URI is required."),
        ("/api/geocode", ["SECRETKEY"], "URI is required."),
    ],
)
def test_wrong_type_bodies_are_rejected_without_echo(
    keyed_client: TestClient, fake_mappable: FakeMappable, path: str, body: object, detail: str
) -> None:
    response = keyed_client.post(path, json=body)

    assert response.status_code == 400
    assert response.json() == {"detail": detail}
    assert "SECRETKEY" not in response.text
    assert "123" not in response.text
    assert fake_mappable.requests == []


@pytest.mark.parametrize(
    ("path", "detail"),
    [
        ("/api/setApiKey", "API key is required."),
        ("/api/suggest", "Query is required."),
        ("/api/geocode", "URI is required."),
    ],
)
def test_non_json_bodies_are_rejected_without_echo(
    keyed_client: TestClient, fake_mappable: FakeMappable, path: str, detail: str
) -> None:
    response = keyed_client.post(
        path, content=b'{not json "SECRETKEY"', headers={"content-type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"detail": detail}
    assert "SECRETKEY" not in response.text
    assert fake_mappable.requests == []


def test_malformed_set_key_keeps_existing_key(keyed_client: TestClient) -> None:
    keyed_client.post("/api/setApiKey", json={"apiKey": ["SECRETKEY"]})
    assert keyed_client.get("/api/checkApiKey").json() == {"apiKeyExists": True}


@pytest.mark.parametrize(
    ("method", "path", "body", "host", "detail"),
    [
        ("GET", "/api/map-script", None, "js.api.mappable.world", "Error fetching map script"),
        ("GET", "/api/map-proxy/tiles/1.png", None, "tiles.mappable.world", "Error fetching map resource"),
        ("POST", "/api/suggest", {"query": "Dubai"}, "suggest.api.mappable.world", "Error fetching suggestions"),
        ("POST", "/api/geocode", {"uri": "ymapsbm1://x"}, "geocoder.api.mappable.world", "Error fetching geocode data"),
    ],
)
def test_upstream_http_error_is_sanitized(
    keyed_client: TestClient, fake_mappable: FakeMappable,
    method: str, path: str, body: dict | None, host: str, detail: str,
) -> None:
    fake_mappable.fail(host, status_code=403)

    response = keyed_client.request(method, path, json=body)

    assert response.status_code == 500
    assert response.json() == {"detail": detail}
    assert "ABC123" not in response.text
    assert "upstream says no" not in response.text


def test_upstream_timeout_is_sanitized(
    keyed_client: TestClient, fake_mappable: FakeMappable, caplog: pytest.LogCaptureFixture
) -> None:
    fake_mappable.fail(
        "geocoder.api.mappable.world",
        exc=httpx.ReadTimeout("timed out reading https://geocoder.api.mappable.world/v1?apikey=ABC123"),
    )

    response = keyed_client.post("/api/geocode", json={"uri": "ymapsbm1://x"})

    assert response.status_code == 500
    assert response.json() == {"detail": "Error fetching geocode data"}
    assert "ABC123" not in response.text
    assert "timed out" not in response.text
    assert "ABC123" not in caplog.text


def test_upstream_invalid_json_is_sanitized(keyed_client: TestClient, fake_mappable: FakeMappable) -> None:
    fake_mappable.overrides["suggest.api.mappable.world"] = lambda request: httpx.Response(200, text="<html>")

    response = keyed_client.post("/api/suggest", json={"query": "Dubai"})

    assert response.status_code == 500
    assert response.json() == {"detail": "Error fetching suggestions"}


def test_clear_key_invalidates_session(keyed_client: TestClient, fake_mappable: FakeMappable) -> None:
    response = keyed_client.post("/api/clearApiKey")
    assert response.json() == {"apiKeyExists": False}

    assert keyed_client.get("/api/checkApiKey").json() == {"apiKeyExists": False}
    assert keyed_client.get("/api/map-script").status_code == 400
    assert fake_mappable.requests == []


def test_health(client: TestClient) -> None:
    assert client.get("/api/health").json() == {"status": "ok", "service": "mappable-bff"}


def test_spa_shell_served_for_unknown_routes(client: TestClient) -> None:
    response = client.get("/some/client/route")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "/api/map-script" in response.text


def test_unknown_api_route_is_not_the_spa(client: TestClient) -> None:
    response = client.get("/api/nope")
    assert response.status_code == 404


def test_static_assets_served(client: TestClient) -> None:
    response = client.get("/static/app.js")
    assert response.status_code == 200
    assert "/api/setApiKey" in response.text
