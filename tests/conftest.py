from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mappable_bff.config import Settings
from mappable_bff.main import create_app, get_http_client

SCRIPT_BODY = b"window.mappable = {ready: Promise.resolve()};"
TILE_BODY = b"\x89PNG\r\n\x1a\nfake-tile"

SUGGEST_PAYLOAD = {
    "results": [
        {
            "title": {"text": "Dubai"},
            "subtitle": {"text": "United Arab Emirates"},
            "uri": "ymapsbm1://geo?data=Cgg1NjE2MTc3NhI",
        }
    ]
}

GEOCODE_PAYLOAD = {
    "response": {
        "GeoObjectCollection": {
            "featureMember": [
                {"GeoObject": {"name": "Dubai", "Point": {"pos": "25.229762 55.289311"}}}
            ]
        }
    }
}


@dataclass
class FakeMappable:
    """Stands in for the four Mappable hosts and records every request."""

    requests: list[httpx.Request] = field(default_factory=list)
    overrides: dict[str, Callable[[httpx.Request], httpx.Response]] = field(default_factory=dict)

    def calls_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    def fail(self, host: str, exc: Exception | None = None, status_code: int = 500) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if exc is not None:
                raise exc
            return httpx.Response(status_code, text=f"upstream says no to {request.url}")

        self.overrides[host] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.overrides:
            return self.overrides[host](request)
        if host == "js.api.mappable.world":
            return httpx.Response(200, content=SCRIPT_BODY, headers={"content-type": "text/javascript"})
        if host == "tiles.mappable.world":
            return httpx.Response(200, content=TILE_BODY, headers={"content-type": "image/png"})
        if host == "suggest.api.mappable.world":
            return httpx.Response(200, content=json.dumps(SUGGEST_PAYLOAD).encode(),
                                  headers={"content-type": "application/json"})
        if host == "geocoder.api.mappable.world":
            return httpx.Response(200, content=json.dumps(GEOCODE_PAYLOAD).encode(),
                                  headers={"content-type": "application/json"})
        return httpx.Response(404)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"SESSION_SECRET_KEY": "test-secret", "ENVIRONMENT": "development"}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def fake_mappable() -> FakeMappable:
    return FakeMappable()


@pytest.fixture
def app(fake_mappable: FakeMappable) -> FastAPI:
    application = create_app(make_settings())
    upstream_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_mappable.handle))
    application.dependency_overrides[get_http_client] = lambda: upstream_client
    return application


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    yield TestClient(app)


@pytest.fixture
def keyed_client(client: TestClient) -> TestClient:
    response = client.post("/api/setApiKey", json={"apiKey": "ABC123"})
    assert response.status_code == 200
    return client
