"""Tests for the FastAPI proxy server."""

from __future__ import annotations

import io
import json
import urllib.error
import urllib.request

import pytest
from fastapi.testclient import TestClient

from apiexplorer.catalogue import load_catalogue
from apiexplorer.config import ExplorerConfig
from apiexplorer.llm import ChatProvider, ProviderChain, ProviderError
from apiexplorer.web.server import GENERATE_FAILED, PROXY_FAILED, create_app, extract_html

MESSAGES = [{"role": "user", "content": "What can I build with weather data?"}]


def _provider(name: str, reply: str | None, calls: list) -> ChatProvider:
    provider = ChatProvider(name=name, api_key="k", model=f"{name}-model", base_url="https://unused")

    def complete_sync(messages, **kwargs):
        calls.append({"provider": name, "messages": messages, **kwargs})
        if reply is None:
            raise ProviderError("upstream 503", provider=name, status=503)
        return reply

    provider._complete_sync = complete_sync
    return provider


def _client(primary: str | None, fallback: str | None, calls: list | None = None) -> TestClient:
    calls = calls if calls is not None else []
    chain = ProviderChain([_provider("groq", primary, calls), _provider("openrouter", fallback, calls)])
    config = ExplorerConfig(public_url="http://testserver", default_system_prompt="default prompt")
    return TestClient(create_app(config, chain=chain, catalogue=load_catalogue()))


class FakeResponse:
    def __init__(self, raw: bytes) -> None:
        self._raw = raw

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def read(self) -> bytes:
        return self._raw


# ---------------------------------------------------------------------------
# /api/generate-response
# ---------------------------------------------------------------------------


class TestGenerateResponse:
    def test_primary_success(self) -> None:
        calls: list = []
        response = _client("from groq", "from openrouter", calls).post(
            "/api/generate-response", json={"messages": MESSAGES, "isUserReply": True}
        )
        assert response.status_code == 200
        assert response.json() == {"response": "from groq"}
        assert len(calls) == 1
        assert calls[0]["temperature"] == 0.7
        assert calls[0]["max_tokens"] == 1000
        assert calls[0]["messages"][0] == {"role": "system", "content": "default prompt"}

    def test_fallback_serves_when_primary_fails(self) -> None:
        calls: list = []
        response = _client(None, "from openrouter", calls).post(
            "/api/generate-response",
            json={"messages": MESSAGES, "systemPrompt": "custom"},
        )
        assert response.status_code == 200
        assert response.json() == {"response": "from openrouter"}
        assert [c["provider"] for c in calls] == ["groq", "openrouter"]
        assert all(c["temperature"] == 0.9 for c in calls)
        assert calls[1]["messages"][0] == {"role": "system", "content": "custom"}

    def test_both_fail(self) -> None:
        response = _client(None, None).post("/api/generate-response", json={"messages": MESSAGES})
        assert response.status_code == 500
        assert response.json() == {"error": GENERATE_FAILED}
        assert "503" not in response.text

    @pytest.mark.parametrize("body", [{}, {"messages": []}, {"messages": [{"role": "robot", "content": "x"}]}])
    def test_invalid_body_is_400(self, body: dict) -> None:
        calls: list = []
        response = _client("x", "y", calls).post("/api/generate-response", json=body)
        assert response.status_code == 400
        assert "error" in response.json()
        assert calls == []


# ---------------------------------------------------------------------------
# Mockups
# ---------------------------------------------------------------------------


class TestMockup:
    BODY = {
        "businessIdea": "Weather-aware running planner",
        "activeApis": [{"name": "Open-Meteo", "description": "forecasts", "url": "https://open-meteo.com"}],
    }

    def test_create_and_serve(self) -> None:
        calls: list = []
        client = _client("```html\n<html><body>planner</body></html>\n```", None, calls)
        response = client.post("/api/create-mockup", json=self.BODY)

        assert response.status_code == 200
        payload = response.json()
        assert payload["mockupCode"] == "<html><body>planner</body></html>"
        assert payload["mockupUrl"].startswith("http://testserver/mockup/")
        assert calls[0]["max_tokens"] == 4000
        assert "http://testserver/api/proxy" in calls[0]["messages"][1]["content"]

        page = client.get(payload["mockupUrl"].removeprefix("http://testserver"))
        assert page.status_code == 200
        assert "planner" in page.text

    def test_mockups_are_app_scoped(self) -> None:
        first = _client("<p>one</p>", None)
        url = first.post("/api/create-mockup", json=self.BODY).json()["mockupUrl"]
        path = url.removeprefix("http://testserver")
        assert _client("<p>two</p>", None).get(path).status_code == 404

    def test_requires_apis(self) -> None:
        response = _client("x", None).post(
            "/api/create-mockup", json={"businessIdea": "idea", "activeApis": []}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Business idea and active APIs are required"}

    def test_unknown_mockup(self) -> None:
        assert _client("x", None).get("/mockup/nope").status_code == 404


def test_extract_html_without_fence() -> None:
    assert extract_html("  <div>plain</div>\n") == "<div>plain</div>"


# ---------------------------------------------------------------------------
# /api/proxy
# ---------------------------------------------------------------------------


class TestProxy:
    def test_relays_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        seen = {}

        def fake_urlopen(req, timeout):
            seen["url"] = req.full_url
            seen["method"] = req.get_method()
            seen["body"] = json.loads(req.data)
            seen["headers"] = dict(req.header_items())
            return FakeResponse(b'{"temperature": 21.5}')

        monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
        response = _client("x", None).post("/api/proxy", json={
            "url": "https://api.example/forecast",
            "method": "post",
            "data": {"city": "Oslo"},
            "headers": {"X-Api-Key": "abc"},
        })

        assert response.status_code == 200
        assert response.json() == {"temperature": 21.5}
        assert seen["method"] == "POST"
        assert seen["body"] == {"city": "Oslo"}
        assert seen["headers"]["X-api-key"] == "abc"
        assert seen["headers"]["Content-type"] == "application/json"

    def test_upstream_error_status_is_kept(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_urlopen(req, timeout):
            raise urllib.error.HTTPError(req.full_url, 404, "nf", {}, io.BytesIO(b'{"message": "no city"}'))

        monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
        response = _client("x", None).post("/api/proxy", json={"url": "https://api.example/x"})
        assert response.status_code == 404
        assert response.json() == {"error": PROXY_FAILED, "details": {"message": "no city"}}

    def test_unreachable_is_502(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_urlopen(req, timeout):
            raise urllib.error.URLError("refused")

        monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
        response = _client("x", None).post("/api/proxy", json={"url": "https://down.example"})
        assert response.status_code == 502
        assert response.json()["error"] == PROXY_FAILED

    def test_missing_url(self) -> None:
        assert _client("x", None).post("/api/proxy", json={"method": "GET"}).status_code == 400


# ---------------------------------------------------------------------------
# Catalogue, suggestions, health, CORS
# ---------------------------------------------------------------------------


def test_catalogue_page() -> None:
    payload = _client("x", None).get("/api/catalogue", params={"per_page": 5, "page": 2}).json()
    assert len(payload["entries"]) == 5
    assert payload["page"] == 2
    assert payload["totalPages"] == -(-payload["total"] // 5)
    assert "Name" in payload["entries"][0]
    assert payload["entries"][0]["Color"].startswith("#")


def test_catalogue_search() -> None:
    payload = _client("x", None).get("/api/catalogue", params={"search": "meteo"}).json()
    assert [e["Name"] for e in payload["entries"]] == ["Open-Meteo"]


def test_suggestions_exclude_active() -> None:
    response = _client("x", None).post("/api/suggestions", json={
        "text": "weather forecast",
        "activeNodes": [{"name": "Open-Meteo", "category": "Weather"}],
        "limit": 3,
    })
    suggestions = response.json()["suggestions"]
    assert 0 < len(suggestions) <= 3
    assert "Open-Meteo" not in [s["Name"] for s in suggestions]
    scores = [s["score"] for s in suggestions]
    assert scores == sorted(scores, reverse=True)


def test_health() -> None:
    payload = _client("x", None).get("/api/health").json()
    assert payload["status"] == "ok"
    assert payload["providers"] == ["groq", "openrouter"]
    assert payload["stats"]["failures"] == 0


def test_cors_allow_list() -> None:
    client = _client("x", None)
    allowed = client.options("/api/generate-response", headers={
        "Origin": "http://localhost:3000",
        "Access-Control-Request-Method": "POST",
    })
    assert allowed.headers["access-control-allow-origin"] == "http://localhost:3000"

    denied = client.options("/api/generate-response", headers={
        "Origin": "https://evil.example",
        "Access-Control-Request-Method": "POST",
    })
    assert "access-control-allow-origin" not in denied.headers
