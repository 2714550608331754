"""Tests for the studio API: settings, sessions, chat and GitHub load/save."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from drawsync.agent.provider import ProviderConfig
from drawsync.api.session_manager import SessionManager
from drawsync.codec import encode_content
from drawsync.github_store import GitHubStore
from drawsync.relay import Relay
from drawsync.storage.settings_store import mask
from tests.helpers import _make_openai_response, _make_response

REPO = "https://github.com/acme/diagrams"


@pytest.fixture
def upstream():
    """Mock requests.Session shared by the relay."""
    return MagicMock()


@pytest.fixture
def github_http():
    """Mock requests.Session used by the GitHub store."""
    return MagicMock()


@pytest.fixture
def client(settings_store, upstream, github_http):
    from drawsync.api.studio import router

    manager = SessionManager(
        settings_store.load_provider_config,
        relay_factory=lambda: Relay(streaming=False, session=upstream),
    )
    with patch("drawsync.api.studio._get_settings_store", return_value=settings_store), \
         patch("drawsync.api.studio._get_session_manager", return_value=manager), \
         patch("drawsync.api.studio._get_github_store",
               side_effect=lambda token=None: GitHubStore(token=token, session=github_http)):
        app = FastAPI()
        app.include_router(router)
        yield TestClient(app)


def _new_session(client) -> str:
    resp = client.post("/sessions")
    assert resp.status_code == 200
    return resp.json()["session_id"]


# ── Settings ──


class TestSettingsStore:
    def test_defaults(self, settings_store):
        cfg = settings_store.load_provider_config()
        assert cfg == ProviderConfig(provider="openai", api_key="", model="")

    def test_round_trip(self, settings_store):
        settings_store.save_provider_config(ProviderConfig(provider="anthropic", api_key="sk-ant-123", model="m"))
        assert settings_store.load_provider_config().provider == "anthropic"
        assert settings_store.load_provider_config().api_key == "sk-ant-123"

    def test_github_token(self, settings_store):
        assert settings_store.get_github_token() == ""
        settings_store.set_github_token("ghp_abc")
        assert settings_store.get_github_token() == "ghp_abc"

    def test_mask(self):
        assert mask("") == ""
        assert mask("abc") == "•••"
        masked = mask("sk-1234567890")
        assert masked.startswith("sk-") and masked.endswith("7890")
        assert "456" not in masked

    def test_mask_short_secrets_fully(self):
        assert mask("sk-abcd") == "•" * 7
        assert mask("0123456789") == "•" * 10
        masked = mask("0123456789a")
        assert masked.startswith("012") and masked.endswith("789a")
        assert "456" not in masked


class TestSettingsEndpoints:
    def test_put_then_get_masks_key(self, client):
        resp = client.put("/settings/provider", json={
            "provider": "anthropic", "api_key": "sk-ant-secret-key", "model": "claude-x",
        })
        assert resp.status_code == 200
        data = client.get("/settings/provider").json()
        assert data["provider"] == "anthropic"
        assert data["model"] == "claude-x"
        assert data["api_key"] != "sk-ant-secret-key"
        assert data["providers"] == ["anthropic", "openai"]

    def test_rejects_unknown_provider(self, client):
        resp = client.put("/settings/provider", json={"provider": "gemini", "api_key": "k"})
        assert resp.status_code == 422


# ── Sessions ──


class TestSessionSync:
    def test_new_session_is_empty(self, client):
        data = client.post("/sessions").json()
        assert data["text"] == "[]"
        assert data["elements"] == []
        assert data["messages"][0]["role"] == "assistant"

    def test_unknown_session(self, client):
        assert client.get("/sessions/nope").status_code == 404

    def test_delete_session(self, client):
        sid = _new_session(client)
        assert client.delete(f"/sessions/{sid}").json() == {"deleted": True}
        assert client.get(f"/sessions/{sid}").status_code == 404
        assert client.delete(f"/sessions/{sid}").status_code == 404

    def test_text_edit_updates_elements(self, client):
        sid = _new_session(client)
        text = json.dumps([{"type": "rectangle", "x": 1}])
        data = client.put(f"/sessions/{sid}/text", json={"text": text}).json()
        assert data["text"] == text
        assert data["elements"][0]["type"] == "rectangle"
        assert data["elements"][0]["version"] == 1

    def test_invalid_text_keeps_buffer_and_scene(self, client):
        sid = _new_session(client)
        client.put(f"/sessions/{sid}/text", json={"text": '[{"type": "ellipse"}]'})
        data = client.put(f"/sessions/{sid}/text", json={"text": '[{"type": "ell'}).json()
        assert data["text"] == '[{"type": "ell'
        assert data["elements"][0]["type"] == "ellipse"

    def test_surface_change_updates_text(self, client):
        sid = _new_session(client)
        elements = [{"id": "d1", "type": "diamond", "version": 3}]
        data = client.post(f"/sessions/{sid}/surface", json={"elements": elements}).json()
        assert json.loads(data["text"]) == elements


# ── Chat ──


class TestChat:
    def test_generated_document_is_applied(self, client, settings_store, upstream):
        settings_store.save_provider_config(ProviderConfig(provider="openai", api_key="sk-1"))
        upstream.request.return_value = _make_openai_response(json.dumps([{"type": "ellipse"}]))
        sid = _new_session(client)
        data = client.post(f"/sessions/{sid}/chat", json={"prompt": "a circle"}).json()
        assert data["applied"] is True
        assert data["error"] is None
        assert data["session"]["elements"][0]["type"] == "ellipse"
        assert [m["role"] for m in data["session"]["messages"]] == ["assistant", "user", "assistant"]

    def test_malformed_generation_leaves_document(self, client, settings_store, upstream):
        settings_store.save_provider_config(ProviderConfig(provider="openai", api_key="sk-1"))
        sid = _new_session(client)
        client.put(f"/sessions/{sid}/text", json={"text": '[{"type": "text", "id": "t"}]'})
        upstream.request.return_value = _make_openai_response("I cannot draw that.")
        data = client.post(f"/sessions/{sid}/chat", json={"prompt": "x"}).json()
        assert data["applied"] is False
        assert "did not return a diagram" in data["error"]
        assert data["session"]["text"] == '[{"type": "text", "id": "t"}]'
        assert data["session"]["elements"][0]["id"] == "t"

    def test_rejected_generation_leaves_document(self, client, settings_store, upstream):
        settings_store.save_provider_config(ProviderConfig(provider="openai", api_key="sk-1"))
        sid = _new_session(client)
        client.put(f"/sessions/{sid}/text", json={"text": '[{"type": "text", "id": "t"}]'})
        upstream.request.return_value = _make_openai_response(json.dumps([{"id": "no-type"}]))
        data = client.post(f"/sessions/{sid}/chat", json={"prompt": "x"}).json()
        assert data["applied"] is False
        assert data["session"]["text"] == '[{"type": "text", "id": "t"}]'
        assert [e["id"] for e in data["session"]["elements"]] == ["t"]

    def test_missing_api_key_reported(self, client, upstream):
        sid = _new_session(client)
        data = client.post(f"/sessions/{sid}/chat", json={"prompt": "x"}).json()
        assert data["applied"] is False
        assert "No API key" in data["error"]
        upstream.request.assert_not_called()

    def test_blank_prompt(self, client):
        sid = _new_session(client)
        assert client.post(f"/sessions/{sid}/chat", json={"prompt": "  "}).status_code == 400


# ── GitHub ──


class TestGitHub:
    def test_list_files(self, client, github_http):
        github_http.get.return_value = _make_response(200, {"tree": [
            {"path": "a.excalidraw", "type": "blob", "sha": "s1", "url": "u1"},
            {"path": "b.md", "type": "blob", "sha": "s2", "url": "u2"},
        ]})
        resp = client.get("/github/files", params={"repo_url": REPO})
        assert resp.status_code == 200
        assert resp.json() == [{"path": "a.excalidraw", "fetch_ref": "u1", "content_hash": "s1"}]

    def test_list_invalid_url(self, client):
        assert client.get("/github/files", params={"repo_url": "https://example.com/x"}).status_code == 400

    def test_list_not_found(self, client, github_http):
        github_http.get.return_value = _make_response(404, {"message": "Not Found"})
        assert client.get("/github/files", params={"repo_url": REPO}).status_code == 404

    def test_load_then_save_uses_provenance(self, client, github_http, settings_store):
        content = json.dumps([{"type": "rectangle", "id": "r"}])
        github_http.get.return_value = _make_response(200, {"content": encode_content(content)})
        sid = _new_session(client)
        data = client.post(f"/sessions/{sid}/github/load", json={
            "repo_url": REPO, "path": "flow.excalidraw", "fetch_ref": "u1", "content_hash": "h1",
        }).json()
        assert data["text"] == content
        assert data["provenance"]["content_hash"] == "h1"

        github_http.get.reset_mock()
        github_http.put.return_value = _make_response(200, {"content": {"sha": "h2"}, "commit": {"sha": "c1"}})
        resp = client.post(f"/sessions/{sid}/github/save", json={
            "path": "flow.excalidraw", "message": "Update", "token": "ghp_x",
        })
        assert resp.status_code == 200
        assert resp.json()["content_hash"] == "h2"
        assert resp.json()["session"]["provenance"]["content_hash"] == "h2"
        assert github_http.put.call_args[1]["json"]["sha"] == "h1"
        github_http.get.assert_not_called()
        assert settings_store.get_github_token() == "ghp_x"

    def test_save_conflict(self, client, github_http):
        github_http.get.return_value = _make_response(200, {"content": encode_content("[]")})
        sid = _new_session(client)
        client.post(f"/sessions/{sid}/github/load", json={
            "repo_url": REPO, "path": "a.json", "fetch_ref": "u", "content_hash": "stale",
        })
        github_http.put.return_value = _make_response(409, {"message": "does not match"})
        resp = client.post(f"/sessions/{sid}/github/save", json={
            "path": "a.json", "message": "m", "token": "t",
        })
        assert resp.status_code == 409

    def test_concurrent_save_rejected(self, client, github_http):
        from drawsync.api import studio

        github_http.get.return_value = _make_response(200, {"content": encode_content("[]")})
        sid = _new_session(client)
        client.post(f"/sessions/{sid}/github/load", json={
            "repo_url": REPO, "path": "a.json", "fetch_ref": "u", "content_hash": "h1",
        })
        session = studio._get_session_manager().get(sid)
        github_http.put.return_value = _make_response(200, {"content": {"sha": "h2"}, "commit": {"sha": "c1"}})
        save = {"path": "a.json", "message": "m", "token": "t"}

        assert session.save_lock.acquire(blocking=False)
        try:
            resp = client.post(f"/sessions/{sid}/github/save", json=save)
        finally:
            session.save_lock.release()
        assert resp.status_code == 409
        github_http.put.assert_not_called()

        assert client.post(f"/sessions/{sid}/github/save", json=save).status_code == 200
        assert not session.save_lock.locked()

    def test_failed_save_releases_lock(self, client, github_http):
        from drawsync.api import studio

        github_http.get.return_value = _make_response(200, {"content": encode_content("[]")})
        sid = _new_session(client)
        client.post(f"/sessions/{sid}/github/load", json={
            "repo_url": REPO, "path": "a.json", "fetch_ref": "u", "content_hash": "stale",
        })
        github_http.put.return_value = _make_response(409, {"message": "does not match"})
        save = {"path": "a.json", "message": "m", "token": "t"}
        assert client.post(f"/sessions/{sid}/github/save", json=save).status_code == 409
        assert not studio._get_session_manager().get(sid).save_lock.locked()

    def test_save_without_repo_is_400(self, client):
        sid = _new_session(client)
        resp = client.post(f"/sessions/{sid}/github/save", json={"path": "a.json", "message": "m", "token": "t"})
        assert resp.status_code == 400

    def test_load_invalid_json(self, client, github_http):
        github_http.get.return_value = _make_response(200, {"content": encode_content("not json")})
        sid = _new_session(client)
        resp = client.post(f"/sessions/{sid}/github/load", json={
            "repo_url": REPO, "path": "a.json", "fetch_ref": "u",
        })
        assert resp.status_code == 422

    def test_load_non_diagram_keeps_session(self, client, github_http):
        sid = _new_session(client)
        good = json.dumps([{"type": "text", "id": "t"}])
        github_http.get.return_value = _make_response(200, {"content": encode_content(good)})
        client.post(f"/sessions/{sid}/github/load", json={
            "repo_url": REPO, "path": "flow.excalidraw", "fetch_ref": "u1", "content_hash": "h1",
        })

        github_http.get.return_value = _make_response(200, {"content": encode_content('{"name": "x"}')})
        resp = client.post(f"/sessions/{sid}/github/load", json={
            "repo_url": REPO, "path": "package.json", "fetch_ref": "u2", "content_hash": "h2",
        })
        assert resp.status_code == 422

        data = client.get(f"/sessions/{sid}").json()
        assert data["text"] == good
        assert data["provenance"]["path"] == "flow.excalidraw"
        assert data["provenance"]["content_hash"] == "h1"
        assert data["elements"][0]["id"] == "t"

    def test_list_non_json_response_is_502(self, client, github_http):
        github_http.get.return_value = _make_response(200, text="<html>captive portal</html>", content_type="text/html")
        resp = client.get("/github/files", params={"repo_url": REPO})
        assert resp.status_code == 502


# ── App wiring ──


class TestServer:
    def test_health_and_routes(self):
        from drawsync.api.server import app, studio_app

        tc = TestClient(app)
        assert tc.get("/health").json() == {"status": "ok"}
        assert "/api/{family}/{rest:path}" in {route.path for route in app.routes}
        assert "/sessions/{session_id}/chat" in {route.path for route in studio_app.routes}

    def test_browser_preflight_reaches_relay(self):
        from drawsync.api.server import app
        from drawsync.relay import CORS_HEADERS

        tc = TestClient(app)
        resp = tc.options("/api/anthropic/v1/messages", headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type, x-api-key",
        })
        assert resp.status_code == 200
        assert resp.content == b""
        for name, value in CORS_HEADERS.items():
            assert resp.headers[name] == value

    def test_relay_put_is_405_through_app(self):
        from drawsync.api.server import app

        resp = TestClient(app).put("/api/openai/v1/chat/completions", content=b"{}")
        assert resp.status_code == 405

    def test_studio_preflight_handled_by_cors(self):
        from drawsync.api.server import app

        resp = TestClient(app).options("/sessions", headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        })
        assert resp.status_code == 200
        assert "access-control-allow-origin" in resp.headers
