"""
Tests for Canva PKCE auth, token refresh and export polling.
"""
import json
from urllib.parse import parse_qs, urlparse

import pytest

from abb_automation.canva_client import TOKEN_URL, CanvaClient, TokenStore, pkce_pair
from abb_automation.errors import AuthRequiredError, AutomationError, PermanentRemoteError

from conftest import RecordingSession, make_response

NOW = 1_770_000_000.0  # seconds


@pytest.fixture
def store(tmp_path) -> TokenStore:
    return TokenStore(tmp_path / ".canva-tokens.json")


def _client(store, *responses) -> tuple[CanvaClient, RecordingSession]:
    session = RecordingSession(*responses)
    client = CanvaClient("cid", "secret", "http://127.0.0.1:3001/oauth/redirect", store,
                         session=session, clock=lambda: NOW, sleep=lambda s: None)
    return client, session


class TestTokenStore:

    def test_save_merges_and_none_removes(self, store):
        store.save(access_token="a", code_verifier="v")
        store.save(refresh_token="r", code_verifier=None)
        assert store.load() == {"access_token": "a", "refresh_token": "r"}

    def test_unreadable_file_is_empty(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() == {}


def test_pkce_pair_is_url_safe():
    verifier, challenge = pkce_pair()
    assert "=" not in verifier and "=" not in challenge
    assert len(challenge) == 43


class TestAuth:

    def test_auth_url_stores_verifier(self, store):
        client, _ = _client(store)
        url = client.build_auth_url()
        query = parse_qs(urlparse(url).query)
        assert query["code_challenge_method"] == ["S256"]
        assert query["client_id"] == ["cid"]
        assert store.load()["code_verifier"]

    def test_exchange_without_verifier(self, store):
        client, _ = _client(store)
        with pytest.raises(AuthRequiredError):
            client.exchange_code("abc")

    def test_exchange_code_saves_tokens(self, store):
        store.save(code_verifier="verif")
        client, session = _client(store, make_response(200, {
            "access_token": "at", "refresh_token": "rt", "expires_in": 14400}))
        client.exchange_code("the-code")

        call = session.calls[0]
        assert call["url"] == TOKEN_URL
        assert call["data"]["code_verifier"] == "verif"
        assert call["auth"] == ("cid", "secret")
        tokens = store.load()
        assert tokens == {"access_token": "at", "refresh_token": "rt",
                          "expires_at": int(NOW * 1000) + 14_400_000}

    def test_token_reply_that_is_not_json(self, store):
        store.save(code_verifier="verif")
        client, _ = _client(store, make_response(200, "<html>proxy error</html>"))
        with pytest.raises(PermanentRemoteError):
            client.exchange_code("the-code")
        assert "access_token" not in store.load()

    def test_not_authenticated(self, store):
        client, _ = _client(store)
        with pytest.raises(AuthRequiredError):
            client.get_access_token()

    def test_fresh_token_is_reused(self, store):
        store.save(access_token="at", refresh_token="rt", expires_at=int(NOW * 1000) + 120_000)
        client, session = _client(store)
        assert client.get_access_token() == "at"
        assert session.calls == []

    def test_refreshes_within_margin_and_keeps_refresh_token(self, store):
        store.save(access_token="old", refresh_token="rt", expires_at=int(NOW * 1000) + 30_000)
        client, session = _client(store, make_response(200, {"access_token": "new", "expires_in": 3600}))
        assert client.get_access_token() == "new"
        assert session.calls[0]["data"] == {"grant_type": "refresh_token", "refresh_token": "rt"}
        assert store.load()["refresh_token"] == "rt"

    def test_api_calls_use_bearer(self, store):
        store.save(access_token="at", refresh_token="rt", expires_at=int(NOW * 1000) + 3_600_000)
        client, session = _client(store, make_response(200, {"profile": {"display_name": "ABB"}}))
        client.get_user()
        assert session.calls[0]["headers"]["Authorization"] == "Bearer at"


class TestExport:

    @pytest.fixture
    def authed(self, store):
        store.save(access_token="at", refresh_token="rt", expires_at=int(NOW * 1000) + 3_600_000)
        return store

    def test_polls_until_success(self, authed):
        client, session = _client(
            authed,
            make_response(200, {"job": {"id": "j1", "status": "in_progress"}}),
            make_response(200, {"job": {"id": "j1", "status": "in_progress"}}),
            make_response(200, {"job": {"id": "j1", "status": "success", "urls": ["https://x/1.pdf"]}}),
        )
        assert client.export_design("D1", "pdf") == ["https://x/1.pdf"]
        assert session.calls[0]["json"] == {"format": {"type": "pdf"}}

    def test_failed_job(self, authed):
        client, _ = _client(
            authed,
            make_response(200, {"job": {"id": "j1"}}),
            make_response(200, {"job": {"id": "j1", "status": "failed", "error": {"code": "x"}}}),
        )
        with pytest.raises(AutomationError, match="Export failed"):
            client.export_design("D1", "png")

    def test_job_not_started(self, authed):
        client, _ = _client(authed, make_response(200, {}))
        with pytest.raises(AutomationError, match="failed to start"):
            client.export_design("D1", "png")


def test_token_file_is_json(store):
    store.save(access_token="a")
    assert json.loads(store.path.read_text(encoding="utf-8")) == {"access_token": "a"}
