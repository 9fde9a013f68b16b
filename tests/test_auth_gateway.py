import json
import time

import httpx
import pytest

from localchat.config import AuthConfig
from localchat.gateways.auth import AuthGateway
from localchat.storage import MemoryStore

SUPABASE_URL = "https://project.supabase.co"
ANON_KEY = "anon-key"

USER = {"id": "user-1", "email": "ada@example.com", "created_at": "2024-01-01T00:00:00Z"}


def _session_payload(access_token="access-1", refresh_token="refresh-1", expires_in=3600):
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": expires_in,
        "refresh_token": refresh_token,
        "user": USER,
    }


class Recorder:
    def __init__(self, responses):
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.url.path, request.url.params.get("grant_type"))
        response = self.responses[key]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def store():
    return MemoryStore()


def _gateway(store, responses, config=None):
    recorder = Recorder(responses)
    client = httpx.Client(transport=httpx.MockTransport(recorder))
    gateway = AuthGateway(
        config or AuthConfig(url=SUPABASE_URL, anon_key=ANON_KEY), store, client=client
    )
    return gateway, recorder


class TestLogin:
    def test_success_stores_session(self, store):
        gateway, recorder = _gateway(
            store,
            {("/auth/v1/token", "password"): httpx.Response(200, json=_session_payload())},
        )
        result = gateway.login("ada@example.com", "secret")

        assert result.ok
        assert result.value.id == "user-1"
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.headers["apikey"] == ANON_KEY
        assert json.loads(request.content) == {"email": "ada@example.com", "password": "secret"}

        stored = store.get("session")
        assert stored["access_token"] == "access-1"
        assert stored["expires_at"] > time.time()
        assert gateway.access_token() == "access-1"

    def test_invalid_credentials(self, store):
        gateway, _ = _gateway(
            store,
            {
                ("/auth/v1/token", "password"): httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                )
            },
        )
        result = gateway.login("ada@example.com", "wrong")
        assert not result.ok
        assert result.error.kind == "gateway_error"
        assert result.error.message == "Invalid login credentials"
        assert store.get("session") is None

    def test_unreachable_provider(self, store):
        request = httpx.Request("POST", SUPABASE_URL)
        gateway, _ = _gateway(
            store,
            {("/auth/v1/token", "password"): httpx.ConnectError("no route", request=request)},
        )
        result = gateway.login("ada@example.com", "secret")
        assert result.error.kind == "gateway_unavailable"

    def test_missing_configuration(self, store):
        gateway, recorder = _gateway(store, {}, config=AuthConfig(url="", anon_key=""))
        result = gateway.login("ada@example.com", "secret")
        assert result.error.kind == "config"
        assert "Supabase URL" in result.error.message
        assert recorder.requests == []


class TestSignup:
    def test_returns_user_awaiting_confirmation(self, store):
        gateway, _ = _gateway(
            store, {("/auth/v1/signup", None): httpx.Response(200, json=USER)}
        )
        result = gateway.signup("ada@example.com", "secret")
        assert result.value.email == "ada@example.com"
        assert store.get("session") is None

    def test_auto_confirmed_signup_stores_session(self, store):
        gateway, _ = _gateway(
            store, {("/auth/v1/signup", None): httpx.Response(200, json=_session_payload())}
        )
        result = gateway.signup("ada@example.com", "secret")
        assert result.value.id == "user-1"
        assert store.get("session")["access_token"] == "access-1"

    def test_error_message_from_msg_field(self, store):
        gateway, _ = _gateway(
            store,
            {("/auth/v1/signup", None): httpx.Response(422, json={"code": 422, "msg": "User already registered"})},
        )
        result = gateway.signup("ada@example.com", "secret")
        assert result.error.message == "User already registered"


class TestSession:
    def test_no_session_when_signed_out(self, store):
        gateway, _ = _gateway(store, {})
        result = gateway.get_session()
        assert result.ok
        assert result.value is None
        assert gateway.access_token() is None

    def test_expired_session_is_refreshed(self, store):
        store.set(
            "session",
            {**_session_payload(), "expires_at": int(time.time()) - 10},
        )
        gateway, recorder = _gateway(
            store,
            {
                ("/auth/v1/token", "refresh_token"): httpx.Response(
                    200, json=_session_payload(access_token="access-2", refresh_token="refresh-2")
                )
            },
        )
        result = gateway.get_session()

        assert result.value.access_token == "access-2"
        assert json.loads(recorder.requests[0].content) == {"refresh_token": "refresh-1"}
        assert store.get("session")["refresh_token"] == "refresh-2"

    def test_failed_refresh_clears_session(self, store):
        store.set("session", {**_session_payload(), "expires_at": int(time.time()) - 10})
        gateway, _ = _gateway(
            store,
            {
                ("/auth/v1/token", "refresh_token"): httpx.Response(
                    400, json={"error_description": "Invalid Refresh Token"}
                )
            },
        )
        result = gateway.get_session()
        assert result.error.message == "Invalid Refresh Token"
        assert store.get("session") is None
        assert gateway.access_token() is None

    def test_unreadable_stored_session_is_discarded(self, store):
        store.set("session", {"access_token": "x"})
        gateway, _ = _gateway(store, {})
        assert gateway.get_session().value is None
        assert store.get("session") is None


class TestLogout:
    def test_revokes_and_clears(self, store):
        store.set("session", _session_payload())
        gateway, recorder = _gateway(
            store, {("/auth/v1/logout", None): httpx.Response(204)}
        )
        result = gateway.logout()

        assert result.ok
        assert store.get("session") is None
        assert recorder.requests[0].headers["Authorization"] == "Bearer access-1"

    def test_clears_even_when_provider_fails(self, store):
        store.set("session", _session_payload())
        gateway, _ = _gateway(
            store, {("/auth/v1/logout", None): httpx.Response(500, text="oops")}
        )
        result = gateway.logout()
        assert not result.ok
        assert store.get("session") is None

    def test_signed_out_logout_is_noop(self, store):
        gateway, recorder = _gateway(store, {})
        assert gateway.logout().ok
        assert recorder.requests == []
