import logging
import time

import httpx
from pydantic import ValidationError as PydanticValidationError

from localchat.config import AuthConfig
from localchat.errors import ConfigError, GatewayError, GatewayUnavailable, LocalChatError, Result
from localchat.models import AuthSession, AuthUser
from localchat.storage import AUTH_SESSION_KEY, KeyValueStore

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response, fallback: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or fallback
    if isinstance(data, dict):
        for key in ("error_description", "msg", "message", "error"):
            if data.get(key):
                return str(data[key])
    return fallback


class AuthGateway:
    """Password auth against a Supabase (GoTrue) identity provider.

    The signed-in session is kept in the key-value store under ``session``
    and refreshed on demand once its access token expires.
    """

    def __init__(
        self,
        config: AuthConfig,
        store: KeyValueStore,
        *,
        client: httpx.Client | None = None,
    ):
        self.config = config
        self.store = store
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _ensure_configured(self) -> None:
        if not self.config.configured:
            raise ConfigError("Supabase URL and anon key are required. Check your .env file.")

    def _post(
        self,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        token: str | None = None,
        failure: str,
    ) -> dict:
        self._ensure_configured()
        url = f"{self.config.url.rstrip('/')}/auth/v1{path}"
        headers = {
            "apikey": self.config.anon_key,
            "Authorization": f"Bearer {token or self.config.anon_key}",
        }
        try:
            response = self.client.post(url, json=json, params=params, headers=headers)
        except httpx.RequestError as e:
            raise GatewayUnavailable(f"Failed to reach identity provider: {e}")
        if response.is_error:
            raise GatewayError(
                _error_detail(response, failure), status_code=response.status_code
            )
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            raise GatewayError(f"{failure}: malformed response")
        if not isinstance(data, dict):
            raise GatewayError(f"{failure}: malformed response")
        return data

    def _parse_session(self, data: dict) -> AuthSession:
        payload = dict(data)
        if payload.get("expires_at") is None and payload.get("expires_in") is not None:
            payload["expires_at"] = int(time.time()) + int(payload["expires_in"])
        try:
            return AuthSession.model_validate(payload)
        except PydanticValidationError as e:
            raise GatewayError(f"Malformed session from identity provider: {e}")

    def _load_stored(self) -> AuthSession | None:
        data = self.store.get(AUTH_SESSION_KEY)
        if not data:
            return None
        try:
            return AuthSession.model_validate(data)
        except PydanticValidationError:
            logger.warning("Discarding unreadable stored auth session")
            self.store.delete(AUTH_SESSION_KEY)
            return None

    def _save(self, session: AuthSession) -> None:
        self.store.set(AUTH_SESSION_KEY, session.model_dump(mode="json"))

    def login(self, email: str, password: str) -> Result[AuthUser]:
        try:
            data = self._post(
                "/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                failure="Login failed",
            )
            session = self._parse_session(data)
            self._save(session)
        except LocalChatError as e:
            logger.warning(f"Login failed for {email}: {e}")
            return Result.failure(e)
        logger.info(f"Signed in as {session.user.email or session.user.id}")
        return Result.success(session.user)

    def signup(self, email: str, password: str) -> Result[AuthUser]:
        try:
            data = self._post(
                "/signup",
                json={"email": email, "password": password},
                failure="Signup failed",
            )
            # Projects with auto-confirm answer with a full session.
            if data.get("access_token"):
                session = self._parse_session(data)
                self._save(session)
                user = session.user
            else:
                user = AuthUser.model_validate(data.get("user") or data)
        except PydanticValidationError as e:
            return Result.failure(GatewayError(f"Malformed signup response: {e}"))
        except LocalChatError as e:
            logger.warning(f"Signup failed for {email}: {e}")
            return Result.failure(e)
        return Result.success(user)

    def logout(self) -> Result[None]:
        try:
            session = self._load_stored()
            self.store.delete(AUTH_SESSION_KEY)
            if session is not None:
                self._post("/logout", token=session.access_token, failure="Logout failed")
        except LocalChatError as e:
            logger.warning(f"Logout did not complete cleanly: {e}")
            return Result.failure(e)
        return Result.success(None)

    def _refresh(self, session: AuthSession) -> AuthSession:
        if not session.refresh_token:
            raise GatewayError("Session expired")
        data = self._post(
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": session.refresh_token},
            failure="Failed to refresh session",
        )
        refreshed = self._parse_session(data)
        self._save(refreshed)
        logger.info("Refreshed auth session")
        return refreshed

    def _current(self) -> AuthSession | None:
        session = self._load_stored()
        if session is None or not session.is_expired():
            return session
        try:
            return self._refresh(session)
        except GatewayError:
            self.store.delete(AUTH_SESSION_KEY)
            raise

    def get_session(self) -> Result[AuthSession | None]:
        try:
            return Result.success(self._current())
        except LocalChatError as e:
            return Result.failure(e)

    def access_token(self) -> str | None:
        result = self.get_session()
        if not result.ok or result.value is None:
            return None
        return result.value.access_token
