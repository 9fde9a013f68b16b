import logging
from typing import Callable, Iterable

import httpx
from pydantic import ValidationError as PydanticValidationError

from localchat.config import GatewayConfig
from localchat.errors import GatewayError, GatewayUnavailable, Result
from localchat.models import Message, ModelDescriptor

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


def _chat_payload(messages: Iterable[Message | dict]) -> list[dict]:
    payload: list[dict] = []
    for message in messages:
        if isinstance(message, Message):
            payload.append(message.to_chat_payload())
        else:
            payload.append({"role": message["role"], "content": message["content"]})
    return payload


class OllamaGateway:
    """Client for the local Ollama HTTP API (``/tags`` and ``/chat``).

    Every public call returns a :class:`Result`; transport failures map to
    ``GatewayUnavailable`` and non-success responses to ``GatewayError``.
    No retries are attempted.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        client: httpx.Client | None = None,
        token_provider: TokenProvider | None = None,
    ):
        self.config = config or GatewayConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.token_provider = token_provider
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(
                    self.config.request_timeout, connect=self.config.connect_timeout
                )
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token_provider is None:
            return headers
        token = self.token_provider()
        if not token:
            raise GatewayError("Not authenticated")
        headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        headers = self._headers()
        try:
            return self.client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise GatewayUnavailable(f"Request to {url} timed out: {e}")
        except httpx.RequestError as e:
            raise GatewayUnavailable(f"Failed to connect to Ollama at {self.base_url}: {e}")

    def _fetch_models(self) -> list[ModelDescriptor]:
        logger.info(f"Fetching Ollama models from: {self.base_url}/tags")
        response = self._request("GET", "/tags")
        if response.is_error:
            raise GatewayError(
                f"Failed to fetch models ({response.status_code})",
                status_code=response.status_code,
            )
        try:
            data = response.json()
            models = [ModelDescriptor.model_validate(m) for m in data.get("models") or []]
        except (ValueError, AttributeError, PydanticValidationError) as e:
            raise GatewayError(f"Malformed model list from Ollama: {e}")
        logger.info(f"Ollama models: {len(models)}")
        return models

    def list_models(self) -> Result[list[ModelDescriptor]]:
        try:
            return Result.success(self._fetch_models())
        except (GatewayUnavailable, GatewayError) as e:
            logger.error(f"Ollama model listing failed: {e}")
            return Result.failure(e, value=[])

    def _chat(self, model: str, messages: Iterable[Message | dict]) -> str:
        logger.info(f"Sending chat to Ollama, model: {model}")
        response = self._request(
            "POST",
            "/chat",
            json={"model": model, "messages": _chat_payload(messages), "stream": False},
        )
        if response.is_error:
            detail = response.text.strip()
            raise GatewayError(
                detail or "Failed to get response from Ollama",
                status_code=response.status_code,
            )
        try:
            content = response.json()["message"]["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise GatewayError(f"Malformed chat response from Ollama: {e}")
        if not isinstance(content, str):
            raise GatewayError("Malformed chat response from Ollama: content is not text")
        logger.info("Ollama response received")
        return content

    def complete(self, model: str, messages: Iterable[Message | dict]) -> Result[str]:
        try:
            return Result.success(self._chat(model, messages))
        except (GatewayUnavailable, GatewayError) as e:
            logger.error(f"Ollama chat error: {e}")
            return Result.failure(e)
