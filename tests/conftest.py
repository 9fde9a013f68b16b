import pytest

from localchat.errors import GatewayUnavailable, Result
from localchat.models import ModelDescriptor, TitleSettings
from localchat.runtime.orchestrator import ChatOrchestrator
from localchat.sessions.store import SessionStore
from localchat.sessions.titles import TitleGenerator, TitleSettingsStore
from localchat.storage import MemoryStore


class FakeGateway:
    def __init__(self, replies=None, models=None):
        self.replies = list(replies or [])
        self.models = models if models is not None else [ModelDescriptor(name="llama3", size=4_000_000_000)]
        self.calls: list[tuple[str, list[dict]]] = []

    def list_models(self):
        return Result.success(list(self.models))

    def complete(self, model, messages):
        payload = [m if isinstance(m, dict) else m.to_chat_payload() for m in messages]
        self.calls.append((model, payload))
        reply = self.replies.pop(0) if self.replies else "ok"
        if isinstance(reply, Exception):
            return Result.failure(reply)
        return Result.success(reply)


@pytest.fixture
def kv_store():
    return MemoryStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def title_settings(kv_store):
    return TitleSettingsStore(kv_store)


@pytest.fixture
def titles(gateway, title_settings):
    return TitleGenerator(gateway, title_settings)


@pytest.fixture
def session_store(kv_store, titles):
    return SessionStore(kv_store, titles)


@pytest.fixture
def events():
    return []


@pytest.fixture
def orchestrator(session_store, gateway, events):
    return ChatOrchestrator(session_store, gateway, model="llama3", on_event=events.append)


@pytest.fixture
def unavailable():
    return GatewayUnavailable("Failed to connect to Ollama at http://127.0.0.1:11434/api")


@pytest.fixture
def no_ai_titles(title_settings):
    title_settings.set(TitleSettings(enabled=False))
