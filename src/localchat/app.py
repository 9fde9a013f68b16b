import logging
from dataclasses import dataclass

from common.events import EventCallback
from localchat.config import AppConfig
from localchat.gateways.auth import AuthGateway
from localchat.gateways.ollama import OllamaGateway
from localchat.runtime.orchestrator import ChatOrchestrator
from localchat.sessions.store import SessionStore
from localchat.sessions.titles import TitleGenerator, TitleSettingsStore
from localchat.storage import JsonFileStore, KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)


@dataclass
class ChatApp:
    config: AppConfig
    store: KeyValueStore
    gateway: OllamaGateway
    auth: AuthGateway
    title_settings: TitleSettingsStore
    titles: TitleGenerator
    sessions: SessionStore
    chat: ChatOrchestrator

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        store: KeyValueStore | None = None,
        on_event: EventCallback = None,
    ) -> "ChatApp":
        config.validate()
        if store is None:
            store = MemoryStore() if config.ephemeral else JsonFileStore(config.store_path)
        auth = AuthGateway(config.auth, store)
        gateway = OllamaGateway(
            config.gateway,
            token_provider=auth.access_token if config.hosted else None,
        )
        title_settings = TitleSettingsStore(store)
        titles = TitleGenerator(gateway, title_settings)
        sessions = SessionStore(store, titles)
        chat = ChatOrchestrator(
            sessions, gateway, model=config.default_model, on_event=on_event
        )
        logger.debug(
            f"Chat app ready (deployment={config.deployment}, gateway={gateway.base_url})"
        )
        return cls(
            config=config,
            store=store,
            gateway=gateway,
            auth=auth,
            title_settings=title_settings,
            titles=titles,
            sessions=sessions,
            chat=chat,
        )

    def close(self) -> None:
        self.gateway.close()
        self.auth.close()
