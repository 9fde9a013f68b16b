from localchat.sessions.store import SessionStore
from localchat.sessions.titles import (
    TitleGenerator,
    TitleSettingsStore,
    fallback_title,
    get_default_title_prompt,
)

__all__ = [
    "SessionStore",
    "TitleGenerator",
    "TitleSettingsStore",
    "fallback_title",
    "get_default_title_prompt",
]
