import logging

from pydantic import ValidationError as PydanticValidationError

from common.text_template import render_template
from localchat.errors import PersistenceError, Result
from localchat.models import DEFAULT_TITLE_PROMPT, TitleSettings
from localchat.storage import TITLE_SETTINGS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

FALLBACK_TITLE_LENGTH = 30
MAX_TITLE_LENGTH = 50
QUOTE_CHARS = "\"'“”‘’"


def fallback_title(first_message: str) -> str:
    title = first_message[:FALLBACK_TITLE_LENGTH]
    return f"{title}..." if len(title) < len(first_message) else title


def clean_title(raw: str) -> str:
    title = raw.strip()
    if title and title[0] in QUOTE_CHARS:
        title = title[1:]
    if title and title[-1] in QUOTE_CHARS:
        title = title[:-1]
    return title.strip()[:MAX_TITLE_LENGTH]


def get_default_title_prompt() -> str:
    return DEFAULT_TITLE_PROMPT


class TitleSettingsStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def get(self) -> Result[TitleSettings]:
        try:
            data = self.store.get(TITLE_SETTINGS_KEY)
        except PersistenceError as e:
            logger.error(f"Failed to get title settings: {e}")
            return Result.failure(e, value=TitleSettings())
        if not data:
            return Result.success(TitleSettings())
        try:
            return Result.success(TitleSettings.model_validate(data))
        except PydanticValidationError:
            logger.warning("Stored title settings are invalid, using defaults")
            return Result.success(TitleSettings())

    def set(self, settings: TitleSettings) -> Result[bool]:
        try:
            self.store.set(TITLE_SETTINGS_KEY, settings.model_dump())
        except PersistenceError as e:
            logger.error(f"Failed to save title settings: {e}")
            return Result.failure(e, value=False)
        return Result.success(True)

    def reset(self) -> Result[bool]:
        return self.set(TitleSettings())


class TitleGenerator:
    """Best-effort title for a new session; never raises to its caller."""

    def __init__(self, gateway, settings: TitleSettingsStore):
        self.gateway = gateway
        self.settings = settings

    def build_prompt(self, settings: TitleSettings, first_message: str) -> str:
        template = settings.prompt if settings.prompt.strip() else DEFAULT_TITLE_PROMPT
        return render_template(template, message=first_message)

    def generate(self, first_message: str, model: str | None) -> str:
        settings = self.settings.get().value or TitleSettings()
        if not settings.enabled:
            logger.debug("Title generation is disabled, using fallback")
            return fallback_title(first_message)

        title_model = settings.model or model
        if not title_model:
            logger.info("No model available for title generation, using fallback")
            return fallback_title(first_message)

        prompt = self.build_prompt(settings, first_message)
        logger.info(f"Generating title with model: {title_model}")
        try:
            result = self.gateway.complete(title_model, [{"role": "user", "content": prompt}])
        except Exception as e:
            logger.warning(f"Title generation error: {e}")
            return fallback_title(first_message)

        if not result.ok or result.value is None:
            message = result.error.message if result.error else "empty response"
            logger.info(f"AI title generation failed, using fallback: {message}")
            return fallback_title(first_message)

        title = clean_title(result.value)
        if not title:
            return fallback_title(first_message)
        logger.info(f"Generated title: {title}")
        return title
