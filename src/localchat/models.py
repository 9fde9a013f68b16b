import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.ids import generate_id

DEFAULT_TITLE_PROMPT = """Generate a short, concise title (max 6 words) for this conversation based on the first message. Only respond with the title, no quotes or extra text.

First message: {message}"""

Role = Literal["user", "assistant"]
_NANOS = re.compile(r"(\.\d{6})\d+")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_bytes(size: int) -> str:
    gb = size / (1024 * 1024 * 1024)
    return f"{gb:.1f} GB"


class Message(BaseModel):
    id: str = Field(default_factory=generate_id)
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    def to_chat_payload(self) -> dict:
        return {"role": self.role, "content": self.content}


class Session(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    messages: list[Message] = Field(default_factory=list)
    model: str = ""
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc_stamps(cls, value: datetime) -> datetime:
        # records written without an offset are treated as UTC
        return as_utc(value)

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ModelDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    size_bytes: int = Field(default=0, alias="size")
    modified_at: datetime | None = None
    remote_host: str | None = None

    @field_validator("modified_at", mode="before")
    @classmethod
    def _trim_nanoseconds(cls, value):
        # Ollama reports nanosecond precision
        if isinstance(value, str):
            return _NANOS.sub(r"\1", value)
        return value

    @property
    def size_label(self) -> str:
        return format_bytes(self.size_bytes)

    @property
    def is_remote(self) -> bool:
        return bool(self.remote_host)


class TitleSettings(BaseModel):
    enabled: bool = True
    model: str = ""
    prompt: str = DEFAULT_TITLE_PROMPT


class AuthUser(BaseModel):
    id: str
    email: str | None = None
    created_at: str | None = None


class AuthSession(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None
    user: AuthUser

    def is_expired(self, now: datetime | None = None, leeway: int = 30) -> bool:
        if self.expires_at is None:
            return False
        now = now or utc_now()
        return now.timestamp() + leeway >= self.expires_at
