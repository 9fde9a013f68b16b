import os
import logging
from dataclasses import dataclass, field
from pathlib import Path

from localchat.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434/api"
DEPLOYMENTS = ("local", "hosted")


def get_optional_env(name: str, default: str, *fallbacks: str) -> str:
    for key in (name, *fallbacks):
        value = os.environ.get(key)
        if value:
            return value
    return default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


@dataclass
class GatewayConfig:
    base_url: str = field(
        default_factory=lambda: get_optional_env("LOCALCHAT_OLLAMA_URL", DEFAULT_OLLAMA_URL)
    )
    request_timeout: float = field(
        default_factory=lambda: _float_env("LOCALCHAT_REQUEST_TIMEOUT", 120.0)
    )
    connect_timeout: float = 5.0


@dataclass
class AuthConfig:
    url: str = field(
        default_factory=lambda: get_optional_env("SUPABASE_URL", "", "VITE_SUPABASE_URL")
    )
    anon_key: str = field(
        default_factory=lambda: get_optional_env(
            "SUPABASE_ANON_KEY", "", "VITE_SUPABASE_ANON_KEY"
        )
    )
    timeout: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(self.url and self.anon_key)


@dataclass
class AppConfig:
    data_dir: str = field(
        default_factory=lambda: get_optional_env(
            "LOCALCHAT_DATA_DIR", str(Path.home() / ".localchat")
        )
    )
    deployment: str = field(
        default_factory=lambda: get_optional_env("LOCALCHAT_DEPLOYMENT", "local")
    )
    default_model: str = field(
        default_factory=lambda: get_optional_env("LOCALCHAT_MODEL", "")
    )
    ephemeral: bool = False
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls()

    @property
    def store_path(self) -> Path:
        return Path(self.data_dir).expanduser() / "store.json"

    @property
    def hosted(self) -> bool:
        return self.deployment == "hosted"

    def validate(self) -> None:
        if self.deployment not in DEPLOYMENTS:
            raise ConfigError(
                f"deployment must be one of {', '.join(DEPLOYMENTS)}, got {self.deployment!r}"
            )
        if self.gateway.request_timeout <= 0:
            raise ConfigError("request_timeout must be > 0")
        if self.gateway.connect_timeout <= 0:
            raise ConfigError("connect_timeout must be > 0")
        if not self.gateway.base_url.startswith(("http://", "https://")):
            raise ConfigError(f"Invalid inference gateway URL: {self.gateway.base_url}")
        if self.hosted and not self.auth.configured:
            raise ConfigError(
                "Hosted deployment requires SUPABASE_URL and SUPABASE_ANON_KEY"
            )
        logger.debug("Configuration validated successfully")
