import json

import pytest

from localchat.app import ChatApp
from localchat.cli import _main
from localchat.config import DEFAULT_OLLAMA_URL, AppConfig, AuthConfig, GatewayConfig
from localchat.errors import ConfigError
from localchat.gateways.auth import AuthGateway
from localchat.models import TitleSettings
from localchat.runtime.builtins import BuiltinCommands
from localchat.runtime.repl import ChatREPL
from localchat.runtime.router import InputRouter
from localchat.storage import JsonFileStore, MemoryStore


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "LOCALCHAT_OLLAMA_URL",
        "LOCALCHAT_REQUEST_TIMEOUT",
        "LOCALCHAT_DATA_DIR",
        "LOCALCHAT_DEPLOYMENT",
        "LOCALCHAT_MODEL",
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "VITE_SUPABASE_URL",
        "VITE_SUPABASE_ANON_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def app(kv_store, gateway, title_settings, titles, session_store, orchestrator):
    config = AppConfig(data_dir="unused")
    return ChatApp(
        config=config,
        store=kv_store,
        gateway=gateway,
        auth=AuthGateway(AuthConfig(url="", anon_key=""), kv_store),
        title_settings=title_settings,
        titles=titles,
        sessions=session_store,
        chat=orchestrator,
    )


class TestConfig:
    def test_defaults(self):
        config = AppConfig()
        assert config.gateway.base_url == "http://127.0.0.1:11434/api"
        assert config.gateway.request_timeout == 120.0
        assert config.deployment == "local"
        config.validate()

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LOCALCHAT_OLLAMA_URL", "http://10.0.0.2:11434/api")
        monkeypatch.setenv("LOCALCHAT_REQUEST_TIMEOUT", "30")
        monkeypatch.setenv("LOCALCHAT_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("VITE_SUPABASE_URL", "https://p.supabase.co")
        config = AppConfig.from_env()
        assert config.gateway.base_url == "http://10.0.0.2:11434/api"
        assert config.gateway.request_timeout == 30.0
        assert config.store_path == tmp_path / "store.json"
        assert config.auth.url == "https://p.supabase.co"

    def test_bad_timeout_env(self, monkeypatch):
        monkeypatch.setenv("LOCALCHAT_REQUEST_TIMEOUT", "soon")
        with pytest.raises(ConfigError):
            AppConfig()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"deployment": "cloud"},
            {"gateway": GatewayConfig(base_url=DEFAULT_OLLAMA_URL, request_timeout=0)},
            {"gateway": GatewayConfig(base_url="127.0.0.1:11434", request_timeout=5.0)},
            {"deployment": "hosted", "auth": AuthConfig(url="", anon_key="")},
        ],
    )
    def test_validate_rejects(self, overrides):
        with pytest.raises(ConfigError):
            AppConfig(**overrides).validate()

    def test_hosted_app_wires_token_provider(self):
        config = AppConfig(
            deployment="hosted",
            auth=AuthConfig(url="https://p.supabase.co", anon_key="k"),
        )
        chat_app = ChatApp.from_config(config, store=MemoryStore())
        try:
            assert chat_app.gateway.token_provider == chat_app.auth.access_token
        finally:
            chat_app.close()

    def test_ephemeral_app_uses_memory_store(self):
        chat_app = ChatApp.from_config(AppConfig(ephemeral=True))
        try:
            assert isinstance(chat_app.store, MemoryStore)
            assert chat_app.gateway.token_provider is None
        finally:
            chat_app.close()


class TestRouter:
    def test_routes(self, app):
        router = InputRouter(BuiltinCommands(app))
        assert router.route("hello").kind == "prompt"
        route = router.route("/open  abc ")
        assert (route.kind, route.name, route.args) == ("builtin", "open", "abc")
        assert router.route("/nope").kind == "unknown"


class TestBuiltins:
    def test_sessions_and_open(self, app, capsys):
        app.title_settings.set(TitleSettings(enabled=False))
        session_id = app.chat.send("Hello there").value.session_id
        builtins = BuiltinCommands(app)

        assert builtins.handle("sessions", "") is True
        out = capsys.readouterr().out
        assert session_id in out
        assert "Hello there" in out

        app.chat.new_session()
        builtins.handle("open", session_id)
        assert app.chat.session_id == session_id

    def test_title_commands(self, app):
        builtins = BuiltinCommands(app)
        builtins.handle("title", "off")
        assert app.title_settings.get().value.enabled is False
        builtins.handle("title", "model phi3")
        assert app.title_settings.get().value.model == "phi3"
        builtins.handle("title", "prompt Short name for: {message}")
        assert app.title_settings.get().value.prompt == "Short name for: {message}"
        builtins.handle("title", "reset")
        assert app.title_settings.get().value == TitleSettings()

    def test_login_reads_password(self, app, capsys):
        prompts = []
        builtins = BuiltinCommands(app, read_password=lambda p: prompts.append(p) or "pw")
        builtins.handle("login", "ada@example.com")
        assert prompts == ["Password: "]
        assert "Supabase URL" in capsys.readouterr().out

    def test_quit_stops_loop(self, app):
        assert BuiltinCommands(app).handle("quit", "") is False


class TestREPL:
    def test_run_sends_prompts_until_quit(self, app, monkeypatch, capsys):
        app.title_settings.set(TitleSettings(enabled=False))
        app.gateway.replies = ["pong"]
        inputs = iter(["ping", "/quit"])
        monkeypatch.setattr("builtins.input", lambda prompt="": next(inputs))

        ChatREPL(app).run()

        out = capsys.readouterr().out
        assert "pong" in out
        assert "Goodbye" in out
        assert len(app.sessions.list_sessions().value) == 1


class TestMain:
    def test_sessions_empty(self, tmp_path, capsys):
        assert _main(["--data-dir", str(tmp_path), "sessions"]) == 0
        assert "No chats yet" in capsys.readouterr().out

    def test_title_settings_roundtrip(self, tmp_path, capsys):
        code = _main(
            ["--data-dir", str(tmp_path), "title-settings", "--disable", "--model", "phi3"]
        )
        assert code == 0
        shown = json.loads(capsys.readouterr().out)
        assert shown["enabled"] is False
        assert shown["model"] == "phi3"
        stored = JsonFileStore(tmp_path / "store.json").get("titleSettings")
        assert stored["model"] == "phi3"

    def test_delete_missing(self, tmp_path, capsys):
        assert _main(["--data-dir", str(tmp_path), "delete", "nope"]) == 0
        assert "Not found" in capsys.readouterr().out

    def test_config_error_exit_code(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOCALCHAT_DEPLOYMENT", "hosted")
        assert _main(["--data-dir", str(tmp_path), "sessions"]) == 1
