from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

from localchat.app import ChatApp
from localchat.config import AppConfig
from localchat.errors import ConfigError
from localchat.runtime.builtins import format_session_line
from localchat.runtime.repl import ChatREPL
from localchat.sessions.titles import get_default_title_prompt

logger = logging.getLogger(__name__)


def main() -> int:
    load_dotenv()
    return _main(sys.argv[1:])


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        payload = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(verbose: bool = False, quiet: bool = False, log_format: str = "text") -> None:
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    if log_format == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="localchat", description="localchat - chat with local Ollama models"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-q", "--quiet", action="store_true")
    parser.add_argument("--log-format", default="text", choices=["text", "json"])
    parser.add_argument("--data-dir", default=None, help="Directory holding store.json")
    parser.add_argument("--ollama-url", default=None, help="Ollama API base URL")
    parser.add_argument(
        "--ephemeral", action="store_true", help="Keep history in memory only"
    )
    subparsers = parser.add_subparsers(dest="command", required=False)

    repl = subparsers.add_parser("repl", help="Start interactive chat REPL")
    repl.add_argument("--model", default=None, help="Chat model (defaults to first installed)")
    repl.add_argument("--session", default=None, help="Open an existing chat id")
    repl.add_argument("--message", "-m", help="Single prompt (non-interactive)")

    subparsers.add_parser("models", help="List installed models")

    sessions = subparsers.add_parser("sessions", help="List saved chats")
    sessions.add_argument("--json", action="store_true", help="Print raw session records")
    sessions.add_argument("--limit", type=int, default=None)

    show = subparsers.add_parser("show", help="Print one chat transcript")
    show.add_argument("session_id")

    delete = subparsers.add_parser("delete", help="Delete a saved chat")
    delete.add_argument("session_id")

    titles = subparsers.add_parser("title-settings", help="Show or change title generation")
    toggle = titles.add_mutually_exclusive_group()
    toggle.add_argument("--enable", action="store_true")
    toggle.add_argument("--disable", action="store_true")
    titles.add_argument("--model", default=None, help="Title model ('' = use chat model)")
    titles.add_argument("--prompt", default=None, help="Prompt template with {message}")
    titles.add_argument("--reset", action="store_true", help="Restore default settings")
    titles.add_argument(
        "--show-default", action="store_true", help="Print the built-in prompt"
    )

    for name, help_text in (("login", "Sign in"), ("signup", "Create an account")):
        auth = subparsers.add_parser(name, help=help_text)
        auth.add_argument("email")
        auth.add_argument("--password", default=None, help="Read from prompt when omitted")

    subparsers.add_parser("logout", help="Sign out")
    subparsers.add_parser("whoami", help="Show the signed-in user")

    return parser


def _build_app(args: argparse.Namespace) -> ChatApp:
    config = AppConfig.from_env()
    if args.data_dir:
        config.data_dir = args.data_dir
    if args.ollama_url:
        config.gateway.base_url = args.ollama_url
    if args.ephemeral:
        config.ephemeral = True
    model = getattr(args, "model", None)
    if args.command in (None, "repl") and model:
        config.default_model = model
    return ChatApp.from_config(config)


def _main(argv: list[str]) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet, args.log_format)

    try:
        app = _build_app(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    handlers = {
        "repl": _cmd_repl,
        "models": _cmd_models,
        "sessions": _cmd_sessions,
        "show": _cmd_show,
        "delete": _cmd_delete,
        "title-settings": _cmd_title_settings,
        "login": _cmd_login,
        "signup": _cmd_signup,
        "logout": _cmd_logout,
        "whoami": _cmd_whoami,
    }
    cmd = args.command or "repl"
    try:
        return handlers[cmd](app, args)
    finally:
        app.close()


def _cmd_repl(app: ChatApp, args: argparse.Namespace) -> int:
    session_id = getattr(args, "session", None)
    message = getattr(args, "message", None)
    repl = ChatREPL(app)

    if session_id:
        result = app.chat.open_session(session_id)
        if not result.ok:
            print(f"Error: {result.error.message}", file=sys.stderr)
            return 1

    if message:
        if not app.chat.model:
            app.chat.refresh_models()
        result = app.chat.send(message)
        if not result.ok:
            print(f"Error: {result.error.message}", file=sys.stderr)
            return 1
        print(result.value.assistant_message.content)
        return 1 if result.value.failed else 0

    repl.run()
    return 0


def _cmd_models(app: ChatApp, args: argparse.Namespace) -> int:
    result = app.gateway.list_models()
    if not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1
    for model in result.value:
        modified = model.modified_at.strftime("%Y-%m-%d") if model.modified_at else "-"
        print(f"{model.name}\t{model.size_label}\t{modified}")
    return 0


def _cmd_sessions(app: ChatApp, args: argparse.Namespace) -> int:
    result = app.sessions.list_sessions()
    if not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1
    sessions = result.value
    if args.limit is not None:
        sessions = sessions[: args.limit]
    if args.json:
        print(json.dumps([s.to_record() for s in sessions], indent=2, ensure_ascii=False))
        return 0
    if not sessions:
        print("No chats yet")
        return 0
    for session in sessions:
        print(format_session_line(session))
    return 0


def _cmd_show(app: ChatApp, args: argparse.Namespace) -> int:
    result = app.sessions.get_session(args.session_id)
    if not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1
    session = result.value
    if session is None:
        print(f"Error: Session not found: {args.session_id}", file=sys.stderr)
        return 1
    print(f"# {session.title}  ({session.model})")
    for message in session.messages:
        print(f"\n[{message.role}] {message.content}")
    return 0


def _cmd_delete(app: ChatApp, args: argparse.Namespace) -> int:
    result = app.sessions.delete_session(args.session_id)
    if not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1
    print("Deleted" if result.value else "Not found")
    return 0


def _cmd_title_settings(app: ChatApp, args: argparse.Namespace) -> int:
    if args.show_default:
        print(get_default_title_prompt())
        return 0

    store = app.title_settings
    if args.reset:
        result = store.reset()
    else:
        settings = store.get().value
        updates: dict = {}
        if args.enable or args.disable:
            updates["enabled"] = bool(args.enable)
        if args.model is not None:
            updates["model"] = args.model
        if args.prompt is not None:
            updates["prompt"] = args.prompt
        result = store.set(settings.model_copy(update=updates)) if updates else None

    if result is not None and not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1

    settings = store.get().value
    print(json.dumps(settings.model_dump(), indent=2, ensure_ascii=False))
    return 0


def _read_password(args: argparse.Namespace) -> str:
    return args.password if args.password is not None else getpass.getpass("Password: ")


def _cmd_login(app: ChatApp, args: argparse.Namespace) -> int:
    result = app.auth.login(args.email, _read_password(args))
    if not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1
    print(f"Signed in as {result.value.email or result.value.id}")
    return 0


def _cmd_signup(app: ChatApp, args: argparse.Namespace) -> int:
    result = app.auth.signup(args.email, _read_password(args))
    if not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1
    print(f"Account created for {result.value.email or result.value.id}")
    return 0


def _cmd_logout(app: ChatApp, args: argparse.Namespace) -> int:
    result = app.auth.logout()
    if not result.ok:
        print(f"Warning: {result.error.message}", file=sys.stderr)
    print("Signed out")
    return 0


def _cmd_whoami(app: ChatApp, args: argparse.Namespace) -> int:
    result = app.auth.get_session()
    if not result.ok:
        print(f"Error: {result.error.message}", file=sys.stderr)
        return 1
    if result.value is None:
        print("Not signed in")
        return 1
    print(result.value.user.email or result.value.user.id)
    return 0
