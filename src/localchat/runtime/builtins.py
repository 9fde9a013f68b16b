import getpass

from localchat.models import Session
from localchat.sessions.titles import get_default_title_prompt


def format_session_line(session: Session, current_id: str | None = None) -> str:
    marker = "*" if session.id == current_id else " "
    updated = session.updated_at.strftime("%Y-%m-%d %H:%M")
    return f" {marker} {session.id}  {updated}  {session.title}  ({len(session.messages)} msgs)"


class BuiltinCommands:
    def __init__(self, app, read_password=getpass.getpass):
        self.app = app
        self.read_password = read_password
        self._handlers = {
            "quit": self.cmd_quit,
            "exit": self.cmd_quit,
            "help": self.cmd_help,
            "new": self.cmd_new,
            "sessions": self.cmd_sessions,
            "open": self.cmd_open,
            "delete": self.cmd_delete,
            "models": self.cmd_models,
            "model": self.cmd_model,
            "title": self.cmd_title,
            "login": self.cmd_login,
            "signup": self.cmd_signup,
            "logout": self.cmd_logout,
            "whoami": self.cmd_whoami,
        }

    @property
    def chat(self):
        return self.app.chat

    def list_commands(self) -> list[str]:
        return sorted(self._handlers.keys())

    def has_command(self, name: str) -> bool:
        return name in self._handlers

    def handle(self, name: str, args: str) -> bool:
        handler = self._handlers.get(name)
        if not handler:
            return True
        return handler(args)

    def cmd_quit(self, args: str) -> bool:
        print("👋 Goodbye!")
        return False

    def cmd_help(self, args: str) -> bool:
        print("\nCommands:")
        for name in self.list_commands():
            print(f"  /{name}")
        print()
        return True

    def cmd_new(self, args: str) -> bool:
        result = self.chat.new_session()
        if not result.ok:
            print(f"❌ {result.error.message}")
        else:
            print("✅ Started a new chat")
        return True

    def cmd_sessions(self, args: str) -> bool:
        result = self.app.sessions.list_sessions()
        if not result.ok:
            print(f"❌ {result.error.message}")
            return True
        if not result.value:
            print("No chats yet")
            return True
        print("Chats:")
        for session in result.value:
            print(format_session_line(session, self.chat.session_id))
        return True

    def cmd_open(self, args: str) -> bool:
        if not args:
            print("Usage: /open <id>")
            return True
        result = self.chat.open_session(args)
        if not result.ok:
            print(f"❌ {result.error.message}")
            return True
        print(f"✅ Opened chat {args}")
        for message in self.chat.transcript:
            print(f"\n[{message.role}] {message.content}")
        return True

    def cmd_delete(self, args: str) -> bool:
        if not args:
            print("Usage: /delete <id>")
            return True
        result = self.chat.delete_session(args)
        if not result.ok:
            print(f"❌ {result.error.message}")
        elif result.value:
            print(f"✅ Deleted chat {args}")
        else:
            print(f"Chat {args} not found")
        return True

    def cmd_models(self, args: str) -> bool:
        result = self.chat.refresh_models()
        if not result.ok:
            print(f"❌ {result.error.message}")
            return True
        if not result.value:
            print("No models installed")
            return True
        print("Models:")
        for model in result.value:
            marker = "*" if model.name == self.chat.model else " "
            print(f" {marker} {model.name}  {model.size_label}")
        return True

    def cmd_model(self, args: str) -> bool:
        if not args:
            print(f"Current model: {self.chat.model or '(none)'}")
            return True
        self.chat.select_model(args)
        print(f"✅ Switched to model: {args}")
        return True

    def cmd_title(self, args: str) -> bool:
        store = self.app.title_settings
        settings = store.get().value
        action, _, rest = args.partition(" ")
        rest = rest.strip()

        if not action:
            print(f"Title generation: {'on' if settings.enabled else 'off'}")
            print(f"Title model: {settings.model or '(chat model)'}")
            print(f"Prompt:\n{settings.prompt}")
            return True
        if action == "default":
            print(get_default_title_prompt())
            return True
        if action == "reset":
            result = store.reset()
        elif action in ("on", "off"):
            result = store.set(settings.model_copy(update={"enabled": action == "on"}))
        elif action == "model":
            result = store.set(settings.model_copy(update={"model": rest}))
        elif action == "prompt":
            if rest and "{message}" not in rest:
                print("⚠️  Prompt has no {message} placeholder")
            result = store.set(settings.model_copy(update={"prompt": rest}))
        else:
            print("Usage: /title [on|off|model <name>|prompt <text>|reset|default]")
            return True

        if not result.ok:
            print(f"❌ {result.error.message}")
        else:
            print("✅ Title settings saved")
        return True

    def _credentials(self, args: str) -> tuple[str, str] | None:
        email = args.strip()
        if not email:
            return None
        password = self.read_password("Password: ")
        return email, password

    def cmd_login(self, args: str) -> bool:
        credentials = self._credentials(args)
        if credentials is None:
            print("Usage: /login <email>")
            return True
        result = self.app.auth.login(*credentials)
        if not result.ok:
            print(f"❌ {result.error.message}")
        else:
            print(f"✅ Signed in as {result.value.email or result.value.id}")
        return True

    def cmd_signup(self, args: str) -> bool:
        credentials = self._credentials(args)
        if credentials is None:
            print("Usage: /signup <email>")
            return True
        result = self.app.auth.signup(*credentials)
        if not result.ok:
            print(f"❌ {result.error.message}")
        else:
            print(f"✅ Account created for {result.value.email or result.value.id}")
        return True

    def cmd_logout(self, args: str) -> bool:
        result = self.app.auth.logout()
        if not result.ok:
            print(f"⚠️  {result.error.message}")
        print("✅ Signed out")
        return True

    def cmd_whoami(self, args: str) -> bool:
        result = self.app.auth.get_session()
        if not result.ok:
            print(f"❌ {result.error.message}")
        elif result.value is None:
            print("Not signed in")
        else:
            user = result.value.user
            print(f"Signed in as {user.email or user.id}")
        return True
