from localchat.runtime.builtins import BuiltinCommands
from localchat.runtime.router import InputRouter


class ChatREPL:
    def __init__(self, app, builtins: BuiltinCommands | None = None):
        self.app = app
        self.builtins = builtins or BuiltinCommands(app)
        self.router = InputRouter(self.builtins)

    def send(self, text: str) -> None:
        result = self.app.chat.send(text)
        if not result.ok:
            print(f"❌ {result.error.message}")
            return
        turn = result.value
        prefix = "⚠️  " if turn.failed else ""
        print(f"\n{prefix}{turn.assistant_message.content}")

    def run(self, initial_message: str | None = None):
        chat = self.app.chat
        if chat.models is None:
            chat.refresh_models()
        if chat.model_error:
            print(f"⚠️  {chat.model_error}")
        print(f"🤖 localchat started (model: {chat.model or 'none selected'})")
        print("Commands: /help for all commands")
        print()

        if initial_message:
            self.send(initial_message)

        while True:
            try:
                user_input = input("\n> ").strip()

                if not user_input:
                    continue

                route = self.router.route(user_input)
                if route.kind == "builtin":
                    if not self.builtins.handle(route.name, route.args):
                        break
                    continue
                if route.kind == "unknown":
                    print(
                        f"Unknown command: /{route.name}. Type /help for available commands."
                    )
                    continue

                self.send(route.args)

            except KeyboardInterrupt:
                print("\n\n⚠️  Interrupted")
                break
            except EOFError:
                break
