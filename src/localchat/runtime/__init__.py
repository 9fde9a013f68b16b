from localchat.runtime.orchestrator import ChatOrchestrator, ChatState, TurnResult

__all__ = ["ChatOrchestrator", "ChatState", "TurnResult"]
