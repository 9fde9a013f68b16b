from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum

from common.events import (
    ErrorEvent,
    EventCallback,
    EventEmitter,
    MessageAppendedEvent,
    SessionSavedEvent,
    SessionSwitchedEvent,
    StateChangedEvent,
)
from localchat.errors import ErrorInfo, LocalChatError, Result, ValidationError
from localchat.models import Message, ModelDescriptor, Role
from localchat.sessions.store import SessionStore

logger = logging.getLogger(__name__)

EMPTY_RESPONSE = "No response"


class ChatState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"


TRANSITIONS: dict[ChatState, frozenset[ChatState]] = {
    ChatState.IDLE: frozenset({ChatState.SENDING}),
    ChatState.SENDING: frozenset({ChatState.COMPLETED, ChatState.FAILED}),
    ChatState.COMPLETED: frozenset({ChatState.IDLE}),
    ChatState.FAILED: frozenset({ChatState.IDLE}),
}


class InvalidTransition(ValidationError):
    def __init__(self, current: ChatState, target: ChatState):
        super().__init__(f"Cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


@dataclass(frozen=True, slots=True)
class TurnResult:
    session_id: str | None
    user_message: Message
    assistant_message: Message
    failed: bool
    error: ErrorInfo | None = None


def error_content(error: ErrorInfo | None) -> str:
    return f"Error: {error.message if error else 'Failed to send message'}"


class ChatOrchestrator:
    """Per-turn control loop over the open transcript.

    Owns the in-memory transcript and current session id; every turn is
    persisted twice through the SessionStore (after the user message and
    after the assistant reply or error).
    """

    def __init__(
        self,
        store: SessionStore,
        gateway,
        *,
        model: str = "",
        on_event: EventCallback = None,
    ):
        self.store = store
        self.gateway = gateway
        self.model = model
        self.emitter = EventEmitter(on_event)
        self.transcript: list[Message] = []
        self.session_id: str | None = None
        self.models: list[ModelDescriptor] | None = None
        self.model_error: str = ""
        self._state = ChatState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state is ChatState.IDLE

    def _transition(self, target: ChatState) -> None:
        if target not in TRANSITIONS[self._state]:
            raise InvalidTransition(self._state, target)
        previous = self._state
        self._state = target
        logger.debug(f"Chat state {previous.value} -> {target.value}")
        self.emitter.emit(StateChangedEvent(previous=previous.value, current=target.value))

    def _append(self, role: Role, content: str) -> Message:
        message = Message(role=role, content=content)
        self.transcript = [*self.transcript, message]
        self.emitter.emit(
            MessageAppendedEvent(
                session_id=self.session_id,
                message_id=message.id,
                role=role,
                content=content,
            )
        )
        return message

    def _persist(self, is_new_session: bool) -> None:
        result = self.store.save_session(
            self.transcript, self.session_id, self.model, is_new_session
        )
        if not result.ok:
            logger.error(f"Failed to persist session: {result.error.message}")
            self.emitter.emit(ErrorEvent(message=result.error.message, source="store"))
            return
        if self.session_id is None:
            self.session_id = result.value
        self.emitter.emit(SessionSavedEvent(session_id=result.value))

    def _begin_send(self, text: str) -> None:
        with self._lock:
            if not self.is_idle:
                raise ValidationError("A message is already being sent")
            if not text:
                raise ValidationError("Message is empty")
            if not self.model:
                raise ValidationError("No model selected")
            self._transition(ChatState.SENDING)

    def send(self, text: str) -> Result[TurnResult]:
        text = (text or "").strip()
        try:
            self._begin_send(text)
        except ValidationError as e:
            logger.info(f"Send rejected: {e}")
            return Result.failure(e)

        try:
            is_new_session = self.session_id is None
            user_message = self._append("user", text)
            self._persist(is_new_session=is_new_session)

            try:
                reply = self.gateway.complete(self.model, self.transcript)
            except LocalChatError as e:
                reply = Result.failure(e)
            if reply.ok:
                self._transition(ChatState.COMPLETED)
                content = reply.value or EMPTY_RESPONSE
            else:
                self._transition(ChatState.FAILED)
                content = error_content(reply.error)
                self.emitter.emit(ErrorEvent(message=reply.error.message, source="gateway"))

            assistant_message = self._append("assistant", content)
            self._persist(is_new_session=False)
            return Result.success(
                TurnResult(
                    session_id=self.session_id,
                    user_message=user_message,
                    assistant_message=assistant_message,
                    failed=not reply.ok,
                    error=reply.error,
                )
            )
        finally:
            if self._state is ChatState.SENDING:
                self._transition(ChatState.FAILED)
            self._transition(ChatState.IDLE)

    def _require_idle(self, action: str) -> None:
        if not self.is_idle:
            raise ValidationError(f"Cannot {action} while a message is being sent")

    def new_session(self) -> Result[None]:
        try:
            self._require_idle("start a new chat")
        except ValidationError as e:
            return Result.failure(e)
        self.transcript = []
        self.session_id = None
        self.emitter.emit(SessionSwitchedEvent(session_id=None))
        return Result.success(None)

    def open_session(self, session_id: str) -> Result[str]:
        try:
            self._require_idle("switch chats")
        except ValidationError as e:
            return Result.failure(e)
        found = self.store.get_session(session_id)
        if not found.ok:
            return Result(error=found.error)
        session = found.value
        if session is None:
            return Result.failure(ValidationError(f"Session not found: {session_id}"))

        self.transcript = list(session.messages)
        self.session_id = session.id
        if session.model and self._model_available(session.model):
            self.model = session.model
        self.emitter.emit(SessionSwitchedEvent(session_id=session.id))
        return Result.success(session.id)

    def delete_session(self, session_id: str) -> Result[bool]:
        if session_id == self.session_id:
            try:
                self._require_idle("delete the open chat")
            except ValidationError as e:
                return Result.failure(e)
        result = self.store.delete_session(session_id)
        if result.ok and session_id == self.session_id:
            self.new_session()
        return result

    def _model_available(self, name: str) -> bool:
        if self.models is None:
            return True
        return any(m.name == name for m in self.models)

    def select_model(self, name: str) -> None:
        self.model = name

    def refresh_models(self) -> Result[list[ModelDescriptor]]:
        result = self.gateway.list_models()
        if not result.ok:
            self.model_error = result.error.message
            return result
        self.model_error = ""
        self.models = list(result.value or [])
        if self.models and not self.model:
            self.model = self.models[0].name
        return result
