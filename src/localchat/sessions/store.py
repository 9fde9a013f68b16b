import logging
from datetime import datetime, timedelta
from typing import Sequence

from pydantic import ValidationError as PydanticValidationError

from common.ids import generate_id
from localchat.errors import PersistenceError, Result, ValidationError
from localchat.models import Message, Session, utc_now
from localchat.sessions.titles import TitleGenerator, fallback_title
from localchat.storage import CHATS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"


def _next_updated_at(previous: datetime | None) -> datetime:
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class SessionStore:
    """Sole writer of the persisted session collection.

    Sessions live as one list under the ``chats`` key; each save replaces a
    record wholesale in a single write.
    """

    def __init__(self, store: KeyValueStore, titles: TitleGenerator):
        self.store = store
        self.titles = titles

    def _load_records(self) -> list[dict]:
        records = self.store.get(CHATS_KEY, [])
        if not isinstance(records, list):
            raise PersistenceError(f"Stored '{CHATS_KEY}' is not a list")
        return records

    def _load(self) -> list[Session]:
        sessions: list[Session] = []
        for record in self._load_records():
            try:
                sessions.append(Session.model_validate(record))
            except PydanticValidationError as e:
                logger.warning(f"Skipping unreadable session record: {e}")
        return sessions

    def list_sessions(self) -> Result[list[Session]]:
        try:
            sessions = self._load()
        except PersistenceError as e:
            logger.error(f"Failed to get chats: {e}")
            return Result.failure(e, value=[])
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return Result.success(sessions)

    def get_session(self, session_id: str) -> Result[Session | None]:
        try:
            sessions = self._load()
        except PersistenceError as e:
            return Result.failure(e)
        for session in sessions:
            if session.id == session_id:
                return Result.success(session)
        return Result.success(None)

    def _resolve_title(
        self,
        transcript: Sequence[Message],
        existing: Session | None,
        model: str,
        is_new_session: bool,
    ) -> str:
        if existing is not None:
            return existing.title
        first_user = next((m for m in transcript if m.role == "user"), None)
        if first_user is None:
            return DEFAULT_TITLE
        if is_new_session:
            return self.titles.generate(first_user.content, model)
        return fallback_title(first_user.content)

    def _save(
        self,
        transcript: Sequence[Message],
        session_id: str | None,
        model: str,
        is_new_session: bool,
    ) -> Session:
        if not transcript:
            raise ValidationError("Cannot save a session without messages")

        current = self._load()
        existing = None
        if session_id is not None:
            existing = next((s for s in current if s.id == session_id), None)
            if existing is None and not is_new_session:
                logger.warning(f"Session {session_id} not found, creating it with a fallback title")

        # Title generation may call the model; the collection is re-read below.
        title = self._resolve_title(transcript, existing, model, is_new_session)

        records = self._load_records()
        known_ids = {r.get("id") for r in records if isinstance(r, dict)}
        if session_id is None:
            session_id = generate_id()
            while session_id in known_ids:
                session_id = generate_id()

        now = utc_now()
        session = Session(
            id=session_id,
            title=title,
            messages=list(transcript),
            model=model,
            created_at=existing.created_at if existing else now,
            updated_at=_next_updated_at(existing.updated_at if existing else None),
        )

        record = session.to_record()
        index = next(
            (i for i, r in enumerate(records) if isinstance(r, dict) and r.get("id") == session_id),
            None,
        )
        if index is None:
            records.insert(0, record)
        else:
            records[index] = record
        self.store.set(CHATS_KEY, records)
        logger.debug(f"Saved session {session_id} ({len(transcript)} messages)")
        return session

    def save_session(
        self,
        transcript: Sequence[Message],
        session_id: str | None,
        model: str,
        is_new_session: bool,
    ) -> Result[str]:
        try:
            session = self._save(transcript, session_id, model, is_new_session)
        except ValidationError as e:
            return Result.failure(e)
        except PersistenceError as e:
            logger.error(f"Failed to save chat: {e}")
            return Result.failure(e)
        return Result.success(session.id)

    def delete_session(self, session_id: str) -> Result[bool]:
        try:
            records = self._load_records()
            remaining = [r for r in records if not (isinstance(r, dict) and r.get("id") == session_id)]
            if len(remaining) == len(records):
                return Result.success(False)
            self.store.set(CHATS_KEY, remaining)
        except PersistenceError as e:
            logger.error(f"Failed to delete chat: {e}")
            return Result.failure(e, value=False)
        logger.info(f"Deleted session {session_id}")
        return Result.success(True)
