# store.py
# Session Store: persistence contract plus an in-memory implementation.
#
# The engine only writes through this contract; storage format and lifetime
# belong to whoever implements it. InMemorySessionStore keeps everything for
# the life of the process and is thread-safe across sessions.

import threading
import time
from typing import TYPE_CHECKING, Literal, Protocol

from pydantic import BaseModel, Field

from plan_loop.models import CacheBreakpoint, ConversationMessage, ExecutedStepRecord

if TYPE_CHECKING:
    from plan_loop.session import SessionState

SessionStatus = Literal["running", "completed", "error"]


class StoredSession(BaseModel):
    id: str
    goal: str
    status: SessionStatus = "running"
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    completed_at: float | None = None
    recovery_attempts: int = 0
    phase_number: int = 1
    is_in_recovery: bool = False
    final_success: bool | None = None
    final_error: str | None = None


class CacheMetadata(BaseModel):
    session_id: str
    cached_context: str | None = None
    breakpoints: list[CacheBreakpoint] = Field(default_factory=list)
    last_cache_hit: float | None = None


class SessionRecord(BaseModel):
    session: StoredSession
    messages: list[ConversationMessage] = Field(default_factory=list)
    steps: list[ExecutedStepRecord] = Field(default_factory=list)


class SessionStore(Protocol):
    def create(self, session: "SessionState") -> StoredSession: ...

    def get(self, session_id: str) -> SessionRecord | None: ...

    def update(self, session: "SessionState") -> StoredSession: ...

    def add_message(self, session_id: str, message: ConversationMessage) -> None: ...

    def add_step(self, session_id: str, record: ExecutedStepRecord) -> None: ...

    def get_cache_metadata(self, session_id: str) -> CacheMetadata | None: ...

    def update_cache_metadata(self, metadata: CacheMetadata) -> None: ...

    def list(self) -> list[StoredSession]: ...


def _snapshot(session: "SessionState", stored: StoredSession) -> StoredSession:
    status: SessionStatus = "running"
    if session.is_complete:
        status = "completed" if session.final_success else "error"
    now = time.time()
    return stored.model_copy(
        update={
            "status": status,
            "updated_at": now,
            "completed_at": now if session.is_complete else None,
            "recovery_attempts": session.recovery_attempts,
            "phase_number": session.phase_number,
            "is_in_recovery": session.is_in_recovery,
            "final_success": session.final_success if session.is_complete else None,
            "final_error": session.final_error,
        }
    )


class InMemorySessionStore:
    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._cache: dict[str, CacheMetadata] = {}
        self._lock = threading.Lock()

    def create(self, session: "SessionState") -> StoredSession:
        stored = StoredSession(id=session.session_id, goal=session.goal)
        with self._lock:
            if session.session_id in self._records:
                raise KeyError(f"Session {session.session_id} already exists.")
            self._records[session.session_id] = SessionRecord(session=stored)
            self._cache[session.session_id] = CacheMetadata(
                session_id=session.session_id, cached_context=session.reference_context
            )
        return stored

    def get(self, session_id: str) -> SessionRecord | None:
        with self._lock:
            record = self._records.get(session_id)
            return record.model_copy(deep=True) if record else None

    def update(self, session: "SessionState") -> StoredSession:
        with self._lock:
            record = self._require(session.session_id)
            record.session = _snapshot(session, record.session)
            return record.session

    def add_message(self, session_id: str, message: ConversationMessage) -> None:
        with self._lock:
            self._require(session_id).messages.append(message.model_copy(deep=True))

    def add_step(self, session_id: str, record: ExecutedStepRecord) -> None:
        with self._lock:
            self._require(session_id).steps.append(record)

    def get_cache_metadata(self, session_id: str) -> CacheMetadata | None:
        with self._lock:
            return self._cache.get(session_id)

    def update_cache_metadata(self, metadata: CacheMetadata) -> None:
        with self._lock:
            self._require(metadata.session_id)
            self._cache[metadata.session_id] = metadata

    def list(self) -> list[StoredSession]:
        with self._lock:
            sessions = [record.session for record in self._records.values()]
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    def _require(self, session_id: str) -> SessionRecord:
        record = self._records.get(session_id)
        if record is None:
            raise KeyError(f"Unknown session {session_id}.")
        return record
