from __future__ import annotations

import copy
import threading
from typing import Any

from geoask.core.orchestration.schemas import PendingChoiceContext

from .base import ChatMessage, SessionStores


def _valid(session_id: str | None) -> bool:
    return bool(session_id and session_id.strip())


class InMemoryChatMemoryStore:
    def __init__(self) -> None:
        self._messages: dict[str, list[ChatMessage]] = {}
        self._lock = threading.Lock()

    def get_messages(self, session_id: str) -> list[ChatMessage]:
        with self._lock:
            return list(self._messages.get(session_id, []))

    def append_message(self, session_id: str, message: ChatMessage) -> None:
        self.append_messages(session_id, [message])

    def append_messages(self, session_id: str, messages: list[ChatMessage]) -> None:
        if not _valid(session_id) or not messages:
            return
        with self._lock:
            self._messages.setdefault(session_id, []).extend(messages)

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._messages.pop(session_id, None)


class InMemoryPendingChoiceStore:
    def __init__(self) -> None:
        self._pending: dict[str, PendingChoiceContext] = {}
        self._lock = threading.Lock()

    def consume(self, session_id: str) -> PendingChoiceContext | None:
        if not _valid(session_id):
            return None
        with self._lock:
            return self._pending.pop(session_id, None)

    def peek(self, session_id: str) -> PendingChoiceContext | None:
        if not _valid(session_id):
            return None
        with self._lock:
            return self._pending.get(session_id)

    def save(self, session_id: str, context: PendingChoiceContext) -> None:
        if not _valid(session_id) or context is None:
            return
        with self._lock:
            self._pending[session_id] = context

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._pending.pop(session_id, None)


class InMemorySelectionMemoryStore:
    def __init__(self) -> None:
        self._selections: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> dict[str, Any] | None:
        if not _valid(session_id):
            return None
        with self._lock:
            selection = self._selections.get(session_id)
            return copy.deepcopy(selection) if selection is not None else None

    def save(self, session_id: str, selection: dict[str, Any]) -> None:
        if not _valid(session_id) or not selection:
            return
        with self._lock:
            self._selections[session_id] = copy.deepcopy(selection)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._selections.pop(session_id, None)


def in_memory_session_stores() -> SessionStores:
    return SessionStores(
        chat_memory=InMemoryChatMemoryStore(),
        pending_choices=InMemoryPendingChoiceStore(),
        selections=InMemorySelectionMemoryStore(),
    )
