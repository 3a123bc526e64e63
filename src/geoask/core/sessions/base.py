from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol

from pydantic import BaseModel

from geoask.core.orchestration.schemas import PendingChoiceContext


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatMemoryStore(Protocol):
    def get_messages(self, session_id: str) -> list[ChatMessage]: ...

    def append_message(self, session_id: str, message: ChatMessage) -> None: ...

    def append_messages(self, session_id: str, messages: list[ChatMessage]) -> None: ...

    def delete_session(self, session_id: str) -> None: ...


class PendingChoiceStore(Protocol):
    def consume(self, session_id: str) -> PendingChoiceContext | None: ...

    def peek(self, session_id: str) -> PendingChoiceContext | None: ...

    def save(self, session_id: str, context: PendingChoiceContext) -> None: ...

    def clear(self, session_id: str) -> None: ...


class SelectionMemoryStore(Protocol):
    def get(self, session_id: str) -> dict[str, Any] | None: ...

    def save(self, session_id: str, selection: dict[str, Any]) -> None: ...

    def clear(self, session_id: str) -> None: ...


@dataclass
class SessionStores:
    chat_memory: ChatMemoryStore
    pending_choices: PendingChoiceStore
    selections: SelectionMemoryStore

    def clear(self, session_id: str) -> None:
        self.chat_memory.delete_session(session_id)
        self.pending_choices.clear(session_id)
        self.selections.clear(session_id)
