from __future__ import annotations

import os
from pathlib import Path

from .base import ChatMemoryStore, ChatMessage, PendingChoiceStore, SelectionMemoryStore, SessionStores
from .file_store import (
    FileChatMemoryStore,
    FilePendingChoiceStore,
    FileSelectionMemoryStore,
    default_state_dir,
    file_session_stores,
)
from .memory import (
    InMemoryChatMemoryStore,
    InMemoryPendingChoiceStore,
    InMemorySelectionMemoryStore,
    in_memory_session_stores,
)


def build_session_stores(state_dir: Path | None = None) -> SessionStores:
    backend = os.getenv("GEOASK_SESSION_STORE", "memory").strip().casefold()
    if backend == "file":
        return file_session_stores(state_dir)
    if backend != "memory":
        raise ValueError(f"unsupported GEOASK_SESSION_STORE: {backend}")
    return in_memory_session_stores()


__all__ = [
    "ChatMemoryStore",
    "ChatMessage",
    "FileChatMemoryStore",
    "FilePendingChoiceStore",
    "FileSelectionMemoryStore",
    "InMemoryChatMemoryStore",
    "InMemoryPendingChoiceStore",
    "InMemorySelectionMemoryStore",
    "PendingChoiceStore",
    "SelectionMemoryStore",
    "SessionStores",
    "build_session_stores",
    "default_state_dir",
    "file_session_stores",
    "in_memory_session_stores",
]
