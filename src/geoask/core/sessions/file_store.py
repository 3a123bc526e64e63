from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from geoask.core.orchestration.schemas import PendingChoiceContext

from .base import ChatMessage, SessionStores

logger = logging.getLogger("geoask.sessions")


def default_state_dir() -> Path:
    configured = os.getenv("GEOASK_STATE_DIR")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".geoask"


class _JSONSessionFile:
    """One JSON object keyed by session id, rewritten atomically on every change."""

    def __init__(self, file_path: Path) -> None:
        self.file_path = file_path
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self.lock = threading.Lock()

    def load(self) -> dict[str, Any]:
        if not self.file_path.exists() or self.file_path.stat().st_size == 0:
            return {}
        try:
            with self.file_path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, UnicodeDecodeError):
            self._quarantine("invalid_json")
            return {}
        if not isinstance(data, dict):
            self._quarantine("not_an_object")
            return {}
        return data

    def _quarantine(self, reason: str) -> None:
        # keep the unreadable document for inspection; the next rewrite starts empty
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.file_path.with_name(f"{self.file_path.name}.corrupt-{stamp}")
        os.replace(self.file_path, target)
        logger.warning(
            "session_store_corrupt",
            extra={"extra_fields": {"path": str(self.file_path), "moved_to": str(target), "reason": reason}},
        )

    def rewrite(self, data: dict[str, Any]) -> None:
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, ensure_ascii=False)
        os.replace(tmp_path, self.file_path)


class FileChatMemoryStore:
    def __init__(self, state_dir: Path | None = None) -> None:
        self.state_dir = state_dir or default_state_dir()
        self._file = _JSONSessionFile(self.state_dir / "chat_memory.json")

    def get_messages(self, session_id: str) -> list[ChatMessage]:
        with self._file.lock:
            raw = self._file.load().get(session_id, [])
        messages: list[ChatMessage] = []
        for entry in raw if isinstance(raw, list) else []:
            try:
                messages.append(ChatMessage.model_validate(entry))
            except ValueError:
                continue
        return messages

    def append_message(self, session_id: str, message: ChatMessage) -> None:
        self.append_messages(session_id, [message])

    def append_messages(self, session_id: str, messages: list[ChatMessage]) -> None:
        if not session_id or not session_id.strip() or not messages:
            return
        with self._file.lock:
            data = self._file.load()
            history = data.get(session_id)
            if not isinstance(history, list):
                history = []
            history.extend(message.model_dump(mode="json") for message in messages)
            data[session_id] = history
            self._file.rewrite(data)

    def delete_session(self, session_id: str) -> None:
        with self._file.lock:
            data = self._file.load()
            if data.pop(session_id, None) is not None:
                self._file.rewrite(data)


class FilePendingChoiceStore:
    def __init__(self, state_dir: Path | None = None) -> None:
        self.state_dir = state_dir or default_state_dir()
        self._file = _JSONSessionFile(self.state_dir / "pending_choices.json")

    def _parse(self, raw: Any) -> PendingChoiceContext | None:
        if raw is None:
            return None
        try:
            return PendingChoiceContext.model_validate(raw)
        except ValueError:
            return None

    def consume(self, session_id: str) -> PendingChoiceContext | None:
        if not session_id or not session_id.strip():
            return None
        with self._file.lock:
            data = self._file.load()
            raw = data.pop(session_id, None)
            if raw is not None:
                self._file.rewrite(data)
        return self._parse(raw)

    def peek(self, session_id: str) -> PendingChoiceContext | None:
        if not session_id or not session_id.strip():
            return None
        with self._file.lock:
            raw = self._file.load().get(session_id)
        return self._parse(raw)

    def save(self, session_id: str, context: PendingChoiceContext) -> None:
        if not session_id or not session_id.strip() or context is None:
            return
        with self._file.lock:
            data = self._file.load()
            data[session_id] = context.model_dump(mode="json", by_alias=True)
            self._file.rewrite(data)

    def clear(self, session_id: str) -> None:
        with self._file.lock:
            data = self._file.load()
            if data.pop(session_id, None) is not None:
                self._file.rewrite(data)


class FileSelectionMemoryStore:
    def __init__(self, state_dir: Path | None = None) -> None:
        self.state_dir = state_dir or default_state_dir()
        self._file = _JSONSessionFile(self.state_dir / "selections.json")

    def get(self, session_id: str) -> dict[str, Any] | None:
        if not session_id or not session_id.strip():
            return None
        with self._file.lock:
            raw = self._file.load().get(session_id)
        return raw if isinstance(raw, dict) else None

    def save(self, session_id: str, selection: dict[str, Any]) -> None:
        if not session_id or not session_id.strip() or not selection:
            return
        with self._file.lock:
            data = self._file.load()
            data[session_id] = json.loads(json.dumps(selection, default=str))
            self._file.rewrite(data)

    def clear(self, session_id: str) -> None:
        with self._file.lock:
            data = self._file.load()
            if data.pop(session_id, None) is not None:
                self._file.rewrite(data)


def file_session_stores(state_dir: Path | None = None) -> SessionStores:
    directory = state_dir or default_state_dir()
    return SessionStores(
        chat_memory=FileChatMemoryStore(directory),
        pending_choices=FilePendingChoiceStore(directory),
        selections=FileSelectionMemoryStore(directory),
    )
