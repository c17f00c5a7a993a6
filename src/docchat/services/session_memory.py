from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

ChatRole = Literal["user", "assistant", "system"]


@dataclass(frozen=True)
class ChatTurn:
    role: ChatRole
    content: str
    created_at: datetime


class SessionMemory:
    """In-memory chat transcript for one document session."""

    def __init__(self, *, max_turns: int = 50) -> None:
        self._lock = threading.RLock()
        self._max_turns = max(2, max_turns)
        self._turns: list[ChatTurn] = []

    def list_turns(self) -> list[ChatTurn]:
        with self._lock:
            return list(self._turns)

    def append_turn(self, *, role: ChatRole, content: str) -> ChatTurn:
        turn = ChatTurn(role=role, content=content, created_at=datetime.now(UTC))
        with self._lock:
            turns = [*self._turns, turn]
            if len(turns) > self._max_turns:
                turns = turns[-self._max_turns :]
            self._turns = turns
        return turn

    def clear(self) -> None:
        with self._lock:
            self._turns = []
