"""Message history for debugging and diagnostics.

Keeps the last message seen per method for each direction, plus a bounded
chronological log and the most recent error text. Purely observational:
nothing in the transport or push listener depends on what is stored here.
"""

import enum
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, List, Optional

from .protocol import message_method


class MessageType(str, enum.Enum):
    SEND = "send"
    RECEIVE = "receive"
    PUSH = "push"


@dataclass
class HistoryEntry:
    msg_type: MessageType
    method: str
    message: Any
    timestamp: float  # seconds since the history was created


@dataclass
class HistorySummary:
    send_count: int
    receive_count: int
    push_count: int
    total_entries: int
    last_error: Optional[str]

    def as_dict(self) -> dict:
        return asdict(self)


class MessageHistory:
    DEFAULT_MAX_ENTRIES = 100

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        self._by_type: Dict[MessageType, Dict[str, Any]] = {t: {} for t in MessageType}
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_entries)
        self._last_error: Optional[str] = None
        self._start_time = time.monotonic()

    def record(self, msg_type: MessageType, message: Any) -> None:
        """Store a message. Messages without a ``method`` are ignored."""
        method = message_method(message)
        if method is None:
            return
        self._by_type[msg_type][method] = message
        self._entries.append(HistoryEntry(
            msg_type=msg_type,
            method=method,
            message=message,
            timestamp=time.monotonic() - self._start_time,
        ))

    def record_error(self, error: str) -> None:
        self._last_error = error

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def last_message(self, msg_type: MessageType, method: str) -> Optional[Any]:
        return self._by_type[msg_type].get(method)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        for messages in self._by_type.values():
            messages.clear()
        self._entries.clear()
        self._last_error = None

    def summary(self) -> HistorySummary:
        return HistorySummary(
            send_count=len(self._by_type[MessageType.SEND]),
            receive_count=len(self._by_type[MessageType.RECEIVE]),
            push_count=len(self._by_type[MessageType.PUSH]),
            total_entries=len(self._entries),
            last_error=self._last_error,
        )
