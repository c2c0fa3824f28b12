"""In-memory storage implementations.

Dictionary- and deque-backed implementations of the storage interfaces. They
keep everything in process memory and are what a live session uses; nothing
survives a restart.

Consistency: results are immutable models and every mutation swaps a whole
entry in a single assignment, so a reader (the reconciler or the query
context builder) never observes a half-applied update. No locking is used;
all callers run on one event loop.
"""

import logging
from collections import deque
from typing import Callable

from fire_enrich.models import ConversationMessage, MessageType, Row, RowEnrichmentResult, RowStatus
from fire_enrich.storage.interfaces import (
    ChangeKind,
    MessageLogInterface,
    ResultStoreInterface,
    StoreChange,
    StoreListener,
)

logger = logging.getLogger(__name__)

MESSAGE_LOG_CAP = 500


class InMemoryResultStore(ResultStoreInterface):
    """Result store keyed by row index, preserving insertion order.

    Example:
        ```python
        store = InMemoryResultStore()
        store.upsert_pending(0, {"email": "a@acme.com"})
        store.set_processing(0)
        store.get(0).status  # RowStatus.PROCESSING
        ```
    """

    def __init__(self) -> None:
        self._results: dict[int, RowEnrichmentResult] = {}
        self._listeners: list[StoreListener] = []

    def upsert_pending(self, row_index: int, row: Row) -> bool:
        if row_index in self._results:
            return False
        self._results[row_index] = RowEnrichmentResult(
            row_index=row_index,
            original_data=row,
            status=RowStatus.PENDING,
        )
        self._notify(StoreChange(kind=ChangeKind.PENDING, row_index=row_index))
        return True

    def set_processing(self, row_index: int) -> bool:
        existing = self._results.get(row_index)
        if existing is None:
            return False
        self._results[row_index] = existing.model_copy(update={"status": RowStatus.PROCESSING})
        self._notify(StoreChange(kind=ChangeKind.PROCESSING, row_index=row_index))
        return True

    def replace(self, result: RowEnrichmentResult) -> None:
        self._results[result.row_index] = result
        self._notify(StoreChange(kind=ChangeKind.REPLACE, row_index=result.row_index))

    def get(self, row_index: int) -> RowEnrichmentResult | None:
        return self._results.get(row_index)

    def all(self) -> list[RowEnrichmentResult]:
        return list(self._results.values())

    def count(self) -> int:
        return len(self._results)

    def count_by_status(self, status: RowStatus) -> int:
        return sum(1 for result in self._results.values() if result.status == status)

    def reset(self) -> None:
        self._results = {}
        self._notify(StoreChange(kind=ChangeKind.RESET))

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: StoreChange) -> None:
        for listener in list(self._listeners):
            listener(change)


class InMemoryMessageLog(MessageLogInterface):
    """Conversation log capped at the most recent ``cap`` entries."""

    def __init__(self, cap: int = MESSAGE_LOG_CAP) -> None:
        if cap <= 0:
            raise ValueError("cap must be positive")
        self._messages: deque[ConversationMessage] = deque(maxlen=cap)

    @property
    def cap(self) -> int:
        return self._messages.maxlen or 0

    def append(self, message: ConversationMessage) -> None:
        self._messages.append(message)

    def append_once(self, message: ConversationMessage) -> bool:
        if any(existing.message == message.message for existing in self._messages):
            logger.debug("Skipping duplicate message %r", message.message)
            return False
        self._messages.append(message)
        return True

    def messages(self) -> list[ConversationMessage]:
        return list(self._messages)

    def conversation_history(self, limit: int = 10) -> list[dict[str, str]]:
        turns = [m for m in self._messages if m.type in (MessageType.USER, MessageType.ASSISTANT)]
        if limit <= 0:
            return []
        return [{"role": m.type.value, "content": m.message} for m in turns[-limit:]]

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)
