"""Storage interface definitions for enrichment sessions."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable

from pydantic import BaseModel

from fire_enrich.models import ConversationMessage, Row, RowEnrichmentResult, RowStatus


class ChangeKind(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    REPLACE = "replace"
    RESET = "reset"


class StoreChange(BaseModel, frozen=True):
    """Notification delivered to store subscribers after a mutation is applied."""

    kind: ChangeKind
    row_index: int | None = None


StoreListener = Callable[[StoreChange], None]


class ResultStoreInterface(ABC):
    """Abstract interface for the per-row result store.

    At most one result exists per row index. Only the session controller
    writes; the reconciler and the query context builder read. Operations are
    synchronous and each one leaves the store in a consistent state.
    """

    @abstractmethod
    def upsert_pending(self, row_index: int, row: Row) -> bool:
        """Insert a pending placeholder unless an entry already exists.

        Returns True if a placeholder was inserted.
        """

    @abstractmethod
    def set_processing(self, row_index: int) -> bool:
        """Mark an existing entry as processing, keeping its fields.

        Returns False (and creates nothing) if no entry exists.
        """

    @abstractmethod
    def replace(self, result: RowEnrichmentResult) -> None:
        """Unconditionally replace the entry for ``result.row_index``."""

    @abstractmethod
    def get(self, row_index: int) -> RowEnrichmentResult | None:
        """Retrieve the entry for a row, or None if not present."""

    @abstractmethod
    def all(self) -> list[RowEnrichmentResult]:
        """Return all entries in insertion order."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored entries."""

    @abstractmethod
    def count_by_status(self, status: RowStatus) -> int:
        """Return the number of entries with the given status."""

    @abstractmethod
    def reset(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener and return a function that removes it."""


class MessageLogInterface(ABC):
    """Abstract interface for the bounded conversation log."""

    @abstractmethod
    def append(self, message: ConversationMessage) -> None:
        """Append a message, evicting the oldest entries beyond the cap."""

    @abstractmethod
    def append_once(self, message: ConversationMessage) -> bool:
        """Append unless a message with the same text is already present.

        Returns True if the message was appended.
        """

    @abstractmethod
    def messages(self) -> list[ConversationMessage]:
        """Return a snapshot of the log, oldest first."""

    @abstractmethod
    def conversation_history(self, limit: int = 10) -> list[dict[str, str]]:
        """Return the last ``limit`` user/assistant turns as role/content pairs."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every message."""

    @abstractmethod
    def __len__(self) -> int:
        """Return the number of messages held."""
