"""Result store and message log interfaces and implementations."""

from fire_enrich.storage.interfaces import (
    ChangeKind,
    MessageLogInterface,
    ResultStoreInterface,
    StoreChange,
    StoreListener,
)
from fire_enrich.storage.memory import MESSAGE_LOG_CAP, InMemoryMessageLog, InMemoryResultStore

__all__ = [
    "ChangeKind",
    "StoreChange",
    "StoreListener",
    "ResultStoreInterface",
    "MessageLogInterface",
    "InMemoryResultStore",
    "InMemoryMessageLog",
    "MESSAGE_LOG_CAP",
]
