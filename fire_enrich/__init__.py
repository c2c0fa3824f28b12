"""
fire_enrich - client engine for streaming data enrichment.

Sends rows keyed by email and a set of requested fields to an enrichment
producer, reconciles the streamed per-row results into a result store,
and answers questions about the dataset over a second, independently
cancellable stream.

    from fire_enrich import EnrichmentWorkspace, HttpEnrichmentApi, load_settings

    async with HttpEnrichmentApi(load_settings()) as api:
        workspace = EnrichmentWorkspace(api, rows, fields, email_column="email")
        await workspace.run()
"""

from fire_enrich.client import EnrichmentApiInterface, HttpEnrichmentApi
from fire_enrich.config import Credentials, Settings, load_settings
from fire_enrich.errors import ConfigError, FireEnrichError, InvalidEmailError, SessionStateError
from fire_enrich.models import (
    ConversationMessage,
    EnrichmentField,
    FieldEnrichment,
    FieldType,
    MessageType,
    RowEnrichmentResult,
    RowStatus,
    SessionStatus,
)
from fire_enrich.query import QueryController
from fire_enrich.reveal import PresentationReconciler, RevealState
from fire_enrich.session import EnrichmentSession
from fire_enrich.storage import InMemoryMessageLog, InMemoryResultStore
from fire_enrich.workspace import EnrichmentWorkspace

__all__ = [
    "EnrichmentApiInterface",
    "HttpEnrichmentApi",
    "Credentials",
    "Settings",
    "load_settings",
    "FireEnrichError",
    "ConfigError",
    "InvalidEmailError",
    "SessionStateError",
    "ConversationMessage",
    "EnrichmentField",
    "FieldEnrichment",
    "FieldType",
    "MessageType",
    "RowEnrichmentResult",
    "RowStatus",
    "SessionStatus",
    "EnrichmentSession",
    "QueryController",
    "PresentationReconciler",
    "RevealState",
    "InMemoryResultStore",
    "InMemoryMessageLog",
    "EnrichmentWorkspace",
]

__version__ = "0.1.0"
