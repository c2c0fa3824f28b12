"""Data model for enrichment sessions.

Rows, requested fields, per-field outcomes, per-row results and the
conversation log entries shared between the session and query controllers.
All models are frozen; updates go through ``model_copy``.

Wire payloads use camelCase keys (``rowIndex``, ``displayName``,
``sourceContext``) except corroboration evidence, which the producer sends in
snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Row = dict[str, str]
"""One input record: column name to cell value, in column order."""


class WireModel(BaseModel):
    """Base for models exchanged with the producer using camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class FieldType(str, Enum):
    """Declared value type of an enrichment field."""

    STRING = "string"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value: object) -> "FieldType":
        return cls.OTHER


class RowStatus(str, Enum):
    """Lifecycle status of one row within a session."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


class SessionStatus(str, Enum):
    """Lifecycle status of an enrichment session."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


class MessageType(str, Enum):
    """Kind of entry in the conversation log."""

    USER = "user"
    ASSISTANT = "assistant"
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    AGENT = "agent"
    """Progress reported by a research agent for a specific row."""

    @classmethod
    def _missing_(cls, value: object) -> "MessageType":
        if value == "error":
            return cls.WARNING
        return cls.INFO


class EnrichmentField(WireModel):
    """A requested enrichment attribute."""

    name: str = Field(description="Machine key used in result payloads.")
    display_name: str = Field(description="Human-readable column label.")
    type: FieldType = Field(default=FieldType.STRING)
    description: str | None = Field(default=None)


class SourceContext(BaseModel, frozen=True):
    """A web page that contributed to a field value."""

    url: str
    snippet: str | None = ""


class EvidenceItem(BaseModel, frozen=True):
    source_url: str | None = None
    exact_text: str | None = None
    value: Any = None


class Corroboration(BaseModel, frozen=True):
    """Multi-source agreement evidence for one field value."""

    sources_agree: bool = False
    evidence: tuple[EvidenceItem, ...] = ()

    @field_validator("sources_agree", mode="before")
    @classmethod
    def null_agreement_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("evidence", mode="before")
    @classmethod
    def keep_object_evidence(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return ()
        return [item for item in value if isinstance(item, (dict, EvidenceItem))]


class FieldEnrichment(WireModel):
    """One field's outcome for one row.

    ``value`` may be a scalar, an array or a boolean depending on the
    field's declared type. A present-but-empty value means the field was
    attempted and nothing was found.
    """

    field: str | None = None
    value: Any = None
    confidence: float | None = Field(default=None, description="Between 0 and 1; anything else is read as unknown.")
    source: str | None = None
    source_context: tuple[SourceContext, ...] | None = None
    corroboration: Corroboration | None = None

    # Metadata problems blank the metadata rather than reject the whole result.
    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_in_unit_range(cls, value: Any) -> float | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value) if 0.0 <= value <= 1.0 else None

    @field_validator("source", mode="before")
    @classmethod
    def join_source_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return ", ".join(str(v) for v in value)
        return value if value is None or isinstance(value, str) else str(value)

    @field_validator("source_context", mode="before")
    @classmethod
    def keep_contexts_with_url(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return None
        return [
            ctx
            for ctx in value
            if isinstance(ctx, SourceContext) or (isinstance(ctx, dict) and isinstance(ctx.get("url"), str))
        ]

    @field_validator("corroboration", mode="before")
    @classmethod
    def drop_unreadable_corroboration(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, Corroboration)) else None

    @property
    def is_empty(self) -> bool:
        return self.value is None or self.value == ""

    def source_urls(self) -> list[str]:
        """URLs backing this value, falling back to the free-text source label."""
        if self.source_context:
            return [ctx.url for ctx in self.source_context]
        if self.source:
            return self.source.split(", ")
        return []


class RowEnrichmentResult(WireModel):
    """Aggregate outcome for one row.

    ``enrichments`` is not guaranteed to contain every requested field.
    """

    row_index: int = Field(ge=0)
    original_data: Row = Field(default_factory=dict)
    enrichments: dict[str, FieldEnrichment] = Field(default_factory=dict)
    status: RowStatus = RowStatus.PENDING
    error: str | None = None

    @field_validator("original_data", mode="before")
    @classmethod
    def stringify_cells(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value


class ConversationMessage(BaseModel, frozen=True):
    """An entry in the shared, append-only conversation log."""

    id: str
    message: str
    type: MessageType
    timestamp: datetime
    row_index: int | None = None
    source_url: str | None = None

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_be_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("message timestamp must be timezone-aware")
        return value


def row_email(row: Row, email_column: str | None) -> str:
    """Return the row's email, defaulting to the first column."""
    if email_column:
        return row.get(email_column, "")
    return next(iter(row.values()), "")


# TODO: accept "yes"/"1" once the producer's boolean encoding is pinned down.
TRUTHY_LITERALS = (True, "true", "Yes")


def is_truthy(value: Any) -> bool:
    """Boolean display rule for values of ``boolean`` fields."""
    return any(value is lit if isinstance(lit, bool) else value == lit for lit in TRUTHY_LITERALS)
