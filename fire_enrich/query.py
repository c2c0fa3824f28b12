"""Conversational query controller.

Answers free-text questions about the dataset while it is being enriched.
Each submission snapshots the result store, opens its own stream keyed by a
fresh query id and appends the assistant's turns to the shared log. Only one
query id is tracked at a time, for cancellation targeting.
"""

import asyncio
import json
import logging
import uuid
from contextlib import aclosing
from typing import Any, Callable, Sequence

from fire_enrich.client import EnrichmentApiInterface, FieldDescriptor, QueryContext, QueryRequest
from fire_enrich.clock import Clock, SystemClock
from fire_enrich.events import (
    QUERY_EVENTS,
    QueryErrorEvent,
    QueryEvent,
    QueryResponseEvent,
    QueryStatusEvent,
    decode_stream,
    until_stopped,
)
from fire_enrich.models import (
    ConversationMessage,
    EnrichmentField,
    MessageType,
    Row,
    RowStatus,
    row_email,
)
from fire_enrich.storage.interfaces import MessageLogInterface, ResultStoreInterface

logger = logging.getLogger(__name__)

QUERY_FAILURE_NOTICE = "Failed to process your question. Please try again."
HISTORY_LIMIT = 10


def _new_query_id() -> str:
    return uuid.uuid4().hex


def render_table_data(table_rows: Sequence[tuple[int, str, dict[str, Any]]]) -> str:
    """Render the table snapshot in the text form the producer expects."""
    if not table_rows:
        return ""
    lines = []
    for row_number, email, values in table_rows:
        data_points = ", ".join(f"{key}: {json.dumps(value)}" for key, value in values.items())
        lines.append(f"Row {row_number} ({email}): {data_points or 'No data enriched yet'}")
    return "Enriched Data Table:\n" + "\n".join(lines) + f"\n\nTotal: {len(table_rows)} rows with data"


class QueryController:
    """Submits questions and streams answers into the shared log.

    The context sent with a question reflects the store at the instant of
    submission; it is not refreshed while the answer streams in.
    """

    def __init__(
        self,
        api: EnrichmentApiInterface,
        store: ResultStoreInterface,
        log: MessageLogInterface,
        rows: Sequence[Row],
        fields: Sequence[EnrichmentField],
        email_column: str | None = None,
        clock: Clock | None = None,
        id_factory: Callable[[], str] = _new_query_id,
    ):
        self.api = api
        self.store = store
        self.log = log
        self.rows = list(rows)
        self.fields = list(fields)
        self.email_column = email_column
        self.clock = clock or SystemClock()
        self.id_factory = id_factory
        self.processing = False
        self.query_id: str | None = None
        self._stops: dict[str, asyncio.Event] = {}

    def build_context(self) -> QueryContext:
        """Snapshot the store: every row holding a non-pending result, in row order."""
        table_rows: list[tuple[int, str, dict[str, Any]]] = []
        for index, row in enumerate(self.rows):
            result = self.store.get(index)
            if result is None or result.status == RowStatus.PENDING:
                continue
            values = {key: e.value for key, e in result.enrichments.items() if not e.is_empty}
            table_rows.append((index + 1, row_email(row, self.email_column), values))
        return QueryContext(
            email_column=self.email_column,
            fields=[FieldDescriptor(name=f.name, display_name=f.display_name) for f in self.fields],
            total_rows=len(self.rows),
            processed_rows=len(table_rows),
            table_rows=table_rows,
            table_data=render_table_data(table_rows),
        )

    async def submit(self, message: str) -> str:
        """Ask a question and stream the answer into the log.

        Returns:
            The query id used for this submission.

        Raises:
            ValueError: If ``message`` is empty.
        """
        if not message or not message.strip():
            raise ValueError("message must not be empty")

        query_id = self.id_factory()
        self.query_id = query_id
        self.processing = True
        stop = self._stops[query_id] = asyncio.Event()

        history = self.log.conversation_history(HISTORY_LIMIT)
        self.log.append(self._message(message, MessageType.USER))
        request = QueryRequest(
            question=message,
            context=self.build_context(),
            conversation_history=history,
            session_id=query_id,
        )

        try:
            async with aclosing(self.api.stream_query(request)) as chunks:
                async with aclosing(decode_stream(chunks, QUERY_EVENTS)) as decoded:
                    async with aclosing(until_stopped(decoded, stop)) as events:
                        async for event in events:
                            self._apply(event)
        except Exception as e:
            logger.error("Query %s failed: %s", query_id, e)
            if not stop.is_set():
                self.log.append(self._message(QUERY_FAILURE_NOTICE, MessageType.WARNING))
        finally:
            self._stops.pop(query_id, None)
            if self.query_id in (query_id, None):
                self.processing = False
                self.query_id = None
        return query_id

    def _apply(self, event: QueryEvent) -> None:
        if isinstance(event, QueryStatusEvent):
            source_url = event.source.url if event.source else None
            self.log.append(self._message(event.message, MessageType.INFO, source_url=source_url))
        elif isinstance(event, QueryResponseEvent):
            self.log.append(self._message(event.message, MessageType.ASSISTANT))
        elif isinstance(event, QueryErrorEvent):
            self.log.append(self._message(event.message, MessageType.WARNING))

    async def cancel(self) -> bool:
        """Stop the in-flight query, if any.

        Local state is cleared whether or not the side-channel request
        succeeds.
        """
        query_id = self.query_id
        if query_id is None:
            return False
        stop = self._stops.get(query_id)
        if stop is not None:
            stop.set()
        self.processing = False
        self.query_id = None
        try:
            await self.api.cancel_query(query_id)
        except Exception as e:
            logger.warning("Failed to cancel query %s: %s", query_id, e)
        return True

    def _message(self, text: str, type: MessageType, source_url: str | None = None) -> ConversationMessage:
        return ConversationMessage(
            id=f"{type.value}-{uuid.uuid4().hex}",
            message=text,
            type=type,
            timestamp=self.clock.utcnow(),
            source_url=source_url,
        )
