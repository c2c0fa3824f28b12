"""Enrichment session controller.

One ``EnrichmentSession`` owns one run: it opens the enrichment stream,
applies decoded events to the result store and the message log, and exposes
cancellation and status. It is the only writer of enrichment results.

State machine::

    idle --run()--> processing --complete/error/end of stream--> completed
                               --cancel()/cancelled event-----> cancelled

Both terminal states are final. Events that arrive after the controller is
terminal (for example from a stream orphaned by ``cancel()``) are ignored.
"""

import asyncio
import logging
import uuid
from contextlib import aclosing
from typing import Sequence

from fire_enrich.client import EnrichmentApiInterface, EnrichmentRequest
from fire_enrich.clock import Clock, SystemClock
from fire_enrich.errors import SessionStateError
from fire_enrich.events import (
    ENRICHMENT_EVENTS,
    AgentProgressEvent,
    CancelledEvent,
    CompleteEvent,
    EnrichmentEvent,
    ErrorEvent,
    PendingEvent,
    ProcessingEvent,
    ResultEvent,
    SessionEvent,
    decode_stream,
    until_stopped,
)
from fire_enrich.models import (
    ConversationMessage,
    EnrichmentField,
    MessageType,
    Row,
    SessionStatus,
)
from fire_enrich.storage.interfaces import MessageLogInterface, ResultStoreInterface

logger = logging.getLogger(__name__)

COMPLETION_NOTICE = "All enrichment tasks completed successfully"
FAILURE_NOTICE = "Failed to run enrichment. Please try again."


class EnrichmentSession:
    """Drives one enrichment run against the producer.

    Args:
        api: Producer transport.
        store: Result store this session writes into.
        log: Shared conversation log for progress and completion notices.
        rows: Input records, indexed by position.
        fields: Requested enrichment fields.
        email_column: Column holding the email; the producer defaults to the
            first column when None.
        use_agents: Execution mode flag forwarded to the producer.
        clock: Time source for message timestamps.
    """

    def __init__(
        self,
        api: EnrichmentApiInterface,
        store: ResultStoreInterface,
        log: MessageLogInterface,
        rows: Sequence[Row],
        fields: Sequence[EnrichmentField],
        email_column: str | None = None,
        use_agents: bool = True,
        clock: Clock | None = None,
    ):
        self.api = api
        self.store = store
        self.log = log
        self.rows = list(rows)
        self.fields = list(fields)
        self.email_column = email_column
        self.use_agents = use_agents
        self.clock = clock or SystemClock()
        self.status = SessionStatus.IDLE
        self.session_id: str | None = None
        self.current_row = -1
        self.last_error: str | None = None
        self._stop = asyncio.Event()

    @property
    def is_processing(self) -> bool:
        return self.status == SessionStatus.PROCESSING

    def build_request(self) -> EnrichmentRequest:
        return EnrichmentRequest(
            rows=self.rows,
            fields=self.fields,
            email_column=self.email_column,
            use_agents=self.use_agents,
        )

    async def run(self) -> SessionStatus:
        """Open the stream and apply events until it ends or is cancelled.

        Returns:
            The terminal status reached.

        Raises:
            SessionStateError: If the session has already been started.
        """
        if self.status != SessionStatus.IDLE:
            raise SessionStateError(f"session already started (status={self.status.value})")
        self.status = SessionStatus.PROCESSING

        try:
            async with aclosing(self.api.stream_enrichment(self.build_request())) as chunks:
                async with aclosing(decode_stream(chunks, ENRICHMENT_EVENTS)) as decoded:
                    async with aclosing(until_stopped(decoded, self._stop)) as events:
                        async for event in events:
                            self.apply(event)
                            if self.status.is_terminal:
                                break
        except Exception as e:
            self._fail(e)

        if self.status == SessionStatus.PROCESSING:
            logger.info("Enrichment stream ended without a terminal event")
            self.status = SessionStatus.COMPLETED
        return self.status

    def _fail(self, exc: Exception) -> None:
        if self.status.is_terminal:
            logger.debug("Stream error after session ended: %s", exc)
            return
        logger.error("Enrichment stream failed: %s", exc)
        self.last_error = str(exc)
        self.log.append(self._message(FAILURE_NOTICE, MessageType.WARNING))
        self.status = SessionStatus.COMPLETED

    def apply(self, event: EnrichmentEvent) -> None:
        """Apply one decoded event. Events after a terminal state are ignored."""
        if self.status.is_terminal:
            logger.debug("Ignoring %s event, session is %s", event.type, self.status.value)
            return

        if isinstance(event, SessionEvent):
            if self.session_id is None:
                self.session_id = event.session_id
                logger.info("Enrichment session %s started", event.session_id)
        elif isinstance(event, PendingEvent):
            if event.row_index < len(self.rows):
                row = self.rows[event.row_index]
            else:
                row = {}
            self.store.upsert_pending(event.row_index, row)
        elif isinstance(event, ProcessingEvent):
            self.current_row = event.row_index
            self.store.set_processing(event.row_index)
        elif isinstance(event, ResultEvent):
            self.store.replace(event.result)
        elif isinstance(event, CompleteEvent):
            self.status = SessionStatus.COMPLETED
            self.log.append_once(self._message(COMPLETION_NOTICE, MessageType.SUCCESS, prefix="complete"))
        elif isinstance(event, CancelledEvent):
            self.status = SessionStatus.CANCELLED
        elif isinstance(event, ErrorEvent):
            logger.error("Enrichment error: %s", event.error)
            self.last_error = event.error
            self.status = SessionStatus.COMPLETED
        elif isinstance(event, AgentProgressEvent):
            self.log.append(
                self._message(
                    event.message,
                    MessageType(event.message_type),
                    row_index=event.row_index,
                    source_url=event.source_url,
                )
            )

    async def cancel(self) -> bool:
        """Cancel the run if it is processing.

        The side-channel request is best effort; local state becomes
        ``cancelled`` whether or not it succeeds.

        Returns:
            True if the session was processing and is now cancelled.
        """
        if self.status != SessionStatus.PROCESSING:
            return False
        # Flip first so events arriving while the request is in flight are ignored.
        self.status = SessionStatus.CANCELLED
        self.current_row = -1
        self._stop.set()
        if self.session_id is None:
            logger.warning("Cancelling before a session id was issued; producer not notified")
            return True
        try:
            await self.api.cancel_enrichment(self.session_id)
        except Exception as e:
            logger.warning("Failed to cancel enrichment session %s: %s", self.session_id, e)
        return True

    def _message(
        self,
        text: str,
        type: MessageType,
        prefix: str | None = None,
        row_index: int | None = None,
        source_url: str | None = None,
    ) -> ConversationMessage:
        return ConversationMessage(
            id=f"{prefix or type.value}-{uuid.uuid4().hex}",
            message=text,
            type=type,
            timestamp=self.clock.utcnow(),
            row_index=row_index,
            source_url=source_url,
        )
