"""Test fixtures and a scripted producer.

This module provides:
- ``frame()`` to build ``data: <JSON>`` wire frames
- ``ScriptedApi``, an ``EnrichmentApiInterface`` that replays canned chunks,
  records every request and cancellation, and can fail or pause on demand
- Pytest fixtures for fields, rows, stores, logs and a manual clock
- Helpers for building results and messages
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Sequence

import httpx
import pytest

from fire_enrich.client import EnrichmentApiInterface, EnrichmentRequest, QueryRequest
from fire_enrich.clock import ManualClock
from fire_enrich.models import (
    ConversationMessage,
    EnrichmentField,
    FieldEnrichment,
    FieldType,
    MessageType,
    RowEnrichmentResult,
    RowStatus,
)
from fire_enrich.storage.memory import InMemoryMessageLog, InMemoryResultStore


def frame(payload: dict[str, Any]) -> str:
    """Encode one event as a wire frame."""
    return f"data: {json.dumps(payload)}\n"


def result_payload(
    row_index: int,
    status: str = "completed",
    enrichments: dict[str, Any] | None = None,
    error: str | None = None,
    original: dict[str, str] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "rowIndex": row_index,
        "originalData": original or {},
        "enrichments": enrichments or {},
        "status": status,
    }
    if error is not None:
        payload["error"] = error
    return payload


def make_result(
    row_index: int,
    status: RowStatus = RowStatus.COMPLETED,
    error: str | None = None,
    **values: Any,
) -> RowEnrichmentResult:
    return RowEnrichmentResult(
        row_index=row_index,
        original_data={"email": f"person{row_index}@acme.com"},
        enrichments={name: FieldEnrichment(field=name, value=value) for name, value in values.items()},
        status=status,
        error=error,
    )


def make_message(text: str, type: MessageType = MessageType.INFO) -> ConversationMessage:
    return ConversationMessage(
        id=f"{type.value}-{text}",
        message=text,
        type=type,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class ScriptedApi(EnrichmentApiInterface):
    """Replays canned chunks for both streams.

    Args:
        enrichment_chunks: Raw text chunks for the enrichment stream.
        query_chunks: Raw text chunks for every query stream.
        enrichment_hold: Index of the enrichment chunk to pause before,
            until ``release`` is set.
        query_hold: Same, for the query stream.
        fail_open: Raise a connection error when a stream is opened.
        fail_cancel: Raise a connection error from the cancel endpoints.
    """

    def __init__(
        self,
        enrichment_chunks: Sequence[str] = (),
        query_chunks: Sequence[str] = (),
        enrichment_hold: int | None = None,
        query_hold: int | None = None,
        fail_open: bool = False,
        fail_cancel: bool = False,
    ):
        self.enrichment_chunks = list(enrichment_chunks)
        self.query_chunks = list(query_chunks)
        self.enrichment_hold = enrichment_hold
        self.query_hold = query_hold
        self.fail_open = fail_open
        self.fail_cancel = fail_cancel
        self.release = asyncio.Event()
        self.enrichment_requests: list[EnrichmentRequest] = []
        self.query_requests: list[QueryRequest] = []
        self.log_at_query_open: list[list[ConversationMessage]] = []
        self.cancelled_sessions: list[str] = []
        self.cancelled_queries: list[str] = []
        self.enrichment_closed = False
        self.query_closed = False
        self.log: InMemoryMessageLog | None = None

    async def __aenter__(self) -> "ScriptedApi":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def _replay(self, chunks: list[str], hold: int | None) -> AsyncIterator[str]:
        for index, chunk in enumerate(chunks):
            if hold is not None and index == hold:
                await self.release.wait()
            yield chunk
            await asyncio.sleep(0)

    async def stream_enrichment(self, request: EnrichmentRequest) -> AsyncIterator[str]:
        self.enrichment_requests.append(request)
        if self.fail_open:
            raise httpx.ConnectError("connection refused")
        try:
            async for chunk in self._replay(self.enrichment_chunks, self.enrichment_hold):
                yield chunk
        finally:
            self.enrichment_closed = True

    async def cancel_enrichment(self, session_id: str) -> None:
        self.cancelled_sessions.append(session_id)
        if self.fail_cancel:
            raise httpx.ConnectError("network down")

    async def stream_query(self, request: QueryRequest) -> AsyncIterator[str]:
        self.query_requests.append(request)
        if self.log is not None:
            self.log_at_query_open.append(self.log.messages())
        if self.fail_open:
            raise httpx.ConnectError("connection refused")
        try:
            async for chunk in self._replay(self.query_chunks, self.query_hold):
                yield chunk
        finally:
            self.query_closed = True

    async def cancel_query(self, query_id: str) -> None:
        self.cancelled_queries.append(query_id)
        if self.fail_cancel:
            raise httpx.ConnectError("network down")


async def wait_for(predicate, attempts: int = 200) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


# --- Fixtures ---


@pytest.fixture
def fields() -> list[EnrichmentField]:
    """Two requested fields: a company name and a boolean."""
    return [
        EnrichmentField(name="companyName", display_name="Company Name", type=FieldType.STRING),
        EnrichmentField(name="isB2B", display_name="Is B2B", type=FieldType.BOOLEAN),
    ]


@pytest.fixture
def rows() -> list[dict[str, str]]:
    return [
        {"email": "ana@acme.com", "name": "Ana"},
        {"email": "bob@gmail.com", "name": "Bob"},
        {"email": "cy@globex.io", "name": "Cy"},
    ]


@pytest.fixture
def store() -> InMemoryResultStore:
    return InMemoryResultStore()


@pytest.fixture
def log() -> InMemoryMessageLog:
    return InMemoryMessageLog()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start_ms=1000.0)
