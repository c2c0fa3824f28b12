"""Transport to the enrichment producer.

``EnrichmentApiInterface`` is what the controllers depend on; ``HttpEnrichmentApi``
implements it over HTTP with httpx. Streams are exposed as async generators of
raw text chunks. Closing the generator (``contextlib.aclosing``) closes the
underlying response, which is how controllers abandon a cancelled stream.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx
from pydantic import Field

from fire_enrich.config import Credentials, Settings
from fire_enrich.models import EnrichmentField, Row, WireModel

logger = logging.getLogger(__name__)


class EnrichmentRequest(WireModel):
    rows: list[Row]
    fields: list[EnrichmentField]
    email_column: str | None = None
    use_agents: bool = True
    use_v2_architecture: bool = True


class FieldDescriptor(WireModel):
    name: str
    display_name: str


class QueryContext(WireModel):
    """Snapshot of the dataset sent along with a question.

    ``table_rows`` holds the structured snapshot (row number, email, values)
    and is not sent; the producer receives it rendered as ``tableData``.
    """

    email_column: str | None = None
    fields: list[FieldDescriptor] = Field(default_factory=list)
    total_rows: int = 0
    processed_rows: int = 0
    table_rows: list[tuple[int, str, dict[str, Any]]] = Field(default_factory=list, exclude=True)
    table_data: str = ""


class QueryRequest(WireModel):
    question: str
    context: QueryContext
    conversation_history: list[dict[str, str]] = Field(default_factory=list)
    session_id: str = Field(description="Query id used to target cancellation.")


class EnrichmentApiInterface(ABC):
    """Abstract producer API used by the session and query controllers."""

    @abstractmethod
    def stream_enrichment(self, request: EnrichmentRequest) -> AsyncIterator[str]:
        """Open the enrichment stream and yield raw text chunks."""

    @abstractmethod
    async def cancel_enrichment(self, session_id: str) -> None:
        """Ask the producer to stop a session. Fire-and-forget."""

    @abstractmethod
    def stream_query(self, request: QueryRequest) -> AsyncIterator[str]:
        """Open a conversational query stream and yield raw text chunks."""

    @abstractmethod
    async def cancel_query(self, query_id: str) -> None:
        """Ask the producer to stop answering a query. Fire-and-forget."""


class HttpEnrichmentApi(EnrichmentApiInterface):
    """httpx implementation of the producer API.

    Stream reads are bounded by ``settings.read_timeout``: a producer that
    goes silent for longer raises ``httpx.ReadTimeout`` out of the generator.

    Example:
        ```python
        async with HttpEnrichmentApi(load_settings()) as api:
            async for chunk in api.stream_enrichment(request):
                ...
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        credentials: Credentials | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or Settings()
        self.credentials = credentials or self.settings.credentials
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.read_timeout, connect=self.settings.connect_timeout)
        )

    async def __aenter__(self) -> "HttpEnrichmentApi":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, use_agents: bool = False) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if use_agents:
            headers["x-use-agents"] = "true"
        headers.update(self.credentials.headers())
        return headers

    async def _stream(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> AsyncIterator[str]:
        async with self._client.stream("POST", url, json=payload, headers=headers) as response:
            response.raise_for_status()
            async for chunk in response.aiter_text():
                yield chunk

    async def stream_enrichment(self, request: EnrichmentRequest) -> AsyncIterator[str]:
        url = self.settings.url(self.settings.enrich_path)
        logger.info("Opening enrichment stream for %d rows, %d fields", len(request.rows), len(request.fields))
        payload = request.model_dump(mode="json", by_alias=True)
        async for chunk in self._stream(url, payload, self._headers(use_agents=request.use_agents)):
            yield chunk

    async def cancel_enrichment(self, session_id: str) -> None:
        url = self.settings.url(self.settings.enrich_path)
        response = await self._client.delete(url, params={"sessionId": session_id})
        response.raise_for_status()

    async def stream_query(self, request: QueryRequest) -> AsyncIterator[str]:
        url = self.settings.url(self.settings.chat_path)
        payload = request.model_dump(mode="json", by_alias=True)
        async for chunk in self._stream(url, payload, self._headers()):
            yield chunk

    async def cancel_query(self, query_id: str) -> None:
        url = self.settings.url(self.settings.chat_path)
        response = await self._client.delete(url, params={"queryId": query_id})
        response.raise_for_status()
