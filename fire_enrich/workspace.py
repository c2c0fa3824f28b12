"""One enrichment workspace: a dataset, its session, its conversation.

``EnrichmentWorkspace`` owns the shared state (result store and message log)
and hands it to the controllers that read and write it:

    - ``EnrichmentSession`` writes results and progress notices;
    - ``QueryController`` reads results and writes conversational turns;
    - ``PresentationReconciler`` reads results and tracks reveal timing.

A failed or finished session is restarted with ``reset()``, which clears
the shared state, stops reveal timers and creates a fresh session.
"""

import logging
from typing import Sequence

from fire_enrich.client import EnrichmentApiInterface
from fire_enrich.clock import Clock, SystemClock
from fire_enrich.config import Settings
from fire_enrich.models import EnrichmentField, Row, SessionStatus
from fire_enrich.query import QueryController
from fire_enrich.reveal import PresentationReconciler
from fire_enrich.session import EnrichmentSession
from fire_enrich.storage.interfaces import MessageLogInterface, ResultStoreInterface
from fire_enrich.storage.memory import InMemoryMessageLog, InMemoryResultStore

logger = logging.getLogger(__name__)


class EnrichmentWorkspace:
    """One dataset with its result store, conversation log and controllers.

    Args:
        api: Producer transport shared by the session and query controllers.
        rows: Input records, indexed by position.
        fields: Requested enrichment fields.
        email_column: Column holding the email; first column when None.
        settings: Execution mode and reveal tick interval.
        store: Result store; a fresh in-memory store when None.
        log: Conversation log; a fresh capped in-memory log when None.
        clock: Time source for reveal timing and message timestamps.
    """

    def __init__(
        self,
        api: EnrichmentApiInterface,
        rows: Sequence[Row],
        fields: Sequence[EnrichmentField],
        email_column: str | None = None,
        settings: Settings | None = None,
        store: ResultStoreInterface | None = None,
        log: MessageLogInterface | None = None,
        clock: Clock | None = None,
    ):
        self.api = api
        self.rows = list(rows)
        self.fields = list(fields)
        self.email_column = email_column
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self.store = store if store is not None else InMemoryResultStore()
        self.log = log if log is not None else InMemoryMessageLog()
        self.reveal = PresentationReconciler(self.store, self.fields, clock=self.clock)
        self.query = QueryController(
            api,
            self.store,
            self.log,
            self.rows,
            self.fields,
            email_column=email_column,
            clock=self.clock,
        )
        self.session = self._new_session()

    def _new_session(self) -> EnrichmentSession:
        return EnrichmentSession(
            self.api,
            self.store,
            self.log,
            self.rows,
            self.fields,
            email_column=self.email_column,
            use_agents=self.settings.use_agents,
            clock=self.clock,
        )

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    def _position(self) -> tuple[int, bool]:
        return self.session.current_row, self.session.is_processing

    async def run(self, tick: bool = True) -> SessionStatus:
        """Run the current session to a terminal state.

        Args:
            tick: Keep the reveal state current on the configured interval
                while the session runs.
        """
        if tick:
            self.reveal.start(self.settings.reveal_tick_interval, self._position)
        status = await self.session.run()
        self.reveal.tick(*self._position())
        return status

    async def cancel(self) -> bool:
        return await self.session.cancel()

    async def ask(self, message: str) -> str:
        return await self.query.submit(message)

    async def stop_query(self) -> bool:
        return await self.query.cancel()

    async def reset(self) -> None:
        """Discard the current session and its results and start over idle.

        The running session, if any, is cancelled first so its stream stops
        writing into the cleared store.
        """
        if self.session.is_processing:
            await self.session.cancel()
        await self.query.cancel()
        self.reveal.reset()
        self.store.reset()
        self.log.clear()
        self.session = self._new_session()
        logger.info("Workspace reset")

    async def close(self) -> None:
        if self.session.is_processing:
            await self.session.cancel()
        await self.query.cancel()
        await self.reveal.close()
