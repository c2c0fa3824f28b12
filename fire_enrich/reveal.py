"""Presentation reconciliation: which cells are revealed and which rows are expanded.

Everything here is derived from the result store and the clock; nothing
writes to the store. The pure functions (``cell_delay``, ``is_cell_revealed``,
``reconcile``) take the prior ``RevealState`` and the current time and return
a new state. ``PresentationReconciler`` holds that state for a live session,
records arrival times from store notifications, and can tick on an interval.

Times are milliseconds from the session clock's ``now_ms()``.

Rules:
    - A cell is revealed immediately when its row has no arrival time or the
      cell is already marked shown.
    - Otherwise it is revealed once more than ``cell_delay(index, count)``
      has elapsed since arrival, staggering cells left to right.
    - ``REVEAL_WINDOW_MS`` after each arrival every cell in the row is marked
      shown for good, whatever the stagger math says. A later result for the
      same row restarts the stagger but does not cancel the earlier window.
    - The row being processed is kept expanded; other expanded rows collapse
      ``COLLAPSE_DELAY_MS`` after they stop processing.
"""

import asyncio
import contextlib
import logging
from typing import Callable, Sequence

from pydantic import BaseModel, Field

from fire_enrich.clock import Clock, SystemClock
from fire_enrich.models import EnrichmentField, RowEnrichmentResult, RowStatus
from fire_enrich.storage.interfaces import ChangeKind, ResultStoreInterface, StoreChange

logger = logging.getLogger(__name__)

REVEAL_WINDOW_MS = 2500.0
ROW_ANIMATION_MS = 2000.0
MAX_CELL_DELAY_MS = 300.0
COLLAPSE_DELAY_MS = 2000.0


class RevealState(BaseModel, frozen=True):
    """Per-session reveal bookkeeping.

    Attributes:
        arrivals: Row index to the time its latest result arrived.
        windows: Row index to the pending deadlines at which the row's cells
            become shown, one per result received.
        shown: (row index, field name) pairs permanently revealed.
        expanded: Row indices currently expanded.
        left_processing_at: For expanded rows that are no longer processing,
            when that was first observed.
    """

    arrivals: dict[int, float] = Field(default_factory=dict)
    windows: dict[int, tuple[float, ...]] = Field(default_factory=dict)
    shown: frozenset[tuple[int, str]] = frozenset()
    expanded: frozenset[int] = frozenset()
    left_processing_at: dict[int, float] = Field(default_factory=dict)


def cell_delay(field_index: int, field_count: int) -> float:
    """Stagger delay for the cell at ``field_index``."""
    if field_count <= 0:
        return 0.0
    return field_index * min(MAX_CELL_DELAY_MS, ROW_ANIMATION_MS / field_count)


def is_cell_revealed(
    state: RevealState,
    row_index: int,
    field_name: str,
    field_index: int,
    field_count: int,
    now: float,
) -> bool:
    if (row_index, field_name) in state.shown:
        return True
    arrival = state.arrivals.get(row_index)
    if arrival is None:
        return True
    elapsed = now - arrival
    return elapsed >= REVEAL_WINDOW_MS or elapsed > cell_delay(field_index, field_count)


def is_cell_animating(state: RevealState, row_index: int, field_name: str, now: float) -> bool:
    """True while a cell is inside its row's reveal window and not yet shown."""
    arrival = state.arrivals.get(row_index)
    if arrival is None or (row_index, field_name) in state.shown:
        return False
    return now - arrival < REVEAL_WINDOW_MS


def record_arrival(state: RevealState, row_index: int, now: float) -> RevealState:
    deadlines = state.windows.get(row_index, ()) + (now + REVEAL_WINDOW_MS,)
    return state.model_copy(
        update={
            "arrivals": {**state.arrivals, row_index: now},
            "windows": {**state.windows, row_index: deadlines},
        }
    )


def toggle_row(state: RevealState, row_index: int) -> RevealState:
    expanded = set(state.expanded)
    if row_index in expanded:
        expanded.discard(row_index)
    else:
        expanded.add(row_index)
    return state.model_copy(update={"expanded": frozenset(expanded)})


def reconcile(
    results: Sequence[RowEnrichmentResult],
    fields: Sequence[EnrichmentField],
    now: float,
    prior: RevealState,
    current_row: int = -1,
    processing: bool = False,
) -> RevealState:
    """Derive the next reveal state from a store snapshot and the time."""
    shown = set(prior.shown)
    for row_index, arrival in prior.arrivals.items():
        if now - arrival >= REVEAL_WINDOW_MS:
            shown.update((row_index, f.name) for f in fields)

    windows: dict[int, tuple[float, ...]] = {}
    for row_index, deadlines in prior.windows.items():
        if any(deadline <= now for deadline in deadlines):
            shown.update((row_index, f.name) for f in fields)
        pending = tuple(deadline for deadline in deadlines if deadline > now)
        if pending:
            windows[row_index] = pending

    expanded = set(prior.expanded)
    if processing and current_row >= 0:
        expanded.add(current_row)

    statuses = {result.row_index: result.status for result in results}
    left_processing_at: dict[int, float] = {}
    for row_index in sorted(expanded):
        status = statuses.get(row_index)
        if status is None or status == RowStatus.PROCESSING or row_index == current_row:
            continue
        since = prior.left_processing_at.get(row_index, now)
        if now - since >= COLLAPSE_DELAY_MS:
            expanded.discard(row_index)
        else:
            left_processing_at[row_index] = since

    return RevealState(
        arrivals=dict(prior.arrivals),
        windows=windows,
        shown=frozenset(shown),
        expanded=frozenset(expanded),
        left_processing_at=left_processing_at,
    )


class PresentationReconciler:
    """Holds the reveal state of one session and keeps it current.

    Subscribes to the store so a result's arrival time is recorded at the
    moment it replaces the previous entry. ``tick()`` runs one
    reconciliation pass; ``start()`` runs passes on a fixed interval until
    ``reset()`` or ``close()``.
    """

    def __init__(
        self,
        store: ResultStoreInterface,
        fields: Sequence[EnrichmentField],
        clock: Clock | None = None,
    ):
        self.store = store
        self.fields = list(fields)
        self.clock = clock or SystemClock()
        self.state = RevealState()
        self._task: asyncio.Task[None] | None = None
        self._unsubscribe = store.subscribe(self._on_change)

    def _on_change(self, change: StoreChange) -> None:
        if change.kind == ChangeKind.REPLACE and change.row_index is not None:
            self.state = record_arrival(self.state, change.row_index, self.clock.now_ms())
        elif change.kind == ChangeKind.RESET:
            self.state = RevealState()

    def tick(self, current_row: int = -1, processing: bool = False) -> RevealState:
        self.state = reconcile(
            self.store.all(),
            self.fields,
            self.clock.now_ms(),
            self.state,
            current_row=current_row,
            processing=processing,
        )
        return self.state

    def is_revealed(self, row_index: int, field_name: str) -> bool:
        names = [f.name for f in self.fields]
        field_index = names.index(field_name) if field_name in names else 0
        return is_cell_revealed(
            self.state, row_index, field_name, field_index, len(self.fields), self.clock.now_ms()
        )

    def toggle_row(self, row_index: int) -> None:
        self.state = toggle_row(self.state, row_index)

    def start(self, interval: float, position: Callable[[], tuple[int, bool]]) -> asyncio.Task[None]:
        """Tick every ``interval`` seconds.

        Args:
            interval: Seconds between passes.
            position: Returns ``(current_row, processing)`` for each pass.
        """
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self._run(interval, position))
        return self._task

    async def _run(self, interval: float, position: Callable[[], tuple[int, bool]]) -> None:
        while True:
            current_row, processing = position()
            self.tick(current_row, processing)
            await asyncio.sleep(interval)

    def reset(self) -> None:
        """Cancel the ticker and forget all reveal state."""
        self._cancel_task()
        self.state = RevealState()
        logger.debug("Reveal state reset")

    async def close(self) -> None:
        task = self._task
        self._cancel_task()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._unsubscribe()

    def _cancel_task(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
