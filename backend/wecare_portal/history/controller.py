from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field, replace
from datetime import date

from wecare_portal.core.settings import settings
from wecare_portal.history.aggregator import Aggregator
from wecare_portal.history.errors import PortalError
from wecare_portal.history.events import EventRecord
from wecare_portal.history.filters import EventCounts, FilterState, apply_search, event_counts

logger = logging.getLogger("wecare_portal.history.controller")


@dataclass(frozen=True)
class PaginationWindow:
    limit: int
    has_more: bool = True

    def expanded(self, increment: int) -> "PaginationWindow":
        return replace(self, limit=self.limit + increment)

    def after_fetch(self, returned: int) -> "PaginationWindow":
        # heuristic: a full page means more may exist
        return replace(self, has_more=returned == self.limit)


@dataclass
class HistoryState:
    window: PaginationWindow
    filters: FilterState = field(default_factory=FilterState)
    records: list[EventRecord] = field(default_factory=list)
    visible: list[EventRecord] = field(default_factory=list)
    loading: bool = False
    error: str | None = None


class HistoryController:
    """Owns the timeline state and the transitions that change it.

    Date and type filters go to the server; search narrows the fetched
    window locally.  Overlapping refreshes are resolved by sequence number:
    only the most recently started one may touch the state.
    """

    def __init__(
        self,
        aggregator: Aggregator,
        *,
        page_size: int | None = None,
        page_increment: int | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._increment = page_increment or settings.history_page_increment
        self._state = HistoryState(window=PaginationWindow(limit=page_size or settings.history_page_size))
        self._sequence = itertools.count(1)
        self._latest = 0

    @property
    def state(self) -> HistoryState:
        return self._state

    @property
    def filters(self) -> FilterState:
        return self._state.filters

    @property
    def records(self) -> list[EventRecord]:
        return self._state.records

    @property
    def visible(self) -> list[EventRecord]:
        return self._state.visible

    @property
    def window(self) -> PaginationWindow:
        return self._state.window

    @property
    def has_more(self) -> bool:
        return self._state.window.has_more

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def counts(self) -> EventCounts:
        return event_counts(self._state.records)

    @property
    def visible_counts(self) -> EventCounts:
        return event_counts(self._state.visible)

    async def refresh(self) -> None:
        sequence = next(self._sequence)
        self._latest = sequence
        filters = self._state.filters
        limit = self._state.window.limit
        self._state.loading = True
        self._state.error = None
        try:
            result = await self._aggregator.fetch(filters, limit)
        except PortalError as exc:
            if sequence != self._latest:
                logger.debug("Discarding stale failure for refresh %s", sequence)
                return
            logger.warning("Health history refresh failed: %s", exc.message)
            self._state.error = exc.message
            self._state.loading = False
            return
        except Exception:
            if sequence == self._latest:
                self._state.loading = False
            raise

        if sequence != self._latest:
            logger.debug("Discarding stale result for refresh %s", sequence)
            return
        self._state.records = result.records
        self._state.visible = apply_search(result.records, self._state.filters.search)
        # raw item count, rejected items included
        self._state.window = self._state.window.after_fetch(result.returned)
        self._state.loading = False

    async def load_more(self) -> None:
        if not self._state.window.has_more:
            logger.debug("Load more ignored; window exhausted at %s", self._state.window.limit)
            return
        self._state.window = self._state.window.expanded(self._increment)
        await self.refresh()

    async def change_filters(self, **changes) -> None:
        await self._apply_filters(self._state.filters.with_changes(**changes))

    async def apply_preset(self, preset: str, today: date | None = None) -> None:
        await self._apply_filters(self._state.filters.with_preset(preset, today=today))

    async def clear_filters(self) -> None:
        await self._apply_filters(self._state.filters.cleared())

    def set_search(self, search: str) -> None:
        self._state.filters = self._state.filters.with_changes(search=search)
        self._state.visible = apply_search(self._state.records, search)

    async def _apply_filters(self, filters: FilterState) -> None:
        previous = self._state.filters
        self._state.filters = filters
        if filters.server_key != previous.server_key:
            await self.refresh()
            return
        self._state.visible = apply_search(self._state.records, filters.search)
