from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from wecare_portal.history.events import EventRecord, InvalidEvent, parse_event
from wecare_portal.history.filters import FilterState

logger = logging.getLogger("wecare_portal.history.aggregator")


class EventSource(Protocol):
    async def fetch_events(self, params: dict[str, Any]) -> list[Any]: ...


@dataclass(frozen=True)
class FetchResult:
    records: list[EventRecord] = field(default_factory=list)
    # items the server sent, including any rejected below
    returned: int = 0

    @property
    def rejected(self) -> int:
        return self.returned - len(self.records)


class Aggregator:
    """Pulls one window of the combined timeline from the server.

    The server performs the union and ordering across entity types; this
    only validates each item and keeps the upstream order.
    """

    def __init__(self, source: EventSource) -> None:
        self._source = source

    async def fetch(self, filters: FilterState, limit: int) -> FetchResult:
        raw_events = await self._source.fetch_events(filters.request_params(limit))
        records: list[EventRecord] = []
        for index, raw in enumerate(raw_events):
            try:
                records.append(parse_event(raw))
            except InvalidEvent as exc:
                logger.warning("Dropping timeline item %s: %s", index, exc)
        result = FetchResult(records=records, returned=len(raw_events))
        if result.rejected:
            logger.info("Timeline fetch kept %s of %s items", len(records), result.returned)
        return result
