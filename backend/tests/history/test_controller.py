import asyncio
from datetime import date

import pytest

from wecare_portal.core.settings import settings
from wecare_portal.history.aggregator import Aggregator
from wecare_portal.history.controller import HistoryController, PaginationWindow
from wecare_portal.history.errors import FetchFailure


def _raw(event_type, event_id, **data):
    return {
        "type": event_type,
        "timestamp": f"2026-03-{(event_id % 28) + 1:02d}T10:00:00Z",
        "data": {"id": event_id, **data},
    }


class ScriptedSource:
    """Serves a fixed corpus honouring ``limit`` and ``type`` like the server does."""

    def __init__(self, corpus):
        self.corpus = corpus
        self.calls = []
        self.fail_next = None

    async def fetch_events(self, params):
        self.calls.append(dict(params))
        if self.fail_next:
            error, self.fail_next = self.fail_next, None
            raise error
        events = self.corpus
        if "type" in params:
            events = [event for event in events if event["type"] == params["type"]]
        return events[: params["limit"]]


class GatedSource:
    def __init__(self):
        self.calls = []

    async def fetch_events(self, params):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((dict(params), future))
        return await future


def _corpus(count):
    kinds = ["appointment", "invoice", "document"]
    return [_raw(kinds[index % 3], index, appointment_type="checkup") for index in range(count)]


def _controller(source, **kwargs):
    kwargs.setdefault("page_size", 20)
    kwargs.setdefault("page_increment", 20)
    return HistoryController(Aggregator(source), **kwargs)


def test_initial_state():
    controller = _controller(ScriptedSource([]))
    assert controller.window == PaginationWindow(limit=20, has_more=True)
    assert controller.records == []
    assert controller.visible == []
    assert controller.loading is False
    assert controller.error is None


@pytest.mark.parametrize("available, expected_has_more", [(45, True), (20, True), (7, False), (0, False)])
def test_has_more_tracks_full_pages(available, expected_has_more):
    controller = _controller(ScriptedSource(_corpus(available)))
    asyncio.run(controller.refresh())
    assert len(controller.records) == min(available, 20)
    assert controller.has_more is expected_has_more


def test_load_more_refetches_with_larger_window():
    source = ScriptedSource(_corpus(30))
    controller = _controller(source)

    async def scenario():
        await controller.refresh()
        first_page = list(controller.records)
        await controller.load_more()
        return first_page

    first_page = asyncio.run(scenario())
    assert [call["limit"] for call in source.calls] == [20, 40]
    assert len(controller.records) == 30
    assert [record.key for record in controller.records[:20]] == [r.key for r in first_page]
    assert controller.window.limit == 40
    assert controller.has_more is False


def test_rejected_items_in_full_page_keep_has_more():
    corpus = _corpus(30)
    corpus[3] = {**corpus[3], "timestamp": ""}
    source = ScriptedSource(corpus)
    controller = _controller(source)

    async def scenario():
        await controller.refresh()
        assert len(controller.records) == 19
        assert controller.has_more is True
        await controller.load_more()

    asyncio.run(scenario())
    assert [call["limit"] for call in source.calls] == [20, 40]
    assert len(controller.records) == 29
    assert controller.has_more is False


def test_load_more_is_ignored_once_exhausted():
    source = ScriptedSource(_corpus(5))
    controller = _controller(source)

    async def scenario():
        await controller.refresh()
        await controller.load_more()

    asyncio.run(scenario())
    assert len(source.calls) == 1
    assert controller.window.limit == 20


def test_load_more_failure_keeps_collection_and_has_more():
    source = ScriptedSource(_corpus(25))
    controller = _controller(source)

    async def scenario():
        await controller.refresh()
        before = list(controller.records)
        source.fail_next = FetchFailure("Failed to load health history. Please try again.")
        await controller.load_more()
        return before

    before = asyncio.run(scenario())
    assert controller.records == before
    assert controller.has_more is True
    assert controller.error == "Failed to load health history. Please try again."
    assert controller.loading is False
    assert controller.window.limit == 40


def test_failed_refresh_keeps_populated_view():
    source = ScriptedSource(_corpus(3))
    controller = _controller(source)

    async def scenario():
        await controller.refresh()
        source.fail_next = FetchFailure()
        await controller.refresh()

    asyncio.run(scenario())
    assert len(controller.records) == 3
    assert controller.error == FetchFailure.default_message


def test_successful_refresh_clears_error():
    source = ScriptedSource(_corpus(3))
    controller = _controller(source)

    async def scenario():
        source.fail_next = FetchFailure("boom")
        await controller.refresh()
        assert controller.error == "boom"
        await controller.refresh()

    asyncio.run(scenario())
    assert controller.error is None
    assert len(controller.records) == 3


def test_type_filter_refetches_and_yields_only_that_type():
    source = ScriptedSource(_corpus(12))
    controller = _controller(source)

    async def scenario():
        await controller.refresh()
        await controller.change_filters(type="invoice")

    asyncio.run(scenario())
    assert source.calls[-1] == {"limit": 20, "type": "invoice"}
    assert controller.records
    assert all(record.type == "invoice" for record in controller.records)
    assert all(record.type == "invoice" for record in controller.visible)


def test_search_is_local_only():
    corpus = [
        _raw("document", 1, document_type="passport", file_name="p1.pdf"),
        _raw("appointment", 2, appointment_type="checkup"),
    ]
    source = ScriptedSource(corpus)
    controller = _controller(source)

    async def scenario():
        await controller.refresh()
        controller.set_search("passport")
        await controller.change_filters(search="PASSPORT ")

    asyncio.run(scenario())
    assert len(source.calls) == 1
    assert [record.key for record in controller.visible] == [("document", 1)]
    assert controller.visible[0] is controller.records[0]
    assert controller.filters.search == "PASSPORT "
    assert controller.counts.total == 2
    assert controller.visible_counts.total == 1
    assert controller.visible_counts.documents == 1


def test_new_records_keep_search_applied():
    corpus = [_raw("document", 1, document_type="passport")]
    source = ScriptedSource(corpus)
    controller = _controller(source)

    async def scenario():
        controller.set_search("passport")
        await controller.refresh()
        source.corpus = corpus + [_raw("document", 2, document_type="passport")]
        await controller.refresh()

    asyncio.run(scenario())
    assert [record.data.id for record in controller.visible] == [1, 2]


def test_preset_and_clear_filters():
    source = ScriptedSource(_corpus(3))
    controller = _controller(source)

    async def scenario():
        await controller.apply_preset("last7days", today=date(2026, 3, 10))
        await controller.clear_filters()

    asyncio.run(scenario())
    assert source.calls[0] == {"limit": 20, "start_date": "2026-03-03", "end_date": "2026-03-10"}
    assert source.calls[1] == {"limit": 20}
    assert controller.filters.start_date is None


def test_stale_success_does_not_overwrite_newer_result():
    source = GatedSource()
    controller = _controller(source)

    async def scenario():
        first = asyncio.create_task(controller.change_filters(type="invoice"))
        await asyncio.sleep(0)
        second = asyncio.create_task(controller.change_filters(type="document"))
        await asyncio.sleep(0)

        source.calls[1][1].set_result([_raw("document", 2)])
        await second
        assert controller.loading is False

        source.calls[0][1].set_result([_raw("invoice", index) for index in range(20)])
        await first

    asyncio.run(scenario())
    assert [record.key for record in controller.records] == [("document", 2)]
    assert controller.has_more is False
    assert controller.filters.type == "document"


def test_stale_failure_does_not_set_error():
    source = GatedSource()
    controller = _controller(source)

    async def scenario():
        first = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)
        second = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)

        source.calls[0][1].set_exception(FetchFailure("late failure"))
        await first
        assert controller.loading is True

        source.calls[1][1].set_result([_raw("appointment", 1)])
        await second

    asyncio.run(scenario())
    assert controller.error is None
    assert controller.loading is False
    assert len(controller.records) == 1


def test_page_size_defaults_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "history_page_size", 15)
    controller = HistoryController(Aggregator(ScriptedSource([])))
    assert controller.window.limit == 15
