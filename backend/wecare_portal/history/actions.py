"""Click handling for timeline entries.

``ActionRouter.dispatch`` picks a handler from the entry's ``(type, action)``
pair and schedules it on the running loop.  The detail and preview
surfaces own what the handlers present, including the preview handle.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from wecare_portal.core.settings import settings
from wecare_portal.history.client import (
    Appointment,
    AppointmentService,
    DocumentMetadata,
    DocumentService,
    Invoice,
    InvoiceService,
    PortalServices,
)
from wecare_portal.history.errors import PortalError
from wecare_portal.history.events import EventAction, EventRecord, EventType
from wecare_portal.history.resources import Handle, PreviewSlot, ResourceManager

logger = logging.getLogger("wecare_portal.history.actions")

OnChange = Optional[Callable[[], Awaitable[None]]]
Handler = Callable[[EventRecord], Awaitable[None]]

GENERIC_ERROR = PortalError.default_message


class _Surface:
    def __init__(self) -> None:
        self.error: str | None = None
        self.loading = False
        self._sequence = itertools.count(1)
        self._latest = 0

    def _begin(self) -> int:
        self._latest = next(self._sequence)
        self.loading = True
        self.error = None
        return self._latest

    def _is_stale(self, sequence: int) -> bool:
        if sequence != self._latest:
            logger.debug("%s discarding superseded load %s", type(self).__name__, sequence)
            return True
        return False

    def _fail(self, sequence: int, exc: PortalError) -> None:
        if self._is_stale(sequence):
            return
        logger.warning("%s failed: %s", type(self).__name__, exc.message)
        self.error = exc.message
        self.loading = False


class AppointmentDetailSurface(_Surface):
    def __init__(self, service: AppointmentService) -> None:
        super().__init__()
        self._service = service
        self.appointment: Appointment | None = None

    @property
    def is_open(self) -> bool:
        return self.appointment is not None

    async def open(self, appointment_id: int) -> None:
        sequence = self._begin()
        try:
            appointment = await self._service.fetch_by_id(appointment_id)
        except PortalError as exc:
            self._fail(sequence, exc)
            return
        if self._is_stale(sequence):
            return
        self.appointment = appointment
        self.loading = False

    def close(self) -> None:
        self.appointment = None
        self.error = None


class InvoiceDetailSurface(_Surface):
    def __init__(self, service: InvoiceService, on_change: OnChange = None) -> None:
        super().__init__()
        self._service = service
        self._on_change = on_change
        self.invoice: Invoice | None = None

    @property
    def is_open(self) -> bool:
        return self.invoice is not None

    async def open(self, invoice_id: int) -> None:
        sequence = self._begin()
        try:
            invoice = await self._service.fetch_by_id(invoice_id)
        except PortalError as exc:
            self._fail(sequence, exc)
            return
        if self._is_stale(sequence):
            return
        self.invoice = invoice
        self.loading = False

    async def pay(self, amount_pence: int, method: str, reference: str | None = None) -> bool:
        """Record a payment against the shown invoice.

        On success the surface closes and the timeline is refreshed.
        """
        if self.invoice is None:
            self.error = "No invoice selected"
            return False
        try:
            await self._service.pay(
                self.invoice.id, amount_pence=amount_pence, method=method, reference=reference
            )
        except PortalError as exc:
            logger.warning("Payment for invoice %s failed: %s", self.invoice.id, exc.message)
            self.error = exc.message
            return False
        logger.info("Payment of %s recorded for invoice %s", amount_pence, self.invoice.id)
        self.close()
        if self._on_change is not None:
            await self._on_change()
        return True

    def close(self) -> None:
        self.invoice = None
        self.error = None


class DocumentPreviewSurface(_Surface):
    """Shows one document at a time and owns its preview handle."""

    def __init__(
        self,
        service: DocumentService,
        resources: ResourceManager,
        *,
        on_change: OnChange = None,
        downloads_dir: Path | None = None,
    ) -> None:
        super().__init__()
        self._service = service
        self._resources = resources
        self._on_change = on_change
        self._downloads_dir = Path(downloads_dir or settings.downloads_dir)
        self._slot = PreviewSlot(resources)
        self.document: DocumentMetadata | None = None

    @property
    def is_open(self) -> bool:
        return self.document is not None

    @property
    def handle(self) -> Handle | None:
        return self._slot.handle

    async def open(self, document_id: int) -> None:
        sequence = self._begin()
        blob = None
        try:
            document = await self._service.fetch_by_id(document_id)
            if document.previewable:
                blob = await self._service.fetch_content(document_id, inline=True)
        except PortalError as exc:
            self._fail(sequence, exc)
            return
        if self._is_stale(sequence):
            return
        if blob is not None:
            self._slot.replace(blob)
        else:
            self._slot.release()
        self.document = document
        self.loading = False

    async def download(self) -> Path | None:
        if self.document is None:
            self.error = "No document selected"
            return None
        document = self.document
        try:
            blob = await self._service.fetch_content(document.id, inline=False)
            filename = blob.filename or document.original_filename or f"document-{document.id}"
            return self._resources.download(blob, filename, self._downloads_dir)
        except PortalError as exc:
            logger.warning("Download of document %s failed: %s", document.id, exc.message)
            self.error = exc.message
        except OSError as exc:
            logger.warning("Saving document %s failed: %s", document.id, exc)
            self.error = "Failed to save the file"
        return None

    async def delete(self) -> bool:
        if self.document is None:
            self.error = "No document selected"
            return False
        document_id = self.document.id
        try:
            await self._service.remove(document_id)
        except PortalError as exc:
            logger.warning("Delete of document %s failed: %s", document_id, exc.message)
            self.error = exc.message
            return False
        logger.info("Document %s deleted", document_id)
        self.close()
        if self._on_change is not None:
            await self._on_change()
        return True

    def close(self) -> None:
        self._slot.release()
        self.document = None
        self.error = None

    def __enter__(self) -> "DocumentPreviewSurface":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _route_appointment(router: "ActionRouter", record: EventRecord) -> Handler:
    return router.view_appointment


def _route_invoice(router: "ActionRouter", record: EventRecord) -> Handler:
    if record.action == EventAction.download_receipt:
        return router.download_receipt
    return router.view_invoice


def _route_document(router: "ActionRouter", record: EventRecord) -> Handler:
    if record.action == EventAction.download:
        return router.download_document
    return router.view_document


ROUTES: dict[EventType, Callable[["ActionRouter", EventRecord], Handler]] = {
    EventType.appointment: _route_appointment,
    EventType.invoice: _route_invoice,
    EventType.document: _route_document,
}

_missing = set(EventType) - set(ROUTES)
if _missing:
    raise RuntimeError(f"Routes missing for event types: {sorted(t.value for t in _missing)}")


class ActionRouter:
    def __init__(
        self,
        services: PortalServices,
        resources: ResourceManager,
        *,
        on_change: OnChange = None,
        downloads_dir: Path | None = None,
    ) -> None:
        self._services = services
        self._resources = resources
        self._downloads_dir = Path(downloads_dir or settings.downloads_dir)
        self._tasks: set[asyncio.Task] = set()
        self.appointment = AppointmentDetailSurface(services.appointments)
        self.invoice = InvoiceDetailSurface(services.invoices, on_change)
        self.preview = DocumentPreviewSurface(
            services.documents,
            resources,
            on_change=on_change,
            downloads_dir=self._downloads_dir,
        )
        self.error: str | None = None
        self.last_download: Path | None = None

    def resolve(self, record: EventRecord) -> Handler | None:
        if record.data.id is None:
            return None
        try:
            event_type = EventType(record.type)
        except ValueError:
            return None
        return ROUTES[event_type](self, record)

    def dispatch(self, record: EventRecord) -> asyncio.Task | None:
        handler = self.resolve(record)
        if handler is None:
            logger.info("No action for %s entry %s", record.type, record.data.id)
            return None
        task = asyncio.get_running_loop().create_task(self._run(handler, record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, handler: Handler, record: EventRecord) -> None:
        try:
            await handler(record)
        except Exception:
            logger.exception("Action for %s %s failed", record.type, record.data.id)
            self.error = GENERIC_ERROR

    async def join(self) -> None:
        """Wait for every dispatched handler to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def view_appointment(self, record: EventRecord) -> None:
        await self.appointment.open(record.data.id)

    async def view_invoice(self, record: EventRecord) -> None:
        await self.invoice.open(record.data.id)

    async def view_document(self, record: EventRecord) -> None:
        await self.preview.open(record.data.id)

    async def download_receipt(self, record: EventRecord) -> None:
        invoice_id = record.data.id
        number = getattr(record.data, "invoice_number", None)
        fallback = f"invoice-{number}.pdf" if number else f"invoice-{invoice_id}.pdf"
        await self._download(self._services.invoices.fetch_receipt(invoice_id), fallback)

    async def download_document(self, record: EventRecord) -> None:
        document_id = record.data.id
        fallback = getattr(record.data, "file_name", None) or f"document-{document_id}"
        await self._download(
            self._services.documents.fetch_content(document_id, inline=False), fallback
        )

    async def _download(self, fetch: Awaitable, fallback: str) -> None:
        self.error = None
        try:
            blob = await fetch
            self.last_download = self._resources.download(
                blob, blob.filename or fallback, self._downloads_dir
            )
        except PortalError as exc:
            logger.warning("Download failed: %s", exc.message)
            self.error = exc.message
        except OSError as exc:
            logger.warning("Saving download failed: %s", exc)
            self.error = "Failed to save the file"

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.appointment.close()
        self.invoice.close()
        self.preview.close()
