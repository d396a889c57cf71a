import asyncio
from datetime import date, datetime, timezone

import httpx

from wecare_portal.history.actions import ActionRouter
from wecare_portal.history.aggregator import Aggregator
from wecare_portal.history.client import PortalClient, PortalServices
from wecare_portal.history.controller import HistoryController
from wecare_portal.history.events import DocumentEvent, EventAction, InvoiceEvent
from wecare_portal.history.resources import ResourceManager
from wecare_portal.main import app


def _portal_client(**kwargs) -> PortalClient:
    return PortalClient(
        "http://testserver", transport=httpx.ASGITransport(app=app), **kwargs
    )


def _seed(patient, make_appointment, make_invoice, make_document):
    make_appointment(
        patient, datetime(2026, 1, 5, 9, tzinfo=timezone.utc), appointment_type="checkup"
    )
    make_invoice(patient, date(2026, 1, 6), invoice_number="INV-0042", total_pence=7500)
    make_document(
        patient,
        datetime(2026, 1, 7, 12, tzinfo=timezone.utc),
        filename="passport.pdf",
        document_type="passport",
    )
    make_document(
        patient,
        datetime(2026, 1, 8, 12, tzinfo=timezone.utc),
        filename="notes.txt",
        mime_type="text/plain",
        content=b"plain notes",
        document_type="other",
    )


def test_timeline_search_preview_and_delete(
    db_session, patient, make_appointment, make_invoice, make_document, tmp_path
):
    _seed(patient, make_appointment, make_invoice, make_document)

    async def scenario():
        async with _portal_client() as client:
            await client.login("patient@example.com", "Patient-Passw0rd!")
            services = PortalServices.from_client(client)
            controller = HistoryController(Aggregator(services.history), page_size=3)
            resources = ResourceManager(scratch_dir=tmp_path / "scratch")
            router = ActionRouter(
                services, resources, on_change=controller.refresh, downloads_dir=tmp_path / "dl"
            )

            await controller.refresh()
            assert controller.error is None
            assert [record.type for record in controller.records] == [
                "document",
                "document",
                "invoice",
            ]
            assert controller.has_more is True

            await controller.load_more()
            assert len(controller.records) == 4
            assert controller.has_more is False
            assert controller.counts.total == 4

            controller.set_search("PASSPORT")
            assert len(controller.visible) == 1
            passport = controller.visible[0]
            assert isinstance(passport, DocumentEvent)
            assert passport in controller.records

            task = router.dispatch(passport)
            await task
            assert router.preview.document.original_filename == "passport.pdf"
            handle = router.preview.handle
            assert handle is not None
            assert handle.path.read_bytes() == b"%PDF-1.4 test document"

            assert await router.preview.delete() is True
            assert handle.revoked
            assert router.preview.handle is None
            remaining = [r.data.file_name for r in controller.records if isinstance(r, DocumentEvent)]
            assert remaining == ["notes.txt"]
            assert controller.visible == []

            resources.close()
            return resources

    resources = asyncio.run(scenario())
    assert resources.created_count == resources.revoked_count == 1


def test_receipt_download_and_payment(
    db_session, patient, make_appointment, make_invoice, make_document, tmp_path
):
    _seed(patient, make_appointment, make_invoice, make_document)

    async def scenario():
        async with _portal_client() as client:
            await client.login("patient@example.com", "Patient-Passw0rd!")
            services = PortalServices.from_client(client)
            controller = HistoryController(Aggregator(services.history))
            resources = ResourceManager(scratch_dir=tmp_path / "scratch")
            router = ActionRouter(
                services, resources, on_change=controller.refresh, downloads_dir=tmp_path / "dl"
            )

            await controller.change_filters(type="invoice")
            assert [record.type for record in controller.records] == ["invoice"]
            invoice_record = controller.records[0]
            assert isinstance(invoice_record, InvoiceEvent)

            await router.dispatch(invoice_record.with_action(EventAction.download_receipt))
            assert router.error is None
            assert router.last_download == tmp_path / "dl" / "invoice-INV-0042.pdf"
            assert router.last_download.read_bytes().startswith(b"%PDF")

            await router.dispatch(invoice_record)
            assert router.invoice.invoice.balance_pence == 7500

            assert await router.invoice.pay(10000, "card") is False
            assert router.invoice.error == "Payment exceeds outstanding balance"

            assert await router.invoice.pay(7500, "card") is True
            assert router.invoice.is_open is False
            assert controller.records[0].data.payment_status == "paid"

            missing = invoice_record.model_copy(
                update={"data": invoice_record.data.model_copy(update={"id": 9999})}
            )
            await router.dispatch(missing)
            assert router.invoice.error == "Invoice not found"
            return resources

    resources = asyncio.run(scenario())
    assert resources.created_count == resources.revoked_count == 1
    assert resources.live_handles == []
