from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Optional, TypeVar
from urllib.parse import unquote

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from wecare_portal.core.settings import settings
from wecare_portal.history.errors import ActionFailure, FetchFailure, NotFound, PortalError
from wecare_portal.history.resources import Blob

logger = logging.getLogger("wecare_portal.history.client")

_Entity = TypeVar("_Entity", bound=BaseModel)

_FILENAME_STAR = re.compile(r"filename\*=UTF-8''([^;]+)", re.IGNORECASE)
_FILENAME = re.compile(r'filename="?([^";\n]+)"?', re.IGNORECASE)


def parse_content_disposition(header: str | None) -> str | None:
    if not header:
        return None
    match = _FILENAME_STAR.search(header)
    if match:
        return unquote(match.group(1).strip())
    match = _FILENAME.search(header)
    if match:
        return match.group(1).strip()
    return None


class Appointment(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    appointment_datetime: datetime
    appointment_type: Optional[str] = None
    status: str
    notes: Optional[str] = None


class Invoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    invoice_number: str
    status: str
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    total_pence: int = 0
    balance_pence: int = 0


class DocumentMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    document_type: str
    original_filename: str
    mime_type: str
    file_size: int = 0

    @property
    def previewable(self) -> bool:
        return self.mime_type.startswith("image/") or self.mime_type == "application/pdf"


class PortalClient:
    """Thin async wrapper over the portal API.

    Non-2xx responses become :class:`PortalError` subclasses carrying the
    server's ``detail`` message; transport errors become ``FetchFailure``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.portal_base_url,
            timeout=timeout or settings.portal_timeout_seconds,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_token(self, token: str) -> None:
        self._client.headers["Authorization"] = f"Bearer {token}"

    async def login(self, email: str, password: str) -> str:
        data = await self.request_json("POST", "/auth/login", json={"email": email, "password": password})
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise FetchFailure("Login response did not include a token")
        self.set_token(token)
        return token

    async def _send(self, method: str, path: str, error_cls: type[PortalError], **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise error_cls("Unable to reach the server. Please check your connection.") from exc
        if response.is_success:
            error_message = response.headers.get("x-error-message")
            if error_message:
                raise error_cls(error_message, status_code=response.status_code)
            return response
        message = _error_detail(response)
        logger.info("%s %s returned %s: %s", method, path, response.status_code, message)
        if response.status_code == httpx.codes.NOT_FOUND and error_cls is FetchFailure:
            raise NotFound(message, status_code=response.status_code)
        raise error_cls(message, status_code=response.status_code)

    async def request_json(
        self, method: str, path: str, *, error_cls: type[PortalError] = FetchFailure, **kwargs
    ) -> Any:
        response = await self._send(method, path, error_cls, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise error_cls("The server returned an unreadable response") from exc

    async def request_blob(
        self, method: str, path: str, *, error_cls: type[PortalError] = FetchFailure, **kwargs
    ) -> Blob:
        response = await self._send(method, path, error_cls, **kwargs)
        return Blob(
            content=response.content,
            content_type=response.headers.get("content-type", "application/octet-stream"),
            filename=parse_content_disposition(response.headers.get("content-disposition")),
        )


def _error_detail(response: httpx.Response) -> str | None:
    error_message = response.headers.get("x-error-message")
    if error_message:
        return error_message
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list) and detail and isinstance(detail[0], dict):
            return detail[0].get("msg")
    return None


def _entity(model: type[_Entity], data: Any, what: str) -> _Entity:
    if not data:
        raise NotFound(f"{what} not found")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Malformed %s payload: %s", what.lower(), exc)
        raise FetchFailure(f"{what} details could not be read") from exc


class HealthHistoryService:
    def __init__(self, client: PortalClient) -> None:
        self._client = client

    async def fetch_events(self, params: dict[str, Any]) -> list[Any]:
        data = await self._client.request_json("GET", "/patients/me/health-history", params=params)
        if not isinstance(data, dict) or not isinstance(data.get("events"), list):
            raise FetchFailure("Failed to load health history. Please try again.")
        return data["events"]


class AppointmentService:
    def __init__(self, client: PortalClient) -> None:
        self._client = client

    async def fetch_by_id(self, appointment_id: int) -> Appointment:
        data = await self._client.request_json("GET", f"/appointments/{appointment_id}")
        return _entity(Appointment, data, "Appointment")


class InvoiceService:
    def __init__(self, client: PortalClient) -> None:
        self._client = client

    async def fetch_by_id(self, invoice_id: int) -> Invoice:
        data = await self._client.request_json("GET", f"/invoices/{invoice_id}")
        return _entity(Invoice, data, "Invoice")

    async def fetch_receipt(self, invoice_id: int) -> Blob:
        return await self._client.request_blob(
            "GET", f"/invoices/{invoice_id}/receipt", error_cls=ActionFailure
        )

    async def pay(
        self, invoice_id: int, *, amount_pence: int, method: str, reference: str | None = None
    ) -> dict:
        payload = {"amount_pence": amount_pence, "method": method, "reference": reference}
        return await self._client.request_json(
            "POST", f"/invoices/{invoice_id}/payments", json=payload, error_cls=ActionFailure
        )


class DocumentService:
    def __init__(self, client: PortalClient) -> None:
        self._client = client

    async def fetch_all(self, document_type: str | None = None) -> list[DocumentMetadata]:
        params = {"document_type": document_type} if document_type else None
        data = await self._client.request_json("GET", "/documents", params=params)
        if not isinstance(data, list):
            raise FetchFailure("Failed to load documents. Please try again.")
        try:
            return [DocumentMetadata.model_validate(item) for item in data]
        except ValidationError as exc:
            logger.warning("Malformed document listing: %s", exc)
            raise FetchFailure("Document details could not be read") from exc

    async def fetch_by_id(self, document_id: int) -> DocumentMetadata:
        data = await self._client.request_json("GET", f"/documents/{document_id}")
        return _entity(DocumentMetadata, data, "Document")

    async def fetch_content(self, document_id: int, *, inline: bool = True) -> Blob:
        if inline:
            return await self._client.request_blob("GET", f"/documents/{document_id}/view")
        return await self._client.request_blob(
            "GET", f"/documents/{document_id}/download", error_cls=ActionFailure
        )

    async def remove(self, document_id: int) -> dict:
        data = await self._client.request_json(
            "DELETE", f"/documents/{document_id}", error_cls=ActionFailure
        )
        if not isinstance(data, dict) or not data.get("success"):
            message = data.get("message") if isinstance(data, dict) else None
            raise ActionFailure(message or "Delete failed")
        return data


class PortalServices:
    """The single-entity and timeline collaborators, bundled for injection."""

    def __init__(
        self,
        *,
        history: HealthHistoryService,
        appointments: AppointmentService,
        invoices: InvoiceService,
        documents: DocumentService,
    ) -> None:
        self.history = history
        self.appointments = appointments
        self.invoices = invoices
        self.documents = documents

    @classmethod
    def from_client(cls, client: PortalClient) -> "PortalServices":
        return cls(
            history=HealthHistoryService(client),
            appointments=AppointmentService(client),
            invoices=InvoiceService(client),
            documents=DocumentService(client),
        )
