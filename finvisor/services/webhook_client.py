"""Calls to the automation webhooks (exports, client reminders, uploads)."""
import logging
import re
from typing import Any, Optional, Sequence

import httpx

from finvisor.core.config import settings
from finvisor.core.errors import ConfigurationError, FormValidationError, WebhookError
from finvisor.schemas.webhook import ExportResult

logger = logging.getLogger(__name__)

FILENAME_PATTERN = re.compile(r'filename="?([^";]+)"?')


class WebhookClient:
    """Fire-and-forget HTTP client; failures raise ``WebhookError`` and are never retried."""

    def __init__(
        self,
        url: Optional[str] = None,
        upload_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = settings.WEBHOOK_URL if url is None else url
        self.upload_url = settings.UPLOAD_WEBHOOK_URL if upload_url is None else upload_url
        self.timeout = settings.WEBHOOK_TIMEOUT_SECONDS if timeout is None else timeout
        self.transport = transport

    async def _post(self, url: str, setting_name: str, **kwargs: Any) -> httpx.Response:
        if not url:
            raise ConfigurationError(f"Missing configuration: {setting_name} must be set")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Webhook call to %s failed: %s", url, e)
            raise WebhookError(f"Webhook unreachable: {e}") from e

        if not response.is_success:
            detail = response.text.strip()
            logger.error("Webhook %s answered %s: %s", url, response.status_code, detail)
            raise WebhookError(
                detail or f"Error {response.status_code} from webhook",
                status_code=response.status_code
            )
        return response

    async def export_receipts(
        self,
        receipt_ids: Sequence[int],
        fmt: str = "sheet",
        org_id: Optional[str] = None
    ) -> ExportResult:
        """
        Ask the webhook to export receipts.

        The answer is either a PDF body or JSON carrying ``sheet_url`` or
        ``download_url``.
        """
        if not receipt_ids:
            raise FormValidationError("Select at least one receipt", field="receipt_ids")

        response = await self._post(
            self.url,
            "WEBHOOK_URL",
            json={
                "action": "export",
                "format": fmt,
                "receipt_ids": list(receipt_ids),
                "org_id": org_id
            }
        )

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("application/pdf"):
            match = FILENAME_PATTERN.search(response.headers.get("content-disposition", ""))
            return ExportResult(
                pdf=response.content,
                filename=match.group(1) if match else "export.pdf"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise WebhookError("Malformed webhook response", status_code=response.status_code) from e

        if not isinstance(body, dict) or not (body.get("sheet_url") or body.get("download_url")):
            raise WebhookError("Webhook response has no export link", status_code=response.status_code)

        logger.info("Exported %d receipts as %s", len(receipt_ids), fmt)
        return ExportResult(sheet_url=body.get("sheet_url"), download_url=body.get("download_url"))

    async def send_client_reminder(
        self,
        client_id: str,
        email: str,
        message: str = "",
        org_id: Optional[str] = None
    ) -> None:
        """Send a reminder ("relance") asking a client for missing receipts."""
        if not email:
            raise FormValidationError("Client email is required", field="email")

        await self._post(
            self.url,
            "WEBHOOK_URL",
            json={
                "action": "client_reminder",
                "client_id": client_id,
                "email": email,
                "message": message,
                "org_id": org_id
            }
        )
        logger.info("Reminder sent to client %s", client_id)

    async def upload_receipt(
        self,
        filename: str,
        content: bytes,
        content_type: str,
        org_id: str,
        user_id: str,
        access_token: str
    ) -> None:
        """Hand a receipt file to the ingestion pipeline; the row arrives later via the feed."""
        if not content:
            raise FormValidationError("The file is empty", field="file")
        if not org_id:
            raise FormValidationError("Organisation not found for this user", field="org_id")

        await self._post(
            self.upload_url,
            "UPLOAD_WEBHOOK_URL",
            headers={"Authorization": f"Bearer {access_token}"},
            data={"org_id": org_id, "user_id": user_id},
            files={"file": (filename, content, content_type)}
        )
        logger.info("Uploaded %s for org %s", filename, org_id)
