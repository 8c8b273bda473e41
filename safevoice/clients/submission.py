"""HTTP client for the remote report submission endpoint."""

from __future__ import annotations

import json
import logging

import httpx

from safevoice.clients.base import AttachmentData, SubmissionReceipt
from safevoice.errors import SubmitError
from safevoice.models.report import Report
from safevoice.utils.retry import retry_async

logger = logging.getLogger(__name__)


class HttpReportSubmitter:
    """Submit reports as JSON, or multipart when attachments are present."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        retry_attempts: int = 3,
        retry_base_delay_seconds: float = 0.5,
        session: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = retry_attempts
        self.retry_base_delay_seconds = retry_base_delay_seconds
        self.session = session or httpx.AsyncClient(timeout=float(timeout_seconds), follow_redirects=True)

    async def submit_report(self, report: Report, attachments: list[AttachmentData]) -> SubmissionReceipt:
        """Post a report and return the remote receipt."""
        try:
            response = await retry_async(
                lambda: self._post(report, attachments),
                attempts=self.retry_attempts,
                base_delay_seconds=self.retry_base_delay_seconds,
            )
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning("Report submission rejected: report_id=%s status=%s", report.id, status_code)
            raise SubmitError(f"Submission failed with status {status_code}", status_code=status_code) from exc
        except httpx.HTTPError as exc:
            logger.warning("Report submission transport failure: report_id=%s error=%s", report.id, exc)
            raise SubmitError(f"Submission transport failure: {exc}") from exc

        return self._parse_receipt(report, response)

    async def close(self) -> None:
        """Close underlying HTTP client."""
        await self.session.aclose()

    async def _post(self, report: Report, attachments: list[AttachmentData]) -> httpx.Response:
        headers: dict[str, str] = {}
        if report.is_anonymous:
            headers["X-Anonymous-Report"] = "true"

        url = f"{self.base_url}/reports"
        payload = report.model_dump(mode="json", exclude={"status_history"})
        if attachments:
            files = [
                (f"attachment{index}", (item.filename, item.data, item.mime_type))
                for index, item in enumerate(attachments)
            ]
            response = await self.session.post(
                url,
                data={"report": json.dumps(payload)},
                files=files,
                headers=headers,
            )
        else:
            response = await self.session.post(url, json=payload, headers=headers)
        response.raise_for_status()
        return response

    def _parse_receipt(self, report: Report, response: httpx.Response) -> SubmissionReceipt:
        try:
            body = response.json()
        except ValueError as exc:
            raise SubmitError(f"Submission response was not valid JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise SubmitError("Submission response must be a JSON object")

        tracking_code = str(body.get("tracking_code") or "").strip()
        message = body.get("message")
        return SubmissionReceipt(
            id=str(body.get("id") or report.id),
            tracking_code=tracking_code or None,
            status=str(body.get("status") or "submitted"),
            message=str(message) if message else None,
        )
