"""Client for the external report rendering service.

The service turns one report record into a PDF.  It is called once per
report entry in a packet and may be slow (headless browser rendering), so
the timeout is generous and every failure is surfaced as ``RenderError``
for the assembler to log and skip.
"""
from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

import httpx

from app.core.settings import get_settings
from app.surge.errors import RenderError
from app.surge.pdf import looks_like_pdf

logger = logging.getLogger(__name__)


class ReportRenderer(Protocol):
    def render(self, record_id: UUID) -> bytes:
        ...


class HttpReportRenderer:
    """Synchronous httpx client for ``GET /api/value-add/{id}/pdf``.

    Parameters
    ----------
    base_url:
        Rendering service base URL.  Defaults to ``settings.renderer_url``.
    token:
        Optional bearer token.  Defaults to ``settings.renderer_token``.
    timeout_s:
        Request timeout in seconds.  Defaults to
        ``settings.renderer_timeout_s``.
    transport:
        Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        token: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.renderer_url).rstrip("/")
        self.token = token if token is not None else settings.renderer_token
        self.timeout_s = timeout_s if timeout_s is not None else settings.renderer_timeout_s
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/pdf"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def render(self, record_id: UUID) -> bytes:
        url = f"{self.base_url}/api/value-add/{record_id}/pdf"
        try:
            with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
                response = client.get(url, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise RenderError(f"Rendering timed out for report {record_id}") from exc
        except httpx.HTTPError as exc:
            raise RenderError(f"Rendering service unreachable for report {record_id}: {exc}") from exc

        if response.status_code != 200:
            raise RenderError(f"Rendering service returned HTTP {response.status_code} for report {record_id}")

        content = response.content
        if not looks_like_pdf(content):
            raise RenderError(f"Rendering service returned a non-PDF payload for report {record_id}")

        logger.debug("Rendered report %s (%d bytes)", record_id, len(content))
        return content
