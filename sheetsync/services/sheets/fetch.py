"""
Sheet Fetch

Downloads a sheet as CSV from the remote document service.

The sheet only needs to be shared as "anyone with the link can view";
no API key is involved. Reuses a single HTTP client across requests.
"""

from dataclasses import dataclass
from typing import Protocol

import httpx

from ...common.config import DEFAULT_EXPORT_URL
from ...common.exceptions import TransportError
from ...common.logging_setup import get_service_logger

logger = get_service_logger("sheets.fetch")


@dataclass
class FetchResult:
    """
    Outcome of one remote fetch.

    status is the HTTP status code when a response arrived, otherwise
    the transport error text.
    """
    body: str
    success: bool
    status: int | str | None = None


class RemoteFetcher(Protocol):
    async def fetch(self, document_id: str, sub_document_id: str) -> FetchResult:
        ...


class SheetFetcher:
    """Fetches exported sheet documents over HTTP"""

    def __init__(
        self,
        url_template: str = DEFAULT_EXPORT_URL,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url_template = url_template
        self.timeout = timeout
        # Reusable HTTP client - avoids connection overhead per request
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create reusable HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def build_url(self, document_id: str, sub_document_id: str) -> str:
        return self.url_template.format(
            document_id=document_id,
            sub_document_id=sub_document_id,
        )

    async def _request(self, document_id: str, sub_document_id: str) -> httpx.Response:
        """
        GET the export URL.

        Raises:
            TransportError: On connection failure or non-success status
        """
        client = await self._get_client()
        url = self.build_url(document_id, sub_document_id)

        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            error = str(e) or type(e).__name__
            raise TransportError(error, document_id=document_id, status=error)

        if not response.is_success:
            raise TransportError(
                f"HTTP {response.status_code} for sheet {document_id}/{sub_document_id}",
                document_id=document_id,
                status=response.status_code,
            )

        return response

    async def fetch(self, document_id: str, sub_document_id: str) -> FetchResult:
        """
        Fetch the sheet body.

        Returns:
            FetchResult; never raises for transport failures
        """
        try:
            response = await self._request(document_id, sub_document_id)
        except TransportError as e:
            logger.warning(
                f"Failed to fetch sheet: {e.message}",
                extra={"document_id": document_id, "status": e.status},
            )
            return FetchResult(body="", success=False, status=e.status)

        logger.debug(
            f"Fetched sheet {document_id}/{sub_document_id} ({len(response.text)} bytes)",
            extra={"document_id": document_id, "status": response.status_code},
        )
        return FetchResult(body=response.text, success=True, status=response.status_code)
