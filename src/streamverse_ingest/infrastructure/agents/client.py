"""HTTP client for remote transfer agents."""

from __future__ import annotations

from typing import Any, cast
from urllib.parse import quote

import httpx

from streamverse_ingest.domain.errors import RemoteAgentError
from streamverse_ingest.domain.jobs import RemoteTransferStatus, TransferJobStatus
from streamverse_ingest.domain.ports import RemoteTransferAgent
from streamverse_ingest.domain.sources import SourceCredential

SECRET_HEADER = "X-Transfer-Secret"


class RemoteTransferClient(RemoteTransferAgent):
    """Wrapper around a remote agent's start/poll/cancel endpoints.

    The remote side exposes the same contract as this service:
    `POST /transfers`, `GET /transfers/{id}`, `POST /transfers/{id}/cancel`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        secret: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = self._normalize_base_url(base_url)
        self._secret = secret
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def start_transfer(
        self,
        *,
        source_url: str,
        destination_name: str,
        credential: SourceCredential | None = None,
    ) -> str:
        """Call `POST /transfers` and return the remote job id."""

        body: dict[str, Any] = {
            "sourceUrl": source_url,
            "destinationName": destination_name,
        }
        if credential is not None and not credential.is_empty:
            body["credential"] = {
                "cookies": credential.cookies,
                "bearerToken": credential.bearer_token,
                "headers": dict(credential.headers),
            }

        payload = await self._request("POST", "/transfers", json=body)
        job_id = payload.get("jobId")
        if not isinstance(job_id, str) or not job_id:
            raise RemoteAgentError(f"{self._base_url} did not return a job id.")
        return job_id

    async def get_transfer(self, job_id: str) -> RemoteTransferStatus:
        """Call `GET /transfers/{jobId}`."""

        payload = await self._request("GET", f"/transfers/{quote(job_id, safe='')}")
        raw_status = payload.get("status")
        try:
            status = TransferJobStatus(str(raw_status))
        except ValueError as exc:
            raise RemoteAgentError(
                f"{self._base_url} reported unknown status '{raw_status}'."
            ) from exc

        return RemoteTransferStatus(
            job_id=job_id,
            status=status,
            bytes_transferred=self._int(payload.get("bytesTransferred")),
            total_bytes=self._int(payload.get("totalBytes")),
            destination_name=cast(str | None, payload.get("destinationName")),
            error=cast(str | None, payload.get("error")),
        )

    async def cancel_transfer(self, job_id: str) -> None:
        """Call `POST /transfers/{jobId}/cancel`."""

        await self._request("POST", f"/transfers/{quote(job_id, safe='')}/cancel")

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        headers = {SECRET_HEADER: self._secret} if self._secret else {}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as http_client:
                response = await http_client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise RemoteAgentError(f"{method} {url} failed: {exc}") from exc

        self._ensure_success(response)
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteAgentError(f"{method} {url} returned invalid JSON.") from exc
        if not isinstance(payload, dict):
            raise RemoteAgentError(f"{method} {url} returned an unexpected payload.")
        return payload

    def _ensure_success(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        message = self._detail_from_response(response)
        raise RemoteAgentError(
            f"{response.request.method} {response.request.url} failed: "
            f"{response.status_code} {message}"
        )

    def _detail_from_response(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            text = response.text.strip()
            return text or "<no response body>"

        if isinstance(payload, dict):
            detail = payload.get("detail")
            if isinstance(detail, str):
                return detail
        return str(payload)

    def _normalize_base_url(self, base_url: str) -> str:
        normalized = base_url.strip().rstrip("/")
        if not normalized:
            raise RemoteAgentError("Remote agent endpoint cannot be empty.")
        return normalized

    def _int(self, value: object) -> int:
        return value if isinstance(value, int) and value > 0 else 0


__all__ = ["SECRET_HEADER", "RemoteTransferClient"]
