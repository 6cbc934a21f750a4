"""FitGlue backend client.

Two calls:
    submit_batch()            - POST the normalized activities for ingestion
    fetch_remote_synced_ids() - GET the external IDs the backend already has

A batch submission is atomic from the caller's point of view: the backend
scores records individually, but any non-2xx response or transport error
means the whole batch failed and nothing should be treated as committed.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

from src.activity_sync.base import ActivitySource, NormalizedActivity, SubmissionResult
from src.activity_sync.config_loader import BackendConfig, get_sync_config

logger = logging.getLogger("fitglue.client")


class BackendError(RuntimeError):
    """Non-2xx response from the backend."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Server error: {status_code}")


@dataclass(frozen=True)
class DeviceInfo:
    """Device description sent with every batch."""

    os_version: str = ""
    app_version: str = "1.0.0"

    def to_json(self, source: ActivitySource) -> dict:
        return {
            "platform": source.device_platform,
            "osVersion": self.os_version or None,
            "appVersion": self.app_version,
        }


class BackendClient:
    """Authenticated calls to the FitGlue mobile sync API."""

    def __init__(
        self,
        base_url: str,
        device: DeviceInfo | None = None,
        config: BackendConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the client.

        Args:
            base_url:    Backend origin, e.g. https://fitglue.app.
            device:      Device description attached to submissions.
            config:      Endpoint paths (defaults to sync_config.yaml).
            http_client: Optional pre-configured httpx client (for testing).
            timeout:     Per-request timeout in seconds.
        """
        self._base_url = base_url.rstrip("/")
        self._device = device or DeviceInfo()
        self._config = config or get_sync_config().backend
        self._http_client = http_client
        self._timeout = timeout

    async def submit_batch(
        self,
        activities: list[NormalizedActivity],
        source: ActivitySource,
        token: str,
    ) -> SubmissionResult:
        """Submit a batch of activities.

        Returns:
            SubmissionResult.  ``retryable`` is True when the batch never
            reached a verdict (transport error or non-2xx response).
        """
        payload = {
            "activities": [a.to_json() for a in activities],
            "device": self._device.to_json(source),
            "sync": {"batchId": f"sync-{int(time.time() * 1000)}"},
        }

        try:
            response = await self._request(
                "POST", self._config.sync_path, token, json=payload
            )
        except httpx.HTTPError as exc:
            logger.error("Network error submitting %d activities: %s", len(activities), exc)
            return SubmissionResult(
                success=False, error=str(exc) or "Network error", retryable=True
            )

        if not response.is_success:
            logger.error("Backend error: %s %s", response.status_code, response.text[:500])
            return SubmissionResult(
                success=False,
                error=f"Server error: {response.status_code}",
                retryable=True,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        result = SubmissionResult(
            success=bool(body.get("success", True)),
            processed_count=_count(body.get("processedCount")),
            skipped_count=_count(body.get("skippedCount")),
            error=body.get("error"),
        )
        if not result.success and not result.error:
            result.error = "Backend rejected batch"
        logger.info(
            "Submitted %d activities: success=%s processed=%d skipped=%d",
            len(activities), result.success, result.processed_count, result.skipped_count,
        )
        return result

    async def fetch_remote_synced_ids(self, token: str) -> list[str]:
        """Return external IDs the backend already holds for this user.

        Raises:
            BackendError:    On non-2xx responses.
            httpx.HTTPError: On transport errors.
        """
        response = await self._request("GET", self._config.synced_ids_path, token)
        if not response.is_success:
            raise BackendError(response.status_code, response.text[:500])

        body = response.json()
        ids = body.get("externalIds", []) if isinstance(body, dict) else body
        return [str(i) for i in ids or [] if i]

    async def _request(
        self, method: str, path: str, token: str, **kwargs: object
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        if self._http_client:
            return await self._http_client.request(method, url, headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, headers=headers, **kwargs)


def _count(value: object) -> int:
    """Coerce a response counter to int; anything unparseable counts as 0."""
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
