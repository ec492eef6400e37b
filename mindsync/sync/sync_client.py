"""Client for pushing snapshots to a remote mindsync server.

Handles network synchronization with retry logic.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from ..merge import Snapshot, SnapshotFormatError

logger = logging.getLogger(__name__)

SYNC_PATH = "/api/sync"


class SyncStatus(Enum):
    """Status of a sync operation."""

    SUCCESS = "success"
    NO_DATA = "no_data"  # Neither side had a snapshot
    FAILED = "failed"
    OFFLINE = "offline"  # Remote unavailable


@dataclass
class SyncResult:
    """Result of a sync operation."""

    status: SyncStatus
    snapshot: Snapshot | None = None
    error: str | None = None
    timestamp: datetime | None = None


class SyncClient:
    """Client for the remote ``/api/sync`` endpoint.

    Supports:
    - Fetch: Read the remote snapshot without changing it
    - Push: Send a local snapshot and receive the merged result

    Uses exponential backoff for retries on server errors and
    connection failures.
    """

    def __init__(
        self,
        remote_url: str | None = None,
        max_retries: int = 3,
        timeout: float = 30.0,
    ):
        """Initialize the sync client.

        Args:
            remote_url: Base URL of the server (e.g., "http://mindsync:8080").
            max_retries: Maximum retry attempts.
            timeout: Request timeout in seconds.
        """
        self.remote_url = remote_url
        self.max_retries = max_retries
        self.timeout = timeout
        self._last_sync: datetime | None = None
        self._consecutive_failures = 0

    def set_remote_url(self, url: str) -> None:
        """Set or update the remote URL."""
        self.remote_url = url
        logger.info(f"Remote URL set to {url}")

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json_data: Any = None,
    ) -> tuple[Any, str | None, int | None]:
        """Make HTTP request with exponential backoff retry.

        Args:
            method: HTTP method (GET, POST).
            path: URL path to append to remote_url.
            json_data: Optional JSON body.

        Returns:
            Tuple of (response_data, error_message, status_code).
        """
        if not self.remote_url:
            return None, "No remote URL configured", None

        url = f"{self.remote_url.rstrip('/')}{path}"
        backoff = 1.0
        last_status: int | None = None

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    if method == "GET":
                        response = await client.get(url)
                    elif method == "POST":
                        response = await client.post(url, json=json_data)
                    else:
                        return None, f"Unsupported method: {method}", None

                    if response.status_code == 200:
                        self._consecutive_failures = 0
                        return response.json(), None, 200

                    elif response.status_code >= 500:
                        # Server error, retry
                        last_status = response.status_code
                        logger.warning(
                            f"Server error {response.status_code}, "
                            f"attempt {attempt + 1}/{self.max_retries}"
                        )
                    else:
                        # Client error, don't retry
                        return (
                            None,
                            f"HTTP {response.status_code}: {response.text}",
                            response.status_code,
                        )

                except httpx.ConnectError:
                    last_status = None
                    logger.warning(
                        f"Connection failed, attempt {attempt + 1}/{self.max_retries}"
                    )
                except httpx.TimeoutException:
                    last_status = None
                    logger.warning(
                        f"Request timeout, attempt {attempt + 1}/{self.max_retries}"
                    )
                except httpx.HTTPError as e:
                    logger.error(f"Request error: {e}")
                    return None, str(e), None

                # Exponential backoff
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(backoff)
                    backoff *= 2

        self._consecutive_failures += 1
        if last_status is not None:
            return (
                None,
                f"Server error {last_status}: max retries ({self.max_retries}) exceeded",
                last_status,
            )
        return None, f"Connection failed: max retries ({self.max_retries}) exceeded", None

    def _failure(self, error: str, status_code: int | None) -> SyncResult:
        if status_code == 400 and "No data provided" in error:
            return SyncResult(status=SyncStatus.NO_DATA, error=error)
        return SyncResult(
            status=SyncStatus.OFFLINE if "Connection" in error else SyncStatus.FAILED,
            error=error,
        )

    def _parse_response(self, data: Any) -> SyncResult:
        """Turn a ``{"success": ..., "data": ...}`` body into a SyncResult."""
        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            return SyncResult(status=SyncStatus.FAILED, error=error or "Unexpected response")

        snapshot = None
        if data.get("data") is not None:
            try:
                snapshot = Snapshot.from_dict(data["data"])
            except SnapshotFormatError as e:
                return SyncResult(status=SyncStatus.FAILED, error=f"Invalid remote snapshot: {e}")

        self._last_sync = datetime.now()
        return SyncResult(
            status=SyncStatus.SUCCESS if snapshot is not None else SyncStatus.NO_DATA,
            snapshot=snapshot,
            timestamp=self._last_sync,
        )

    async def fetch_remote(self) -> SyncResult:
        """Fetch the remote snapshot without modifying it.

        Returns:
            SyncResult carrying the snapshot, or NO_DATA if none is stored.
        """
        data, error, status_code = await self._request_with_retry("GET", SYNC_PATH)
        if error:
            return self._failure(error, status_code)

        return self._parse_response(data)

    async def push_snapshot(self, snapshot: Snapshot | None) -> SyncResult:
        """Push a local snapshot and receive the merged result.

        Args:
            snapshot: Local snapshot, or None to only read back the
                remote state through the merge endpoint.

        Returns:
            SyncResult carrying the merged snapshot.
        """
        payload = {"localData": snapshot.to_dict() if snapshot is not None else None}

        data, error, status_code = await self._request_with_retry(
            "POST", SYNC_PATH, payload
        )
        if error:
            return self._failure(error, status_code)

        result = self._parse_response(data)
        if result.status == SyncStatus.SUCCESS:
            logger.info(
                f"Pushed snapshot, remote now has {result.snapshot.count_nodes()} nodes"
            )
        return result

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last successful sync."""
        return self._last_sync

    def get_sync_status(self) -> dict[str, Any]:
        """Get current sync status."""
        return {
            "remote_url": self.remote_url,
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "consecutive_failures": self._consecutive_failures,
        }
