"""HTTP client for the remote snapshot store.

This module provides:
- HTTPClient: async httpx client implementing the RemoteClient protocol
- BearerAuth: per-request bearer credential from an auth provider
- APIError and subclasses mapped from HTTP status codes
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Generator
from typing import Any

import httpx

from savesync.client.sync.types import ProgressCallback, RemoteError
from savesync.core.config import ServerConfig, SyncConfig
from savesync.core.snapshot import Snapshot

logger = logging.getLogger(__name__)


class APIError(RemoteError):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


class MalformedResponseError(APIError):
    """The server answered with a body that is not a snapshot."""


class BearerAuth(httpx.Auth):
    """Attach the current bearer token to every request."""

    def __init__(self, config: ServerConfig) -> None:
        self._config = config

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._config.bearer_token()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


def _error_detail(response: httpx.Response, default: str) -> str:
    try:
        detail = response.json().get("detail", default)
    except (ValueError, AttributeError):
        return default
    return str(detail)


class HTTPClient:
    """Async HTTP client for the remote snapshot store."""

    def __init__(
        self,
        config: ServerConfig,
        sync_config: SyncConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server configuration with URL and credentials.
            sync_config: Sync options (timeout, compression, encryption, chunk size).
            transport: Optional httpx transport (e.g. ASGITransport in tests).
        """
        self._config = config
        self._sync_config = sync_config or SyncConfig()

        if self._sync_config.encryption and not config.is_secure:
            logger.warning(
                f"Encryption is enabled but {config.server_url} is not HTTPS; "
                "snapshots travel unencrypted"
            )

        headers = {"Accept": "application/json"}
        if self._sync_config.compression:
            headers["Accept-Encoding"] = "gzip, deflate"
        else:
            headers["Accept-Encoding"] = "identity"

        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=self._sync_config.timeout_seconds,
            verify=config.verify_ssl,
            headers=headers,
            auth=BearerAuth(config),
            transport=transport,
        )

    @property
    def chunk_size(self) -> int:
        """Upload streaming chunk size in bytes."""
        return self._sync_config.chunk_size_bytes

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HTTPClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError(_error_detail(response, "Resource not found"), 404)
        if response.status_code >= 400:
            detail = _error_detail(response, response.reason_phrase or "Unknown error")
            raise APIError(detail, response.status_code)
        return response

    def _parse_snapshot(self, response: httpx.Response) -> Snapshot:
        try:
            return Snapshot.from_dict(response.json())
        except ValueError as e:
            raise MalformedResponseError(
                f"Server returned a malformed snapshot: {e}", response.status_code
            ) from e

    # === Health check ===

    async def health_check(self) -> bool:
        """Check if the server is reachable and healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    # === Snapshot operations ===

    async def fetch_snapshot(self, user_id: str) -> Snapshot | None:
        """Fetch the remote snapshot for a user.

        Args:
            user_id: Owner of the snapshot.

        Returns:
            The remote snapshot, or None if the user has none yet.

        Raises:
            MalformedResponseError: If the body is not a snapshot.
            APIError: On other non-success responses.
            httpx.TransportError: If the server cannot be reached.
        """
        try:
            response = self._handle_response(await self._client.get(f"/api/sync/{user_id}"))
        except NotFoundError:
            return None
        return self._parse_snapshot(response)

    async def put_snapshot(
        self,
        user_id: str,
        snapshot: Snapshot,
        progress: ProgressCallback | None = None,
    ) -> Snapshot:
        """Replace the remote snapshot for a user.

        The JSON body is streamed in chunk_size pieces; progress is called
        with (bytes_sent, total_bytes) after each piece.

        Args:
            user_id: Owner of the snapshot.
            snapshot: Snapshot to store.
            progress: Optional progress callback.

        Returns:
            The snapshot as stored by the server.
        """
        body = snapshot.to_json().encode("utf-8")
        total = len(body)
        chunk_size = self.chunk_size

        async def stream() -> AsyncIterator[bytes]:
            sent = 0
            for start in range(0, total, chunk_size):
                piece = body[start:start + chunk_size]
                yield piece
                sent += len(piece)
                if progress:
                    progress(sent, total)

        response = self._handle_response(
            await self._client.put(
                f"/api/sync/{user_id}",
                content=stream(),
                headers={"Content-Type": "application/json"},
            )
        )
        return self._parse_snapshot(response)

    async def get_revision(self, user_id: str) -> dict[str, Any] | None:
        """Get the server-side revision counter of a user's snapshot.

        Returns:
            {"userId", "revision", "updatedAt"} or None if the user has none.
        """
        try:
            response = self._handle_response(
                await self._client.get(f"/api/sync/{user_id}/revision")
            )
        except NotFoundError:
            return None
        result: dict[str, Any] = response.json()
        return result
