"""
HTTP client for the dataset sync API.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp


logger = logging.getLogger(__name__)


class DatasetApiError(Exception):
    """Sync API request failed; ``status`` is 0 for transport errors."""

    def __init__(self, status: int, message: str):
        super().__init__(f"API {status}: {message}")
        self.status = status
        self.message = message


class DatasetConflictError(DatasetApiError):
    """The server rejected a push because its version moved on."""

    def __init__(self, server_version: int, server_data: Any):
        super().__init__(409, "Version conflict")
        self.server_version = server_version
        self.server_data = server_data


class DatasetApiClient:
    """Dataset pull/push client bound to one school's bearer token."""

    def __init__(self, base_url: str, token: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._http_session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._http_session is None or self._http_session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._http_session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    'User-Agent': 'SchoolSync-Client/1.0',
                    'Accept': 'application/json',
                    'Content-Type': 'application/json'
                }
            )
        return self._http_session

    async def close(self) -> None:
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    async def pull(self) -> Dict[str, Any]:
        """
        Fetch the server dataset.

        Returns:
            ``{key, version, data, updatedAt}``
        """
        return await self._request("GET", "/api/v1/sync/pull")

    async def push(self, data: Any, base_version: Optional[int] = None) -> Dict[str, Any]:
        """
        Replace the server dataset.

        Raises:
            DatasetConflictError: ``base_version`` is stale
            DatasetApiError: Any other failure
        """
        body: Dict[str, Any] = {"data": data}
        if base_version is not None:
            body["baseVersion"] = base_version
        return await self._request("POST", "/api/v1/sync/push", json=body)

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        session = await self._ensure_session()
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.token}"}

        try:
            async with session.request(method, url, json=json, headers=headers) as response:
                if response.status == 409:
                    payload = await self._read_object(response)
                    try:
                        server_version = int(payload.get("serverVersion") or 0)
                    except (TypeError, ValueError):
                        raise DatasetApiError(response.status, "Conflict response without a valid serverVersion")
                    raise DatasetConflictError(server_version, payload.get("serverData"))

                if response.status >= 400:
                    error_text = await response.text()
                    raise DatasetApiError(response.status, error_text)

                return await self._read_object(response)

        except aiohttp.ClientError as e:
            raise DatasetApiError(0, f"HTTP client error: {e}")
        except asyncio.TimeoutError:
            raise DatasetApiError(0, f"Request timed out after {self.timeout}s")

    async def _read_object(self, response: aiohttp.ClientResponse) -> Dict[str, Any]:
        try:
            payload = await response.json(content_type=None)
        except ValueError as e:
            logger.warning(f"Sync API returned invalid JSON (status {response.status}): {e}")
            raise DatasetApiError(response.status, f"Invalid JSON response: {e}")
        if not isinstance(payload, dict):
            raise DatasetApiError(response.status, "Response body is not a JSON object")
        return payload
