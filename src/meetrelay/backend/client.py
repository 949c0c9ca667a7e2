"""HTTP client for the meetings backend of record.

The backend answers every call with either the domain payload or an
``{"error": "..."}`` object. Both explicit error payloads and transport
failures surface as ``BackendError`` so callers have a single thing to catch.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from meetrelay.rooms.models import Participant, parse_participants

logger = logging.getLogger(__name__)

BODYLESS_METHODS = {"GET", "DELETE"}


class BackendError(Exception):
    """The backend returned an error payload or an unusable response."""

    def __init__(self, message: str, status: Optional[int] = None, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.step = step  # client event name of the failing call, when known


class BackendUnavailableError(BackendError):
    """The backend could not be reached or did not answer in time."""


class BackendClient:
    """Thin async wrapper over the meetings backend REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session if this client opened it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        endpoint: str,
        data: Any = None,
        params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> Any:
        """Perform a request and return the parsed JSON payload.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            endpoint: Path relative to the backend base URL
            data: JSON body for POST/PUT requests
            params: Query string parameters
            token: Bearer token forwarded as the Authorization header

        Raises:
            BackendError: error payload, empty body or non-2xx response
            BackendUnavailableError: network failure, timeout or unparseable body
        """
        method = method.upper()
        url = f"{self.base_url}{endpoint}"
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        body = None if method in BODYLESS_METHODS or data is None else json.dumps(data)

        logger.debug("[Backend] %s %s", method, endpoint)
        try:
            session = await self._get_session()
            async with session.request(
                method,
                url,
                params=params,
                data=body,
                headers=headers,
                timeout=self.timeout,
            ) as response:
                status = response.status
                payload = await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            logger.warning("[Backend] Timeout | %s %s", method, endpoint)
            raise BackendUnavailableError("Backend request timed out") from exc
        except aiohttp.ClientError as exc:
            logger.warning("[Backend] Request failed | %s %s: %s", method, endpoint, exc)
            raise BackendUnavailableError(f"Backend request failed: {exc}") from exc
        except ValueError as exc:
            logger.warning("[Backend] Unparseable response | %s %s: %s", method, endpoint, exc)
            raise BackendUnavailableError("Backend returned an invalid response") from exc

        if isinstance(payload, dict) and "error" in payload:
            raise BackendError(str(payload["error"]), status=status)
        if payload is None:
            raise BackendError("Unexpected error", status=status)
        if status >= 400:
            raise BackendError(f"Backend responded with status {status}", status=status)
        return payload

    async def _participants(self, method: str, endpoint: str, **kwargs: Any) -> List[Participant]:
        payload = await self.request(method, endpoint, **kwargs)
        try:
            return parse_participants(payload)
        except ValueError as exc:
            raise BackendError(f"Unexpected participant payload: {exc}") from exc

    # -------------------------------------------------------------------------
    # Meeting membership endpoints
    # -------------------------------------------------------------------------

    async def add_or_update_user(
        self,
        room_id: str,
        user_id: str,
        connection_id: str,
        token: Optional[str] = None,
    ) -> List[Participant]:
        """Add the user to the meeting (or update their socket id)."""
        return await self._participants(
            "PUT",
            f"/api/meetings/updateOrAddMeetingUser/{room_id}",
            data={"userId": user_id, "socketId": connection_id},
            token=token,
        )

    async def remove_user(
        self,
        room_id: str,
        user_id: str,
        connection_id: str,
        token: Optional[str] = None,
    ) -> List[Participant]:
        """Remove the user from the meeting and return who is left."""
        return await self._participants(
            "PUT",
            f"/api/meetings/removeUser/{room_id}",
            data={"userId": user_id, "socketId": connection_id},
            token=token,
        )

    async def get_meeting(self, room_id: str, token: Optional[str] = None) -> Dict[str, Any]:
        payload = await self.request("GET", f"/api/meets/{room_id}", token=token)
        if not isinstance(payload, dict):
            raise BackendError("Unexpected meeting payload")
        return payload

    async def get_meeting_users(self, room_id: str, token: Optional[str] = None) -> List[Participant]:
        return await self._participants("GET", f"/api/meets/getMeetingUsers/{room_id}", token=token)
