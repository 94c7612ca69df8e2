"""
HTTP client for the registry API, used by member devices and the runner.

Translates HTTP outcomes into the shared error taxonomy:
- 400 -> ValidationError
- 404 -> the NotFoundError subclass the call expects (group or user)
- transport failures, timeouts and other non-2xx -> TransientNetworkError

Polls are sent once; a failed poll is simply retried by the next tick. Writes
(chat, bets, joins) retry connection failures with exponential backoff, since
a request that never connected cannot have been applied.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple, Type

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from venue_tracker.core.errors import (
    GroupNotFoundError,
    NotFoundError,
    TransientNetworkError,
    UserNotFoundError,
    ValidationError,
)
from venue_tracker.core.middleware import CORRELATION_HEADER
from venue_tracker.models import Bet, ChatMessage, Fight, Group, Member, User, VenueCalibration

logger = logging.getLogger(__name__)

# Failures where the request provably never reached the server
_CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


class RegistryClient:
    """
    Async client for the venue tracker API.

    Usage:
        client = RegistryClient("http://localhost:8001")
        user, group = await client.join_group("Alice", action="create")
        group, members = await client.get_group(group.id)
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        write_attempts: int = 3,
        http_client: Optional[httpx.AsyncClient] = None,
        api_prefix: str = "/api",
    ):
        """
        Args:
            base_url: Server root, e.g. http://localhost:8001
            timeout: Per-request timeout in seconds
            write_attempts: Attempts for writes on connection failure
            http_client: Pre-built client (tests pass one with an ASGI transport)
            api_prefix: Path prefix the routes are mounted under
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.write_attempts = write_attempts
        self.api_prefix = api_prefix
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers={"Content-Type": "application/json", "X-Application": "venue-tracker-client"},
            )
        return self._client

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        not_found: Type[NotFoundError] = NotFoundError,
        attempts: int = 1,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        url = f"{self.api_prefix}{path}"
        headers = {CORRELATION_HEADER: str(uuid.uuid4())}

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
                retry=retry_if_exception_type(_CONNECT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    response = await client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"{method} {url} failed: {e}") from e

        if response.status_code == 404:
            raise not_found(message=self._error_message(response, not_found.default_message))
        if response.status_code == 400:
            raise ValidationError(self._error_message(response, ValidationError.default_message))
        if response.status_code >= 300:
            raise TransientNetworkError(f"{method} {url} returned {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise TransientNetworkError(f"{method} {url} returned invalid JSON") from e

    @staticmethod
    def _error_message(response: httpx.Response, default: str) -> str:
        try:
            return response.json().get("error") or default
        except ValueError:
            return default

    # ========================================================================
    # Endpoints
    # ========================================================================

    async def join_group(
        self,
        name: str,
        group_code: Optional[str] = None,
        action: str = "join",
        calibration: Optional[VenueCalibration] = None,
        user_id: Optional[str] = None,
    ) -> Tuple[User, Group]:
        """
        Join (or create, or resurrect) a group.

        Raises:
            GroupNotFoundError: joining a code no live group holds
            ValidationError: missing name or code
            TransientNetworkError: the server could not be reached
        """
        body: Dict[str, Any] = {"name": name, "action": action}
        if group_code:
            body["groupCode"] = group_code
        if calibration is not None:
            body["calibration"] = calibration.to_wire()
        if user_id:
            body["userId"] = user_id

        data = await self._request(
            "POST", "/groups/join", json=body, not_found=GroupNotFoundError, attempts=self.write_attempts
        )
        return User.model_validate(data["user"]), Group.model_validate(data["group"])

    async def get_group(self, code: str) -> Tuple[Group, List[Member]]:
        """
        Poll a group's state.

        Raises:
            GroupNotFoundError: the registry has no such group (confirmed 404)
            TransientNetworkError: anything else going wrong
        """
        data = await self._request("GET", f"/groups/{code}", not_found=GroupNotFoundError)
        group = Group.model_validate(data["group"])
        members = [Member.model_validate(m) for m in data.get("members", [])]
        return group, members

    async def push_location(self, user_id: str, lat: float, lng: float) -> User:
        """
        Raises:
            UserNotFoundError: the registry does not know this user (non-fatal)
        """
        data = await self._request(
            "POST",
            "/location",
            json={"userId": user_id, "lat": lat, "lng": lng},
            not_found=UserNotFoundError,
        )
        return User.model_validate(data["user"])

    async def send_message(
        self, group_id: str, user_id: str, user_name: str, text: str
    ) -> Optional[ChatMessage]:
        """Send a chat message; None when the server dropped it (group gone)."""
        data = await self._request(
            "POST",
            "/chat",
            json={"groupId": group_id, "userId": user_id, "userName": user_name, "text": text},
            attempts=self.write_attempts,
        )
        message = data.get("message")
        return ChatMessage.model_validate(message) if message else None

    async def place_bet(
        self, group_id: str, user_id: str, user_name: str, fight_id: str, prediction: str
    ) -> Bet:
        """
        Raises:
            GroupNotFoundError: the group is gone
        """
        data = await self._request(
            "POST",
            "/bets",
            json={
                "groupId": group_id,
                "userId": user_id,
                "userName": user_name,
                "fightId": fight_id,
                "prediction": prediction,
            },
            not_found=GroupNotFoundError,
            attempts=self.write_attempts,
        )
        return Bet.model_validate(data["bet"])

    async def get_fights(self) -> List[Fight]:
        data = await self._request("GET", "/fights")
        return [Fight.model_validate(f) for f in data.get("fights", [])]
