"""Tests for RegistryClient.

Test Strategy:
1. End-to-end calls against the real app over an in-memory ASGI transport
2. HTTP status mapping to the error taxonomy (400, 404, 5xx)
3. Transport failures: writes retry connection errors, polls do not

Each test follows the pattern:
- Given: A client bound to the app or to a scripted mock transport
- When: A client method is called
- Then: Typed results or typed errors come back
"""
import httpx
import pytest

from venue_tracker.client import RegistryClient
from venue_tracker.core.errors import (
    GroupNotFoundError,
    TransientNetworkError,
    UserNotFoundError,
    ValidationError,
)
from venue_tracker.models import DEFAULT_CALIBRATION


def scripted_client(handler, write_attempts=3) -> RegistryClient:
    """RegistryClient whose transport answers through ``handler``."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return RegistryClient("http://test", write_attempts=write_attempts, http_client=http_client)


class TestRegistryClientEndToEnd:
    """RegistryClient against the FastAPI app."""

    @pytest.mark.asyncio
    async def test_create_join_poll(self, registry_client):
        alice, group = await registry_client.join_group("Alice", action="create", calibration=DEFAULT_CALIBRATION)
        bob, _ = await registry_client.join_group("Bob", group_code=group.id.lower())

        polled, members = await registry_client.get_group(group.id)

        assert polled.name == "Alice's Group"
        assert polled.calibration == DEFAULT_CALIBRATION
        assert [m.id for m in members] == [alice.id, bob.id]
        assert all(m.is_online for m in members)

    @pytest.mark.asyncio
    async def test_writes(self, registry_client):
        alice, group = await registry_client.join_group("Alice", action="create")

        user = await registry_client.push_location(alice.id, -34.6435, -58.3965)
        message = await registry_client.send_message(group.id, alice.id, "Alice", "hi")
        bet = await registry_client.place_bet(group.id, alice.id, "Alice", "f1", "B")

        assert user.last_location.lat == -34.6435
        assert message.text == "hi"
        assert bet.prediction == "B"

        polled, _ = await registry_client.get_group(group.id)
        assert [m.id for m in polled.messages] == [message.id]
        assert [b.id for b in polled.bets] == [bet.id]

    @pytest.mark.asyncio
    async def test_user_id_round_trip(self, registry_client):
        user, _ = await registry_client.join_group("Alice", action="create", user_id="alice-1")
        assert user.id == "alice-1"

    @pytest.mark.asyncio
    async def test_resurrection_request(self, registry_client, registry):
        user, group = await registry_client.join_group("Alice", action="create")
        registry.clear()

        with pytest.raises(GroupNotFoundError):
            await registry_client.get_group(group.id)

        _, recreated = await registry_client.join_group(
            "Alice", group_code=group.id, action="create", calibration=DEFAULT_CALIBRATION, user_id=user.id
        )
        assert recreated.id == group.id
        assert recreated.members == [user.id]

    @pytest.mark.asyncio
    async def test_error_mapping(self, registry_client):
        with pytest.raises(GroupNotFoundError) as exc_info:
            await registry_client.join_group("Bob", group_code="NOPE")
        assert exc_info.value.message == "Group not found"

        with pytest.raises(UserNotFoundError):
            await registry_client.push_location("ghost", 1, 1)

        with pytest.raises(ValidationError) as exc_info:
            await registry_client.join_group("", action="create")
        assert exc_info.value.message == "Name is required"

    @pytest.mark.asyncio
    async def test_message_to_missing_group_is_none(self, registry_client):
        assert await registry_client.send_message("NOPE", "u1", "Alice", "hi") is None

    @pytest.mark.asyncio
    async def test_fights(self, registry_client):
        fights = await registry_client.get_fights()
        assert fights[0].fighter_a == "Monzon"


class TestRegistryClientFailures:
    """Transport failures and unexpected statuses."""

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        client = scripted_client(lambda request: httpx.Response(500, json={"error": "boom"}))

        with pytest.raises(TransientNetworkError):
            await client.get_group("AB12")

    @pytest.mark.asyncio
    async def test_poll_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = scripted_client(handler)

        with pytest.raises(TransientNetworkError):
            await client.get_group("AB12")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_write_retries_connection_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"success": True, "message": None})

        client = scripted_client(handler)

        assert await client.send_message("AB12", "u1", "Alice", "hi") is None
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_write_gives_up_after_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = scripted_client(handler, write_attempts=2)

        with pytest.raises(TransientNetworkError):
            await client.place_bet("AB12", "u1", "Alice", "f1", "A")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_read_timeout_is_not_retried(self):
        """A timed-out write may have been applied, so it is not repeated."""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        client = scripted_client(handler)

        with pytest.raises(TransientNetworkError):
            await client.send_message("AB12", "u1", "Alice", "hi")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_invalid_json_is_transient(self):
        client = scripted_client(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(TransientNetworkError):
            await client.get_fights()

    @pytest.mark.asyncio
    async def test_sends_correlation_id(self):
        seen = []

        def handler(request):
            seen.append(request.headers.get("X-Correlation-ID"))
            return httpx.Response(200, json={"fights": []})

        client = scripted_client(handler)
        await client.get_fights()

        assert seen and seen[0]
