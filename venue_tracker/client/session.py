"""
A member's live session: polling, location reporting, optimistic writes.

Two independent asyncio loops run per session:

- Poll loop: every ``poll_interval`` seconds a new tick is started as its own
  task, so a slow response never delays the next tick. Ticks may overlap;
  each carries a sequence number and a member snapshot older than the last
  applied one is ignored (chat and vote merges are order-independent).
  Failed ticks are logged and forgotten. A confirmed 404 triggers group
  resurrection.
- Location loop: forwards every fix from a position source to the registry.
  Failures, including "unknown user", are logged and never stop the loop.

``stop()`` cancels both loops and every in-flight tick, then waits for them.
No request is issued after it returns.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, Callable, Dict, List, Optional, Set

from venue_tracker.client.api_client import RegistryClient
from venue_tracker.client.cache import CachedVote, ClientCache
from venue_tracker.client.reconcile import (
    ChatEntry,
    MAX_LOCAL_MESSAGES,
    confirmed_entry,
    merge_members,
    merge_messages,
    overlay_votes,
    pending_entry,
    replace_pending,
)
from venue_tracker.client.view import VenueView, Zone, build_view
from venue_tracker.core import metrics
from venue_tracker.core.errors import (
    GroupNotFoundError,
    SessionExpiredError,
    TransientNetworkError,
    UserNotFoundError,
    ValidationError,
    VenueTrackerError,
)
from venue_tracker.models import (
    DEFAULT_CALIBRATION,
    Bet,
    ChatMessage,
    Coordinates,
    Group,
    Member,
    VenueCalibration,
)
from venue_tracker.services.registry.liveness import RESURRECTION_NOTICE
from venue_tracker.utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)


@dataclass
class GroupState:
    """Reconciled local view of one group."""
    group: Optional[Group] = None
    members: List[Member] = field(default_factory=list)
    messages: List[ChatEntry] = field(default_factory=list)
    server_bets: List[Bet] = field(default_factory=list)
    last_applied_seq: int = 0
    notice: Optional[str] = None


class VenueSession:
    """
    Keeps one member's view of a group in sync with the registry.

    Usage:
        session = await VenueSession.join(client, cache, "Alice", group_code="AB12")
        session.start(positions=simulated_walk(start))
        await session.send_message("at the bar")
        ...
        await session.stop()
    """

    def __init__(
        self,
        client: RegistryClient,
        cache: ClientCache,
        user_id: str,
        user_name: str,
        group_code: str,
        poll_interval: float = 1.0,
        calibration: VenueCalibration = DEFAULT_CALIBRATION,
        on_update: Optional[Callable[[VenueView], None]] = None,
        on_error: Optional[Callable[[VenueTrackerError], None]] = None,
        clock: Clock = now_ms,
        zone: Optional[Zone] = None,
    ):
        """
        Args:
            client: Registry API client
            cache: Durable session/vote cache
            user_id: This member's id
            user_name: This member's display name
            group_code: Code of the group to follow
            poll_interval: Seconds between poll ticks
            calibration: Calibration sent when the group has to be recreated
            on_update: Called with a fresh view after every applied change
            on_error: Called with SessionExpiredError when the session ends
            clock: Epoch-ms clock
            zone: Point of interest reported in every view
        """
        self.client = client
        self.cache = cache
        self.user_id = user_id
        self.user_name = user_name
        self.group_code = group_code.upper()
        self.poll_interval = poll_interval
        self.calibration = calibration
        self.on_update = on_update
        self.on_error = on_error
        self._clock = clock
        self.zone = zone

        self.state = GroupState()
        self.expired = False
        self.resurrections = 0
        self.closed = asyncio.Event()

        self._closing = False
        self._seq = 0
        self._poll_task: Optional[asyncio.Task] = None
        self._location_task: Optional[asyncio.Task] = None
        self._tick_tasks: Set[asyncio.Task] = set()
        self._resurrect_lock = asyncio.Lock()
        self._vote_lock = asyncio.Lock()
        self._pending_votes: Dict[str, CachedVote] = {}

    @classmethod
    async def join(
        cls,
        client: RegistryClient,
        cache: ClientCache,
        name: str,
        group_code: Optional[str] = None,
        action: str = "join",
        calibration: VenueCalibration = DEFAULT_CALIBRATION,
        **kwargs,
    ) -> "VenueSession":
        """
        Join or create a group and return a session for it (not started).

        The cached user id is reused so votes cached for it are restored.

        Raises:
            GroupNotFoundError: joining an unknown code
            ValidationError: missing name or code
        """
        cached = cache.load_session()
        user_id = cached.user_id if cached else None

        user, group = await client.join_group(
            name,
            group_code=group_code,
            action=action,
            calibration=calibration if action == "create" else None,
            user_id=user_id,
        )
        cache.save_session(user.id, user.name, group.id)

        session = cls(client, cache, user.id, user.name, group.id, calibration=calibration, **kwargs)
        session.state.group = group
        session.state.messages = merge_messages([], group.messages)
        session.state.server_bets = list(group.bets)
        return session

    # ========================================================================
    # Lifecycle
    # ========================================================================

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._closing

    def start(self, positions: Optional[AsyncIterable[Coordinates]] = None) -> None:
        """Start the poll loop and, when a position source is given, the location loop."""
        if self._closing:
            raise SessionExpiredError("Session closed")
        if self._poll_task is not None:
            return

        self._poll_task = asyncio.create_task(self._poll_loop(), name=f"poll-{self.group_code}")
        if positions is not None:
            self._location_task = asyncio.create_task(
                self._location_loop(positions), name=f"location-{self.user_id}"
            )
        logger.info(f"Session started for {self.user_id} in {self.group_code}")

    async def stop(self) -> None:
        """Cancel both loops and all in-flight ticks, and wait for them to finish."""
        self._close()
        current = asyncio.current_task()
        tasks = [
            t for t in (self._poll_task, self._location_task, *self._tick_tasks)
            if t is not None and t is not current
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Session stopped for {self.user_id} in {self.group_code}")

    def _close(self) -> None:
        self._closing = True
        self.closed.set()
        current = asyncio.current_task()
        for task in (self._poll_task, self._location_task, *self._tick_tasks):
            if task is not None and task is not current and not task.done():
                task.cancel()

    def _ensure_open(self) -> None:
        if self._closing:
            raise SessionExpiredError("Session closed")

    # ========================================================================
    # Polling
    # ========================================================================

    async def _poll_loop(self) -> None:
        while not self._closing:
            task = asyncio.create_task(self._tick())
            self._tick_tasks.add(task)
            task.add_done_callback(self._tick_tasks.discard)
            await asyncio.sleep(self.poll_interval)

    async def _tick(self) -> None:
        try:
            await self.poll_once()
        except asyncio.CancelledError:
            raise
        except Exception:
            # A broken tick must not take the loop down; the next tick runs regardless
            logger.exception(f"Poll tick failed for {self.group_code}")
            metrics.record_poll_failure("unexpected")

    async def poll_once(self) -> None:
        """One poll tick: fetch, merge, restore votes; resurrect on a confirmed 404."""
        if self._closing:
            return

        self._seq += 1
        seq = self._seq

        try:
            group, members = await self.client.get_group(self.group_code)
        except GroupNotFoundError:
            logger.warning(f"Group {self.group_code} not found; attempting to recreate it")
            await self._resurrect()
            return
        except TransientNetworkError as e:
            metrics.record_poll_failure("network")
            logger.warning(f"Polling jitter (retrying on next tick): {e.message}")
            return

        if self._closing:
            return

        self._apply(seq, group, members)
        await self._restore_votes()

    def _apply(self, seq: int, group: Group, members: List[Member]) -> None:
        state = self.state
        state.messages = merge_messages(state.messages, group.messages)

        if seq > state.last_applied_seq:
            state.last_applied_seq = seq
            state.group = group
            state.members = merge_members(state.members, members)
            state.server_bets = list(group.bets)
        else:
            logger.debug(f"Ignoring stale poll response {seq} (applied {state.last_applied_seq})")

        self._notify()

    async def _resurrect(self) -> None:
        """
        Recreate the group under its code, or attach if another member already did.

        Failing to recreate it ends the session with SessionExpiredError.
        """
        async with self._resurrect_lock:
            if self._closing:
                return

            # An overlapping tick, or another member, may have restored it already
            try:
                await self.client.get_group(self.group_code)
                return
            except GroupNotFoundError:
                pass
            except TransientNetworkError:
                return

            cached = self.cache.load_session()
            name = cached.name if cached and cached.group_code == self.group_code else self.user_name

            try:
                user, group = await self.client.join_group(
                    name,
                    group_code=self.group_code,
                    action="create",
                    calibration=self.calibration,
                    user_id=self.user_id,
                )
            except TransientNetworkError as e:
                logger.warning(f"Could not reach registry to recreate {self.group_code}: {e.message}")
                return
            except VenueTrackerError as e:
                self._expire(e)
                return

            self.resurrections += 1
            self.cache.save_session(user.id, user.name, group.id)
            self.group_code = group.id
            self.state.notice = RESURRECTION_NOTICE
            logger.warning(
                f"Group {group.id} recreated by {user.id}; server-side history was lost",
                extra={"group_id": group.id, "user_id": user.id},
            )
            self._notify()

    def _expire(self, cause: VenueTrackerError) -> None:
        logger.error(f"Session for {self.group_code} expired: {cause.message}")
        self.expired = True
        self.cache.clear_session()
        self._close()
        if self.on_error is not None:
            self.on_error(SessionExpiredError(f"Session expired: {cause.message}"))

    # ========================================================================
    # Location reporting
    # ========================================================================

    async def _location_loop(self, positions: AsyncIterable[Coordinates]) -> None:
        async for position in positions:
            if self._closing:
                break
            await self.push_location(position)

    async def push_location(self, position: Coordinates) -> None:
        """Send one fix; every failure is logged and absorbed."""
        if self._closing:
            return
        try:
            await self.client.push_location(self.user_id, position.lat, position.lng)
        except UserNotFoundError:
            logger.info(f"Registry does not know {self.user_id} yet; location dropped")
        except TransientNetworkError as e:
            logger.warning(f"Failed to send location: {e.message}")
        except ValidationError as e:
            logger.warning(f"Location rejected: {e.message}")

    # ========================================================================
    # Chat
    # ========================================================================

    async def send_message(self, text: str) -> ChatEntry:
        """
        Show a message immediately and send it.

        The returned entry is the confirmed message when the server answered,
        otherwise the pending copy, which a later poll confirms.

        Raises:
            ValidationError: the server rejected the message
            SessionExpiredError: the session is closed
        """
        self._ensure_open()
        entry = pending_entry(self.user_id, self.user_name, text, self._clock())
        self._add_local_message(entry)

        try:
            message = await self.client.send_message(self.group_code, self.user_id, self.user_name, text)
        except TransientNetworkError as e:
            logger.warning(f"Message send failed, keeping it pending: {e.message}")
            return entry
        except ValidationError:
            self.state.messages = [m for m in self.state.messages if m.id != entry.id]
            self._notify()
            raise

        if message is None:
            return entry
        return self._confirm_message(entry.id, message)

    def _add_local_message(self, entry: ChatEntry) -> None:
        messages = sorted([*self.state.messages, entry], key=lambda e: e.timestamp)
        self.state.messages = messages[-MAX_LOCAL_MESSAGES:]
        self._notify()

    def _confirm_message(self, pending_id: str, message: ChatMessage) -> ChatEntry:
        self.state.messages = replace_pending(self.state.messages, pending_id, message)
        self._notify()
        return next((m for m in self.state.messages if m.id == message.id), confirmed_entry(message))

    # ========================================================================
    # Votes
    # ========================================================================

    async def place_bet(self, fight_id: str, prediction: str) -> Optional[Bet]:
        """
        Vote on a fight. Shown immediately; cached once the server confirms.

        A vote that could not be delivered stays pending and is retried with
        the next vote restore.

        Raises:
            ValidationError: the server rejected the vote
            SessionExpiredError: the session is closed
        """
        self._ensure_open()
        vote = CachedVote(fight_id=fight_id, prediction=prediction, timestamp=self._clock())
        self._pending_votes[fight_id] = vote
        self._notify()

        async with self._vote_lock:
            try:
                bet = await self._upload_vote(vote)
            except ValidationError:
                self._pending_votes.pop(fight_id, None)
                self._notify()
                raise
        self._notify()
        return bet

    async def _upload_vote(self, vote: CachedVote) -> Optional[Bet]:
        """Send one vote; on success move it from pending to the durable cache."""
        try:
            bet = await self.client.place_bet(
                self.group_code, self.user_id, self.user_name, vote.fight_id, vote.prediction
            )
        except (GroupNotFoundError, TransientNetworkError) as e:
            logger.info(f"Vote on {vote.fight_id} not delivered yet: {e.message}")
            return None

        self.cache.record_vote(self.user_id, vote.fight_id, vote.prediction, vote.timestamp)
        if self._pending_votes.get(vote.fight_id) == vote:
            del self._pending_votes[vote.fight_id]
        self.state.server_bets = [
            b for b in self.state.server_bets
            if not (b.user_id == self.user_id and b.fight_id == vote.fight_id)
        ] + [bet]
        return bet

    async def _restore_votes(self) -> None:
        """
        Re-upload every cached (and still pending) vote for this group.

        The registry forgets bets on restart; last-vote-wins makes the
        re-upload idempotent. Skipped while another vote write is running.
        """
        if self._vote_lock.locked():
            return

        async with self._vote_lock:
            votes = {**self.cache.votes_for(self.user_id), **self._pending_votes}
            for vote in votes.values():
                if self._closing:
                    return
                try:
                    await self._upload_vote(vote)
                except ValidationError as e:
                    logger.warning(f"Cached vote on {vote.fight_id} rejected: {e.message}")

    # ========================================================================
    # View
    # ========================================================================

    def view(self) -> VenueView:
        """Current presentation view of the group."""
        votes = {**self.cache.votes_for(self.user_id), **self._pending_votes}
        bets = overlay_votes(self.state.server_bets, self.user_id, self.user_name, votes)
        return build_view(
            self.state.group,
            self.state.members,
            self.state.messages,
            bets,
            self.user_id,
            self._clock(),
            notice=self.state.notice,
            zone=self.zone,
        )

    def dismiss_notice(self) -> None:
        self.state.notice = None

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.view())
