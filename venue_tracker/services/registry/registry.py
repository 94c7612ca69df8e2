"""
In-memory registry of groups, members, chat messages and bets.

The registry is the authoritative store for the lifetime of the process and
is deliberately volatile: a restart loses everything, and clients recover by
recreating their group (see ``liveness``).

Concurrency:
- Every group and every user has its own lock. Mutations of one group never
  wait on another group.
- ``_index_lock`` guards only the two dictionaries. It is a leaf lock: code
  holding it never acquires anything else.
- Lock order is user -> group -> index. ``join_group`` holds the user's lock
  while it moves the user between member lists; readers only take the group
  lock.
- Stored users are replaced, never mutated, so a reader that grabs
  ``entry.value`` always sees a complete record.
- Everything returned is a deep copy.

Example:
    registry = Registry()
    group = registry.create_group("Alice's Group", calibration)
    registry.join_group(group.id, "u1", "Alice")
    registry.update_location("u1", -34.6435, -58.3965)
    members = registry.list_members(group.id)
"""
import logging
import secrets
import string
import threading
import uuid
from dataclasses import dataclass
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

from venue_tracker.core import metrics
from venue_tracker.core.errors import GroupNotFoundError, UserNotFoundError, ValidationError
from venue_tracker.models import Bet, ChatMessage, Coordinates, Group, Member, User, VenueCalibration
from venue_tracker.services.registry.liveness import LivenessPolicy
from venue_tracker.utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_CODE_LENGTH = 4
DEFAULT_MESSAGE_RETENTION = 50
DEFAULT_MAP_IMAGE = "/venue-map.png"
MAX_CODE_ATTEMPTS = 1000

T = TypeVar("T")


class _Entry(Generic[T]):
    """A stored value and the lock that serializes its writers."""

    __slots__ = ("value", "lock")

    def __init__(self, value: T):
        self.value = value
        self.lock = threading.Lock()


@dataclass
class RegistryStats:
    groups: int
    users: int
    online_users: int


def normalize_code(code: str) -> str:
    """Group codes are case-insensitive; the canonical form is upper case."""
    return code.strip().upper()


class Registry:
    """
    Authoritative store of groups and users.

    Attributes:
        liveness: Online/offline rule applied on read
        message_retention: Messages kept per group (oldest dropped first)
        code_length: Length of generated group codes
    """

    def __init__(
        self,
        liveness: Optional[LivenessPolicy] = None,
        message_retention: int = DEFAULT_MESSAGE_RETENTION,
        code_length: int = DEFAULT_CODE_LENGTH,
        default_map_image: str = DEFAULT_MAP_IMAGE,
        clock: Clock = now_ms,
    ):
        self.liveness = liveness or LivenessPolicy()
        self.message_retention = message_retention
        self.code_length = code_length
        self.default_map_image = default_map_image
        self._clock = clock

        self._groups: Dict[str, _Entry[Group]] = {}
        self._users: Dict[str, _Entry[User]] = {}
        self._index_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, clock: Clock = now_ms) -> "Registry":
        """Build a registry from application settings."""
        return cls(
            liveness=LivenessPolicy(window_ms=settings.liveness_window_ms),
            message_retention=settings.MESSAGE_RETENTION,
            code_length=settings.GROUP_CODE_LENGTH,
            default_map_image=settings.DEFAULT_MAP_IMAGE,
            clock=clock,
        )

    # ========================================================================
    # Groups
    # ========================================================================

    def create_group(
        self,
        name: str,
        calibration: Optional[VenueCalibration] = None,
        requested_id: Optional[str] = None,
    ) -> Group:
        """
        Create a new group.

        A requested id that no live group holds is used verbatim (after
        normalization); otherwise a fresh code is generated.

        Raises:
            ValidationError: requested_id is not an alphanumeric code
        """
        code = self._validated_code(requested_id) if requested_id else None

        with self._index_lock:
            if code and code not in self._groups:
                origin = "requested"
            else:
                if code:
                    logger.info(f"Requested group code {code} is taken, generating a new one")
                code = self._generate_code()
                origin = "fresh"
            group = self._insert_group(code, name, calibration)

        metrics.groups_created_total.labels(origin=origin).inc()
        logger.info(f"Created group {code}", extra={"group_id": code, "origin": origin})
        return group.model_copy(deep=True)

    def resurrect_group(
        self,
        code: str,
        name: str,
        calibration: Optional[VenueCalibration] = None,
    ) -> Tuple[Group, bool]:
        """
        Recreate a lost group under its original code, or attach to it.

        The check and the insert happen under one lock, so of several
        concurrent callers exactly one creates the group and the rest get the
        group it created.

        Returns:
            (group, created) where ``created`` is False if the code was live

        Raises:
            ValidationError: code is not an alphanumeric code
        """
        code = self._validated_code(code)

        created = False
        with self._index_lock:
            entry = self._groups.get(code)
            if entry is None:
                group = self._insert_group(code, name, calibration)
                created = True

        if created:
            metrics.groups_created_total.labels(origin="resurrected").inc()
            logger.warning(
                f"Group {code} recreated; previous history is lost",
                extra={"group_id": code},
            )
            return group.model_copy(deep=True), True

        with entry.lock:
            return entry.value.model_copy(deep=True), False

    def get_group(self, group_id: str) -> Group:
        """
        Raises:
            GroupNotFoundError: no live group has this id
        """
        entry = self._group_entry(group_id)
        with entry.lock:
            return entry.value.model_copy(deep=True)

    # ========================================================================
    # Members
    # ========================================================================

    def join_group(self, group_id: str, user_id: str, display_name: str) -> User:
        """
        Add a user to a group, or refresh a returning user.

        A known user id is overwritten (name, group, liveness) rather than
        duplicated. Membership is idempotent, and a user that switches groups
        leaves the previous group's member list.

        Raises:
            GroupNotFoundError: the group does not exist
        """
        group_entry = self._group_entry(group_id)
        group_code = group_entry.value.id
        now = self._clock()

        with self._index_lock:
            user_entry = self._users.get(user_id)
            is_new = user_entry is None
            if is_new:
                user_entry = _Entry(User(id=user_id, name=display_name, group_id=group_code, last_updated=now))
                self._users[user_id] = user_entry

        with user_entry.lock:
            previous_group = None if is_new else user_entry.value.group_id
            if not is_new:
                user_entry.value = user_entry.value.model_copy(
                    update={"name": display_name, "group_id": group_code, "last_updated": now}
                )

            if previous_group and previous_group != group_code:
                previous_entry = self._find_group_entry(previous_group)
                if previous_entry is not None:
                    with previous_entry.lock:
                        if user_id in previous_entry.value.members:
                            previous_entry.value.members.remove(user_id)

            with group_entry.lock:
                if user_id not in group_entry.value.members:
                    group_entry.value.members.append(user_id)

            user = user_entry.value.model_copy(deep=True)

        metrics.group_joins_total.labels(kind="new" if is_new else "rejoin").inc()
        logger.info(
            f"User {user_id} joined group {group_code}",
            extra={"group_id": group_code, "user_id": user_id, "rejoin": not is_new},
        )
        return user

    def update_location(self, user_id: str, lat: float, lng: float) -> User:
        """
        Record a user's position and refresh their liveness.

        Raises:
            UserNotFoundError: the user never joined, or the registry was reset.
                Callers treat this as non-fatal.
        """
        with self._index_lock:
            entry = self._users.get(user_id)

        if entry is None:
            metrics.location_updates_total.labels(result="unknown_user").inc()
            raise UserNotFoundError(user_id)

        with entry.lock:
            entry.value = entry.value.model_copy(
                update={"last_location": Coordinates(lat=lat, lng=lng), "last_updated": self._clock()}
            )
            user = entry.value.model_copy(deep=True)

        metrics.location_updates_total.labels(result="ok").inc()
        return user

    def get_user(self, user_id: str) -> User:
        """
        Raises:
            UserNotFoundError: unknown user id
        """
        with self._index_lock:
            entry = self._users.get(user_id)
        if entry is None:
            raise UserNotFoundError(user_id)
        return entry.value.model_copy(deep=True)

    def list_members(self, group_id: str) -> List[Member]:
        """
        Members of a group with ``is_online`` computed against the current time.

        Reading has no side effects on stored users.

        Raises:
            GroupNotFoundError: the group does not exist
        """
        entry = self._group_entry(group_id)
        with entry.lock:
            member_ids = list(entry.value.members)
        return self._members_for(member_ids)

    def snapshot(self, group_id: str) -> Tuple[Group, List[Member]]:
        """
        A consistent copy of a group and its member list.

        Raises:
            GroupNotFoundError: the group does not exist
        """
        entry = self._group_entry(group_id)
        with entry.lock:
            group = entry.value.model_copy(deep=True)
        return group, self._members_for(group.members)

    # ========================================================================
    # Chat and bets
    # ========================================================================

    def add_message(
        self,
        group_id: str,
        sender_id: str,
        sender_name: Optional[str],
        text: str,
    ) -> Optional[ChatMessage]:
        """
        Append a chat message, keeping only the newest ``message_retention``.

        The sender name is captured now and never updated afterwards. When it
        is missing, the sender's current registry name is used.

        Returns:
            The stored message, or None if the group does not exist
        """
        entry = self._find_group_entry(group_id)
        if entry is None:
            metrics.chat_messages_total.labels(result="dropped").inc()
            logger.info(f"Dropped message for missing group {group_id}", extra={"user_id": sender_id})
            return None

        message = ChatMessage(
            id=uuid.uuid4().hex,
            sender_id=sender_id,
            sender_name=sender_name or self._display_name(sender_id),
            text=text,
            timestamp=self._clock(),
        )

        with entry.lock:
            messages = entry.value.messages
            messages.append(message)
            if len(messages) > self.message_retention:
                del messages[: len(messages) - self.message_retention]

        metrics.chat_messages_total.labels(result="stored").inc()
        return message.model_copy(deep=True)

    def add_bet(
        self,
        group_id: str,
        user_id: str,
        user_name: Optional[str],
        fight_id: str,
        prediction: str,
    ) -> Bet:
        """
        Record a vote, replacing the user's previous vote on the same fight.

        Re-uploading an identical vote is harmless: it replaces itself.

        Raises:
            GroupNotFoundError: the group does not exist
        """
        entry = self._group_entry(group_id)

        bet = Bet(
            id=uuid.uuid4().hex,
            user_id=user_id,
            user_name=user_name or self._display_name(user_id),
            fight_id=fight_id,
            prediction=prediction,
            timestamp=self._clock(),
        )

        with entry.lock:
            bets = entry.value.bets
            kept = [b for b in bets if not (b.user_id == user_id and b.fight_id == fight_id)]
            replaced = len(kept) != len(bets)
            kept.append(bet)
            entry.value.bets = kept

        metrics.bets_total.labels(kind="replaced" if replaced else "new").inc()
        logger.debug(
            f"Bet {prediction} on {fight_id} by {user_id}",
            extra={"group_id": entry.value.id, "user_id": user_id, "replaced": replaced},
        )
        return bet.model_copy(deep=True)

    # ========================================================================
    # Lifecycle and stats
    # ========================================================================

    def stats(self) -> RegistryStats:
        now = self._clock()
        with self._index_lock:
            group_count = len(self._groups)
            users = [entry.value for entry in self._users.values()]
        online = sum(1 for u in users if self.liveness.is_online(u.last_updated, now))
        return RegistryStats(groups=group_count, users=len(users), online_users=online)

    def clear(self) -> None:
        """Drop every group and user (shutdown, or simulating a restart in tests)."""
        with self._index_lock:
            self._groups.clear()
            self._users.clear()
        logger.info("Registry cleared")

    # ========================================================================
    # Internals
    # ========================================================================

    def _validated_code(self, code: str) -> str:
        normalized = normalize_code(code)
        if not normalized.isalnum() or not normalized.isascii():
            raise ValidationError(f"Invalid group code: {code!r}")
        if len(normalized) != self.code_length:
            raise ValidationError(f"Group codes are {self.code_length} characters: {code!r}")
        return normalized

    def _generate_code(self) -> str:
        """Fresh unused code. Caller holds ``_index_lock``."""
        for _ in range(MAX_CODE_ATTEMPTS):
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(self.code_length))
            if code not in self._groups:
                return code
        raise RuntimeError("Group code space exhausted")

    def _insert_group(self, code: str, name: str, calibration: Optional[VenueCalibration]) -> Group:
        """Store a new empty group. Caller holds ``_index_lock``."""
        group = Group(
            id=code,
            name=name,
            created_at=self._clock(),
            calibration=calibration,
            map_image=self.default_map_image,
        )
        self._groups[code] = _Entry(group)
        return group

    def _find_group_entry(self, group_id: str) -> Optional[_Entry[Group]]:
        with self._index_lock:
            return self._groups.get(normalize_code(group_id))

    def _group_entry(self, group_id: str) -> _Entry[Group]:
        entry = self._find_group_entry(group_id)
        if entry is None:
            raise GroupNotFoundError(group_id)
        return entry

    def _display_name(self, user_id: str) -> str:
        with self._index_lock:
            entry = self._users.get(user_id)
        return entry.value.name if entry is not None else ""

    def _members_for(self, member_ids: List[str]) -> List[Member]:
        now = self._clock()
        with self._index_lock:
            users = [self._users[i].value for i in member_ids if i in self._users]
        return [
            Member(**user.model_dump(), is_online=self.liveness.is_online(user.last_updated, now))
            for user in users
        ]
