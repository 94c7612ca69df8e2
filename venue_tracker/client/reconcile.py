"""
Merging polled server state with the client's local view.

The server can lose everything between two polls, and several polls can be in
flight at once, so every merge here is safe to apply repeatedly and in any
order:

- Chat is append-only locally. Server messages are added by id, and a locally
  sent ("pending") message is retired once the server shows a message with
  the same sender and text within ``CONFIRMATION_WINDOW_MS``. If the server
  forgets messages, the local transcript keeps them.
- Membership always follows the server, even when it reports nobody.
- Votes: the user's cached votes are laid over the server's bet list, so a
  restarted server never makes the user's own votes disappear from view.
"""
import logging
import uuid
from typing import Dict, Iterable, List, Sequence

from venue_tracker.client.cache import CachedVote
from venue_tracker.models import Bet, ChatMessage, Member

logger = logging.getLogger(__name__)

CONFIRMATION_WINDOW_MS = 30_000
MAX_LOCAL_MESSAGES = 100
PENDING_ID_PREFIX = "local-"


class ChatEntry(ChatMessage):
    """A transcript line; ``pending`` until the server has confirmed it."""
    pending: bool = False


def pending_entry(sender_id: str, sender_name: str, text: str, timestamp: int) -> ChatEntry:
    """Optimistic local copy of a message that is being sent."""
    return ChatEntry(
        id=f"{PENDING_ID_PREFIX}{uuid.uuid4().hex}",
        sender_id=sender_id,
        sender_name=sender_name,
        text=text,
        timestamp=timestamp,
        pending=True,
    )


def confirmed_entry(message: ChatMessage) -> ChatEntry:
    return ChatEntry(**message.model_dump(), pending=False)


def _confirms(server: ChatMessage, pending: ChatEntry, window_ms: int) -> bool:
    return (
        server.sender_id == pending.sender_id
        and server.text == pending.text
        and abs(server.timestamp - pending.timestamp) <= window_ms
    )


def merge_messages(
    local: Sequence[ChatEntry],
    server: Sequence[ChatMessage],
    window_ms: int = CONFIRMATION_WINDOW_MS,
    limit: int = MAX_LOCAL_MESSAGES,
) -> List[ChatEntry]:
    """
    Merge a polled message list into the local transcript.

    Only server messages not already in ``local`` can confirm, and each confirms
    at most one pending entry, so two identical messages sent in quick
    succession stay two lines until both are echoed.

    Args:
        local: Current transcript, confirmed and pending entries
        server: Messages from the latest poll
        window_ms: Max timestamp distance for a server message to confirm a pending one
        limit: Entries kept (newest)

    Returns:
        New transcript sorted by timestamp, oldest first
    """
    merged: List[ChatEntry] = list(local)
    known_ids = {entry.id for entry in merged}
    fresh: List[ChatMessage] = []
    for message in server:
        if message.id not in known_ids:
            merged.append(confirmed_entry(message))
            known_ids.add(message.id)
            fresh.append(message)

    used: set[str] = set()
    result: List[ChatEntry] = []
    for entry in merged:
        if entry.pending:
            match = next(
                (m for m in fresh if m.id not in used and _confirms(m, entry, window_ms)),
                None,
            )
            if match is not None:
                used.add(match.id)
                continue
        result.append(entry)

    result.sort(key=lambda e: e.timestamp)
    return result[-limit:]


def replace_pending(
    local: Sequence[ChatEntry], pending_id: str, message: ChatMessage
) -> List[ChatEntry]:
    """
    Swap a pending entry for the server's copy returned by the send call.

    If a poll already brought the server copy in, the pending entry is just
    dropped. If a poll already retired the pending entry against another
    identical message, the server copy is still added.
    """
    already_known = any(entry.id == message.id for entry in local)
    result = [entry for entry in local if entry.id != pending_id]
    if not already_known:
        result.append(confirmed_entry(message))
    result.sort(key=lambda e: e.timestamp)
    return result


def merge_members(previous: Sequence[Member], server: Sequence[Member]) -> List[Member]:
    """
    Adopt the server's member list.

    An empty server list replaces a non-empty local one: with a 120 s liveness
    window an empty answer is far more likely a real reset than a glitch.
    """
    if previous and not server:
        logger.warning(f"Server reported no members (had {len(previous)}); adopting empty list")
    return list(server)


def overlay_votes(
    server_bets: Iterable[Bet],
    user_id: str,
    user_name: str,
    votes: Dict[str, CachedVote],
) -> List[Bet]:
    """
    Server bets with the user's own cached votes taking precedence.

    A cached vote that the server does not have (or has with a different
    prediction) is shown as the cached value until the re-upload lands.
    """
    result: List[Bet] = []
    covered: set[str] = set()
    for bet in server_bets:
        if bet.user_id == user_id and bet.fight_id in votes:
            vote = votes[bet.fight_id]
            if bet.prediction != vote.prediction:
                continue
            covered.add(bet.fight_id)
        result.append(bet)

    for fight_id, vote in votes.items():
        if fight_id in covered:
            continue
        result.append(
            Bet(
                id=f"{PENDING_ID_PREFIX}{user_id}-{fight_id}",
                user_id=user_id,
                user_name=user_name,
                fight_id=fight_id,
                prediction=vote.prediction,
                timestamp=vote.timestamp,
            )
        )
    return result


def tally_votes(bets: Iterable[Bet]) -> Dict[str, Dict[str, int]]:
    """Vote counts per fight: ``{fight_id: {"A": n, "B": m}}``."""
    tally: Dict[str, Dict[str, int]] = {}
    for bet in bets:
        counts = tally.setdefault(bet.fight_id, {"A": 0, "B": 0})
        counts[bet.prediction] += 1
    return tally
