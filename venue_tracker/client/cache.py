"""
Durable client-side cache.

Holds what a member device must survive reloads and server restarts with:
- the last session (user id, display name, group code), used to rejoin and to
  name a resurrected group
- the user's confirmed votes, keyed by user id then fight id. Votes are not
  tied to a group: the same user id can outlive several resurrections of the
  same group code, and every refresh re-uploads them.

Stored as one JSON file, rewritten atomically on every change. With
``path=None`` the cache lives in memory only.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from pydantic import Field, ValidationError as PydanticValidationError

from venue_tracker.models import CamelModel, Prediction

logger = logging.getLogger(__name__)


class SessionRecord(CamelModel):
    user_id: str
    name: str
    group_code: str


class CachedVote(CamelModel):
    fight_id: str
    prediction: Prediction
    timestamp: int


class CacheData(CamelModel):
    session: Optional[SessionRecord] = None
    votes: Dict[str, Dict[str, CachedVote]] = Field(default_factory=dict)


class ClientCache:
    """JSON-file backed session and vote cache."""

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path) if path else None
        self._data = self._load()

    def _load(self) -> CacheData:
        if self.path is None or not self.path.exists():
            return CacheData()
        try:
            return CacheData.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, ValueError, PydanticValidationError) as e:
            # A corrupt cache only costs the rejoin shortcut and vote restore
            logger.warning(f"Ignoring unreadable client cache {self.path}: {e}")
            return CacheData()

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data.to_wire(), f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    # Session

    def load_session(self) -> Optional[SessionRecord]:
        return self._data.session

    def save_session(self, user_id: str, name: str, group_code: str) -> SessionRecord:
        self._data.session = SessionRecord(user_id=user_id, name=name, group_code=group_code)
        self._save()
        return self._data.session

    def clear_session(self) -> None:
        self._data.session = None
        self._save()

    # Votes

    def votes_for(self, user_id: str) -> Dict[str, CachedVote]:
        """Confirmed votes of ``user_id``, keyed by fight id."""
        return dict(self._data.votes.get(user_id, {}))

    def record_vote(self, user_id: str, fight_id: str, prediction: str, timestamp: int) -> CachedVote:
        """
        Store a confirmed vote, replacing any earlier vote on the same fight.

        Re-recording an identical vote leaves the file untouched.
        """
        vote = CachedVote(fight_id=fight_id, prediction=prediction, timestamp=timestamp)
        votes = self._data.votes.setdefault(user_id, {})
        if votes.get(fight_id) == vote:
            return vote
        votes[fight_id] = vote
        self._save()
        return vote
