"""
Liveness and group re-creation rules.

A member is online while their last join or location update is inside the
liveness window, offline otherwise. The state is computed whenever someone
reads the member list; nothing is written back, and offline members are never
removed from their group.

Groups that vanish (process restart) are recreated by clients, never by the
server: the client asks for a group under the old code, and whichever request
arrives first creates it. Earlier history for that code is gone.
"""
from dataclasses import dataclass
from typing import Optional

DEFAULT_LIVENESS_WINDOW_MS = 120_000

RESURRECTION_NOTICE = (
    "The group was restarted on the server. Earlier chat and votes stored there were lost."
)


@dataclass(frozen=True)
class LivenessPolicy:
    """Online/offline rule for members."""
    window_ms: int = DEFAULT_LIVENESS_WINDOW_MS

    def is_online(self, last_updated: Optional[int], now: int) -> bool:
        """Online iff activity was seen less than ``window_ms`` ago."""
        if last_updated is None:
            return False
        return now - last_updated < self.window_ms


def group_name_for(owner_name: str) -> str:
    """Display name of a group created by ``owner_name``."""
    return f"{owner_name}'s Group"
