"""
Member-device side: registry API client, durable cache, reconciliation and
the live session that ties them together.

Usage:
    from venue_tracker.client import RegistryClient, ClientCache, VenueSession
"""
from venue_tracker.client.api_client import RegistryClient
from venue_tracker.client.cache import CachedVote, ClientCache, SessionRecord
from venue_tracker.client.positions import QueuePositionSource, simulated_walk
from venue_tracker.client.session import GroupState, VenueSession
from venue_tracker.client.view import VenueView, Zone, build_view

__all__ = [
    "CachedVote",
    "ClientCache",
    "GroupState",
    "QueuePositionSource",
    "RegistryClient",
    "SessionRecord",
    "VenueSession",
    "VenueView",
    "Zone",
    "build_view",
    "simulated_walk",
]
