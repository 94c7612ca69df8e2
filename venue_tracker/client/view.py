"""
Presentation-ready view of a group, derived from reconciled state.

Nothing here talks to the registry: markers, distances and the zone advisory
are pure functions of the member list, the calibration and the clock.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from venue_tracker.client.reconcile import ChatEntry, tally_votes
from venue_tracker.models import Bet, Coordinates, Group, MapPoint, Member, VenueCalibration
from venue_tracker.services.geo import haversine_distance, is_off_map, project_to_map
from venue_tracker.utils.clock import seconds_since

NEARBY_THRESHOLD_M = 5.0


@dataclass
class MemberMarker:
    """A member placed on the venue map."""
    member: Member
    position: MapPoint
    is_self: bool


@dataclass
class MemberRow:
    """One line of the member list."""
    member: Member
    is_self: bool
    distance_m: Optional[float]
    distance_label: Optional[str]
    last_seen_seconds: Optional[int]


@dataclass
class Zone:
    """A circle around a fixed point of interest (meeting spot, exit)."""
    reference: Coordinates
    radius_m: float


@dataclass
class ZoneAdvisory:
    distance_m: float
    inside: bool


@dataclass
class VenueView:
    group: Optional[Group]
    markers: List[MemberMarker]
    rows: List[MemberRow]
    online_count: int
    messages: List[ChatEntry]
    bets: List[Bet]
    vote_tally: Dict[str, Dict[str, int]] = field(default_factory=dict)
    notice: Optional[str] = None
    zone: Optional[ZoneAdvisory] = None


def distance_label(meters: float) -> str:
    if meters < NEARBY_THRESHOLD_M:
        return "< 5m"
    return f"{meters:.0f}m"


def member_markers(
    members: Sequence[Member],
    calibration: Optional[VenueCalibration],
    current_user_id: Optional[str] = None,
) -> List[MemberMarker]:
    """Project members with a known location; members far off the map are dropped."""
    if calibration is None:
        return []

    markers = []
    for member in members:
        if member.last_location is None:
            continue
        position = project_to_map(member.last_location, calibration)
        if is_off_map(position):
            continue
        markers.append(MemberMarker(member=member, position=position, is_self=member.id == current_user_id))
    return markers


def member_rows(
    members: Sequence[Member],
    current_user_id: Optional[str],
    now: int,
) -> List[MemberRow]:
    """Member list with distance from the current user and time since last seen."""
    me = next((m for m in members if m.id == current_user_id), None)
    rows = []
    for member in members:
        is_self = member.id == current_user_id
        distance = None
        if not is_self and me is not None and me.last_location and member.last_location:
            distance = haversine_distance(me.last_location, member.last_location)
        rows.append(
            MemberRow(
                member=member,
                is_self=is_self,
                distance_m=distance,
                distance_label=distance_label(distance) if distance is not None else None,
                last_seen_seconds=None if member.is_online else seconds_since(member.last_updated, now),
            )
        )
    return rows


def zone_advisory(position: Coordinates, reference: Coordinates, radius_m: float) -> ZoneAdvisory:
    """Straight-line distance to a fixed reference point and whether it is within ``radius_m``."""
    distance = haversine_distance(position, reference)
    return ZoneAdvisory(distance_m=distance, inside=distance <= radius_m)


def build_view(
    group: Optional[Group],
    members: Sequence[Member],
    messages: Sequence[ChatEntry],
    bets: Sequence[Bet],
    current_user_id: Optional[str],
    now: int,
    notice: Optional[str] = None,
    zone: Optional[Zone] = None,
) -> VenueView:
    """
    Assemble the view. The zone advisory is filled in only when a zone is
    configured and the current user has a known location.
    """
    calibration = group.calibration if group else None
    me = next((m for m in members if m.id == current_user_id), None)
    advisory = None
    if zone is not None and me is not None and me.last_location is not None:
        advisory = zone_advisory(me.last_location, zone.reference, zone.radius_m)
    return VenueView(
        group=group,
        markers=member_markers(members, calibration, current_user_id),
        rows=member_rows(members, current_user_id, now),
        online_count=sum(1 for m in members if m.is_online),
        messages=list(messages),
        bets=list(bets),
        vote_tally=tally_votes(bets),
        notice=notice,
        zone=advisory,
    )
