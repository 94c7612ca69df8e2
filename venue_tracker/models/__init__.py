"""
Domain models.

Usage:
    from venue_tracker.models import Group, User, ChatMessage, Bet
"""
from venue_tracker.models.models import (
    DEFAULT_CALIBRATION,
    Bet,
    CalibrationPoint,
    CamelModel,
    ChatMessage,
    Coordinates,
    Group,
    MapPoint,
    Member,
    Prediction,
    User,
    UserRole,
    VenueCalibration,
)
from venue_tracker.models.fights import FIGHTS, Fight, get_fight

__all__ = [
    "DEFAULT_CALIBRATION",
    "Bet",
    "CalibrationPoint",
    "CamelModel",
    "ChatMessage",
    "Coordinates",
    "FIGHTS",
    "Fight",
    "Group",
    "MapPoint",
    "Member",
    "Prediction",
    "User",
    "UserRole",
    "VenueCalibration",
    "get_fight",
]
