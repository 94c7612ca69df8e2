"""
Domain models for groups, members, chat and bets.

Everything the registry stores and the HTTP layer returns is a pydantic model.
Fields are snake_case in Python and camelCase on the wire (``senderId``,
``lastLocation``, ``isOnline``); input accepts either spelling.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UserRole = Literal["member", "admin"]
Prediction = Literal["A", "B"]


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")


class Coordinates(CamelModel):
    lat: float
    lng: float


class MapPoint(CamelModel):
    x: float
    y: float


class CalibrationPoint(CamelModel):
    """A GPS coordinate paired with the pixel it corresponds to on the venue map."""
    gps: Coordinates
    map: MapPoint


class VenueCalibration(CamelModel):
    """
    Two-point calibration between GPS and venue-map pixels.

    ``scale`` is an estimated metres-per-pixel hint; projection does not use it.
    """

    model_config = ConfigDict(frozen=True)

    p1: CalibrationPoint
    p2: CalibrationPoint
    scale: float = 1.0


class User(CamelModel):
    """A group member as stored by the registry."""
    id: str
    name: str
    group_id: str
    role: UserRole = "member"
    last_location: Optional[Coordinates] = None
    last_updated: Optional[int] = None  # epoch ms
    sector: Optional[str] = None


class Member(User):
    """A user as seen by readers: ``is_online`` is computed at read time."""
    is_online: bool = False


class ChatMessage(CamelModel):
    id: str
    sender_id: str
    sender_name: str
    text: str
    timestamp: int  # epoch ms


class Bet(CamelModel):
    id: str
    user_id: str
    user_name: str
    fight_id: str
    prediction: Prediction
    timestamp: int  # epoch ms


class Group(CamelModel):
    id: str  # 4-char uppercase code, e.g. "AE34"
    name: str
    created_at: int
    members: List[str] = Field(default_factory=list)
    calibration: Optional[VenueCalibration] = None
    map_image: Optional[str] = None
    messages: List[ChatMessage] = Field(default_factory=list)
    bets: List[Bet] = Field(default_factory=list)


# Calibration the client sends when creating or resurrecting a group
# without a venue-specific one.
DEFAULT_CALIBRATION = VenueCalibration(
    p1=CalibrationPoint(gps=Coordinates(lat=-34.643494, lng=-58.396511), map=MapPoint(x=500, y=500)),
    p2=CalibrationPoint(gps=Coordinates(lat=-34.644494, lng=-58.396511), map=MapPoint(x=500, y=900)),
    scale=1.0,
)
