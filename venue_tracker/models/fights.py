"""
Static fight schedule for the event.

Bets reference fights by id. The registry stores whatever fight id it is
given; this table only feeds the ``/api/fights`` listing and the member
runner's vote picker.
"""
from typing import List, Optional

from venue_tracker.models.models import CamelModel


class Fight(CamelModel):
    id: str
    fighter_a: str
    fighter_b: str
    time: str  # local start time, e.g. "00:30 HS"


FIGHTS: List[Fight] = [
    Fight(id="f1", time="18:00 HS", fighter_a="Monzon", fighter_b="Bonavena"),
    Fight(id="f2", time="18:30 HS", fighter_a="Vigna", fighter_b="Viciconte"),
    Fight(id="f3", time="19:20 HS", fighter_a="Perez", fighter_b="Jove"),
    Fight(id="f4", time="19:50 HS", fighter_a="Dairi", fighter_b="Espe"),
    Fight(id="f5", time="20:30 HS", fighter_a="Gabino", fighter_b="Banks"),
    Fight(id="f6", time="21:00 HS", fighter_a="Coty", fighter_b="Carito"),
    Fight(id="f7", time="21:50 HS", fighter_a="Mernuel", fighter_b="Cosmic Kid"),
    Fight(id="f8", time="22:20 HS", fighter_a="Grego", fighter_b="Goncho"),
    Fight(id="f9", time="23:10 HS", fighter_a="Perxitaa", fighter_b="Coker"),
    Fight(id="f10", time="23:50 HS", fighter_a="Pepi", fighter_b="Maravilla"),
    Fight(id="f11", time="00:30 HS", fighter_a="Gero", fighter_b="Mazza"),
]


def get_fight(fight_id: str) -> Optional[Fight]:
    """Look up a fight by id."""
    return next((f for f in FIGHTS if f.id == fight_id), None)
