from __future__ import annotations

from typing import Iterable

from .config import MAX_ACTIVE_RESERVATIONS
from .models import PRIORITY_GUARANTEED, PRIORITY_PROVISIONAL, Reservation

CONVERSION_RULE_EARLIEST = "earliest_active"


def apply_priority_conversion(reservations: list[Reservation]) -> list[Reservation]:
    """Promote an apartment's earliest confirmed reservation to guaranteed.

    Guaranteed is sticky: when any confirmed reservation already holds it the
    input is returned unchanged. Ties on (date, start_time) keep the first one
    encountered.
    """
    confirmed = [reservation for reservation in reservations if reservation.is_confirmed]
    if not confirmed:
        return reservations

    if any(reservation.priority == PRIORITY_GUARANTEED for reservation in confirmed):
        return reservations

    earliest = min(confirmed, key=lambda reservation: (reservation.date, reservation.start_time))
    return [
        reservation.with_priority(PRIORITY_GUARANTEED) if reservation is earliest else reservation
        for reservation in reservations
    ]


def determine_reservation_priority(existing: Iterable[Reservation]) -> str | None:
    """Return the priority a new reservation gets, or None when over the limit."""
    active = [reservation for reservation in existing if reservation.is_confirmed]
    if len(active) >= MAX_ACTIVE_RESERVATIONS:
        return None
    if not active:
        return PRIORITY_GUARANTEED
    return PRIORITY_PROVISIONAL
