"""Storage and messaging boundaries the engine talks to.

Implementations signal failure by raising: ``ReservationError`` subclasses for
business outcomes, ``AtomicPathUnsupportedError`` when a transactional
procedure is missing, anything else for infrastructure trouble.
"""

from __future__ import annotations

from typing import Protocol

from .models import (
    Blockout,
    ConversionInfo,
    CreateBlockoutData,
    CreateReservationData,
    DisplacementDetails,
    DisplacementNotificationRecord,
    Reservation,
    ReservationStatistics,
    ScheduleConfig,
)


class ReservationStore(Protocol):
    async def find_by_id(self, reservation_id: str) -> Reservation | None: ...

    async def find_by_apartment(self, apartment: str) -> list[Reservation]: ...

    async def find_by_user(self, user_id: str) -> list[Reservation]: ...

    async def find_by_date_and_court(self, day: str, court_id: str) -> list[Reservation]: ...

    async def find_by_date(self, day: str) -> list[Reservation]: ...

    async def find_all(self) -> list[Reservation]: ...

    async def insert(self, data: CreateReservationData, priority: str) -> Reservation: ...

    async def cancel(self, reservation_id: str) -> None: ...

    async def update_priority(self, reservation_id: str, priority: str) -> Reservation: ...

    async def get_statistics(self) -> ReservationStatistics: ...

    async def get_conversion_info(self, reservation_id: str) -> ConversionInfo | None: ...

    async def create_atomic(self, data: CreateReservationData) -> Reservation: ...

    async def displace_and_create_atomic(self, displaced_id: str, data: CreateReservationData) -> Reservation: ...

    async def recalculate_conversions(self, apartment: str) -> None: ...


class BlockoutStore(Protocol):
    async def find_by_date_and_court(self, day: str, court_id: str) -> list[Blockout]: ...

    async def insert(self, data: CreateBlockoutData) -> Blockout: ...

    async def delete(self, blockout_id: str) -> None: ...


class ScheduleConfigStore(Protocol):
    async def get_config(self) -> ScheduleConfig: ...

    async def update_config(self, user_id: str, config: ScheduleConfig) -> ScheduleConfig: ...


class DisplacementNotifier(Protocol):
    async def notify_apartment_displacement(
        self,
        apartment: str,
        day: str,
        start_time: str,
        end_time: str,
        court_name: str,
        displacing_apartment: str,
    ) -> None: ...

    async def notify_apartment_blockout_cancellation(
        self,
        apartment: str,
        day: str,
        start_time: str,
        end_time: str,
        court_name: str,
    ) -> None: ...


class DisplacementAuditStore(Protocol):
    async def insert(self, user_id: str, details: DisplacementDetails) -> DisplacementNotificationRecord: ...

    async def find_unread_by_user(self, user_id: str) -> list[DisplacementNotificationRecord]: ...

    async def mark_all_as_read(self, user_id: str) -> None: ...


class LinkedEntityCancellation(Protocol):
    async def cancel_by_reservation(self, reservation_id: str) -> None: ...
