from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

from .admin import (
    DeleteBlockout,
    GetAllReservations,
    GetBlockouts,
    GetConversionInfo,
    GetPendingDisplacementNotifications,
    GetReservationsByApartment,
    GetReservationsByDate,
    GetReservationStatistics,
    GetScheduleConfig,
    MarkDisplacementNotificationsRead,
    RecalculateApartmentConversions,
    UpdateScheduleConfig,
)
from .availability import GetActiveApartmentReservations, GetAvailability
from .background import BackgroundTasks
from .config import COURT_NAMES
from .notifications import EventLogLinkedEntityCancellation, OutboxDisplacementNotifier
from .ports import (
    BlockoutStore,
    DisplacementAuditStore,
    DisplacementNotifier,
    LinkedEntityCancellation,
    ReservationStore,
    ScheduleConfigStore,
)
from .reservations import CancelReservation, CreateBlockout, CreateReservation, DisplaceReservation
from .yaml_store import (
    YamlBlockoutStore,
    YamlDisplacementAuditStore,
    YamlReservationStore,
    YamlScheduleConfigStore,
)


@dataclass
class ReservationEngine:
    reservation_store: ReservationStore
    background: BackgroundTasks
    get_active_reservations: GetActiveApartmentReservations
    get_availability: GetAvailability
    displace_reservation: DisplaceReservation
    cancel_reservation: CancelReservation
    create_reservation: CreateReservation
    create_blockout: CreateBlockout
    delete_blockout: DeleteBlockout
    get_blockouts: GetBlockouts
    get_schedule_config: GetScheduleConfig
    update_schedule_config: UpdateScheduleConfig
    get_conversion_info: GetConversionInfo
    recalculate_conversions: RecalculateApartmentConversions
    get_statistics: GetReservationStatistics
    get_reservations_by_apartment: GetReservationsByApartment
    get_reservations_by_date: GetReservationsByDate
    get_all_reservations: GetAllReservations
    get_pending_displacement_notifications: GetPendingDisplacementNotifications
    mark_displacement_notifications_read: MarkDisplacementNotificationsRead


def build_engine(
    reservation_store: ReservationStore,
    blockout_store: BlockoutStore,
    schedule_config_store: ScheduleConfigStore,
    audit_store: DisplacementAuditStore,
    notifier: DisplacementNotifier,
    linked_cancellation: LinkedEntityCancellation,
    clock: Callable[[], datetime] = datetime.now,
    background: BackgroundTasks | None = None,
) -> ReservationEngine:
    background = background or BackgroundTasks()
    get_active = GetActiveApartmentReservations(reservation_store, clock)
    get_availability = GetAvailability(reservation_store, blockout_store, schedule_config_store, get_active, clock)
    displace = DisplaceReservation(reservation_store, audit_store, notifier, linked_cancellation, background)
    cancel = CancelReservation(reservation_store, linked_cancellation, background)

    return ReservationEngine(
        reservation_store=reservation_store,
        background=background,
        get_active_reservations=get_active,
        get_availability=get_availability,
        displace_reservation=displace,
        cancel_reservation=cancel,
        create_reservation=CreateReservation(reservation_store, get_availability, get_active, displace, background, clock),
        create_blockout=CreateBlockout(blockout_store, get_availability, cancel, notifier, background),
        delete_blockout=DeleteBlockout(blockout_store),
        get_blockouts=GetBlockouts(blockout_store),
        get_schedule_config=GetScheduleConfig(schedule_config_store),
        update_schedule_config=UpdateScheduleConfig(schedule_config_store),
        get_conversion_info=GetConversionInfo(reservation_store),
        recalculate_conversions=RecalculateApartmentConversions(reservation_store),
        get_statistics=GetReservationStatistics(reservation_store),
        get_reservations_by_apartment=GetReservationsByApartment(reservation_store),
        get_reservations_by_date=GetReservationsByDate(reservation_store),
        get_all_reservations=GetAllReservations(reservation_store),
        get_pending_displacement_notifications=GetPendingDisplacementNotifications(audit_store),
        mark_displacement_notifications_read=MarkDisplacementNotificationsRead(audit_store),
    )


def build_yaml_engine(
    data_dir: str | Path = "data",
    clock: Callable[[], datetime] = datetime.now,
    court_names: dict[str, str] | None = None,
) -> ReservationEngine:
    """Wire every use case to YAML files under ``data_dir``."""
    names = court_names or COURT_NAMES
    return build_engine(
        reservation_store=YamlReservationStore(data_dir, names, clock),
        blockout_store=YamlBlockoutStore(data_dir, names, clock),
        schedule_config_store=YamlScheduleConfigStore(data_dir, clock),
        audit_store=YamlDisplacementAuditStore(data_dir, clock),
        notifier=OutboxDisplacementNotifier(data_dir, clock),
        linked_cancellation=EventLogLinkedEntityCancellation(data_dir, clock),
        clock=clock,
    )
