from .booking import TimeSlot, can_reserve, generate_slots, has_time_overlap, is_slot_in_break
from .engine import ReservationEngine, build_engine, build_yaml_engine
from .errors import ReservationError, ReservationStorageError, Result
from .models import (
	AvailabilitySlot,
	Blockout,
	CreateBlockoutData,
	CreateReservationData,
	Reservation,
	ScheduleConfig,
)
from .priority import apply_priority_conversion, determine_reservation_priority
from .yaml_store import (
	YamlBlockoutStore,
	YamlDisplacementAuditStore,
	YamlReservationStore,
	YamlScheduleConfigStore,
)

__all__ = [
	"TimeSlot",
	"can_reserve",
	"generate_slots",
	"has_time_overlap",
	"is_slot_in_break",
	"ReservationEngine",
	"build_engine",
	"build_yaml_engine",
	"ReservationError",
	"ReservationStorageError",
	"Result",
	"AvailabilitySlot",
	"Blockout",
	"CreateBlockoutData",
	"CreateReservationData",
	"Reservation",
	"ScheduleConfig",
	"apply_priority_conversion",
	"determine_reservation_priority",
	"YamlBlockoutStore",
	"YamlDisplacementAuditStore",
	"YamlReservationStore",
	"YamlScheduleConfigStore",
]
