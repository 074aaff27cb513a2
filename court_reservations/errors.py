from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from .models import Reservation


class ReservationError(Exception):
    """Base class for every failure the engine reports.

    Ports raise these; use cases return them inside a ``Result``.
    """

    code = "RESERVATION_ERROR"
    default_message = "Reservation operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ReservationError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class ReservationNotFoundError(ReservationError):
    code = "RESERVATION_NOT_FOUND"
    default_message = "Reservation not found"


class BlockoutNotFoundError(ReservationError):
    code = "BLOCKOUT_NOT_FOUND"
    default_message = "Blockout not found"


class CourtNotFoundError(ReservationError):
    code = "COURT_NOT_FOUND"
    default_message = "Court not found"


class ReservationAlreadyCancelledError(ReservationError):
    code = "RESERVATION_ALREADY_CANCELLED"
    default_message = "Reservation is already cancelled"


class ReservationPermissionError(ReservationError):
    code = "RESERVATION_PERMISSION_DENIED"
    default_message = "Not allowed to modify this reservation"


class ReservationLimitExceededError(ReservationError):
    code = "RESERVATION_LIMIT_EXCEEDED"
    default_message = "Apartment has reached its active reservation limit"


class ReservationSlotUnavailableError(ReservationError):
    code = "RESERVATION_SLOT_UNAVAILABLE"
    default_message = "Requested slot is unavailable"


class ReservationTooEarlyError(ReservationError):
    code = "RESERVATION_TOO_EARLY"
    default_message = "Reservation starts too soon"


class ReservationTooFarAheadError(ReservationError):
    code = "RESERVATION_TOO_FAR_AHEAD"
    default_message = "Reservation is too far ahead"


class DisplacementRequiredError(ReservationError):
    code = "DISPLACEMENT_REQUIRED"
    default_message = "Slot is held by a provisional reservation; confirm displacement to continue"

    def __init__(self, reservation: "Reservation", message: str | None = None) -> None:
        self.reservation = reservation
        super().__init__(message)


class DisplacementFailedError(ReservationError):
    code = "DISPLACEMENT_FAILED"
    default_message = "Could not displace reservation"

    def __init__(self, message: str | None = None, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class AtomicPathUnsupportedError(ReservationError):
    """Raised by a store that has no transactional creation procedure."""

    code = "ATOMIC_PATH_UNSUPPORTED"
    default_message = "Atomic reservation procedure is not available"


class InfrastructureError(ReservationError):
    code = "INFRASTRUCTURE_ERROR"
    default_message = "Storage operation failed"

    def __init__(self, message: str | None = None, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class ReservationStorageError(InfrastructureError):
    pass


T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: ReservationError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @staticmethod
    def ok(value: T | None = None) -> "Result[T]":
        return Result(value=value)

    @staticmethod
    def fail(error: ReservationError) -> "Result[T]":
        return Result(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def as_failure(error: Exception, message: str) -> Result:
    """Turn an exception raised by a port into a failed ``Result``.

    Business errors pass through untouched; anything else is wrapped.
    """
    if isinstance(error, ReservationError):
        return Result.fail(error)
    return Result.fail(InfrastructureError(message, error))
