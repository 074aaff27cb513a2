from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .config import COURT_NAMES, DATA_DIR
from .engine import ReservationEngine, build_engine
from .errors import (
    BlockoutNotFoundError,
    CourtNotFoundError,
    DisplacementRequiredError,
    ReservationAlreadyCancelledError,
    ReservationError,
    ReservationLimitExceededError,
    ReservationNotFoundError,
    ReservationPermissionError,
    ReservationSlotUnavailableError,
    ReservationTooEarlyError,
    ReservationTooFarAheadError,
    Result,
    ValidationError,
)
from .models import CreateBlockoutData, CreateReservationData, ScheduleConfig
from .notifications import EventLogLinkedEntityCancellation, OutboxDisplacementNotifier
from .yaml_store import (
    YamlBlockoutStore,
    YamlDisplacementAuditStore,
    YamlReservationStore,
    YamlScheduleConfigStore,
)

ERROR_STATUS: list[tuple[type[ReservationError], int]] = [
    (ValidationError, 400),
    (ReservationTooEarlyError, 400),
    (ReservationTooFarAheadError, 400),
    (ReservationPermissionError, 403),
    (ReservationNotFoundError, 404),
    (BlockoutNotFoundError, 404),
    (CourtNotFoundError, 404),
    (ReservationSlotUnavailableError, 409),
    (ReservationLimitExceededError, 409),
    (DisplacementRequiredError, 409),
    (ReservationAlreadyCancelledError, 409),
]


def status_for(error: ReservationError | None) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def create_app(
    data_dir: str | Path = DATA_DIR,
    now_provider: Callable[[], datetime] | None = None,
    court_names: dict[str, str] | None = None,
) -> Flask:
    app = Flask(__name__)
    clock: Callable[[], datetime] = now_provider or datetime.now
    names = dict(court_names or COURT_NAMES)

    def _open() -> tuple[ReservationEngine, YamlReservationStore]:
        # Each request runs on its own event loop, so cascades get a fresh task set.
        store = YamlReservationStore(data_dir, names, clock)
        engine = build_engine(
            reservation_store=store,
            blockout_store=YamlBlockoutStore(data_dir, names, clock),
            schedule_config_store=YamlScheduleConfigStore(data_dir, clock),
            audit_store=YamlDisplacementAuditStore(data_dir, clock),
            notifier=OutboxDisplacementNotifier(data_dir, clock),
            linked_cancellation=EventLogLinkedEntityCancellation(data_dir, clock),
            clock=clock,
        )
        return engine, store

    async def _respond(engine: ReservationEngine, result: Result[Any], key: str, status: int = 200) -> Any:
        await engine.background.drain()
        if not result.success:
            return _error_response(result.error)

        value = result.value
        if isinstance(value, list):
            payload: Any = [item.to_dict() for item in value]
        elif value is not None and hasattr(value, "to_dict"):
            payload = value.to_dict()
        else:
            payload = value
        return jsonify({"ok": True, key: payload}), status

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.get("/api/availability")
    async def get_availability() -> Any:
        court_id = str(request.args.get("court_id", "")).strip()
        day = str(request.args.get("date", "")).strip()
        if not court_id or not day:
            return _error_response(ValidationError("court_id and date are required"))

        engine, store = _open()
        await store.close_expired(clock())
        result = await engine.get_availability.execute(court_id, day)
        return await _respond(engine, result, "slots")

    @app.post("/api/reservations")
    async def create_reservation() -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            data = CreateReservationData(
                court_id=_required(payload, "court_id"),
                user_id=_required(payload, "user_id"),
                user_name=str(payload.get("user_name", "")).strip(),
                apartment=str(payload.get("apartment", "")).strip(),
                date=_required(payload, "date"),
                start_time=_required(payload, "start_time"),
                end_time=_required(payload, "end_time"),
                players=tuple(str(player) for player in payload.get("players") or []),
                force_displacement=_flag(payload, "force_displacement"),
            )
        except ValidationError as error:
            return _error_response(error)

        engine, _store = _open()
        result = await engine.create_reservation.execute(data)
        return await _respond(engine, result, "reservation", status=201)

    @app.post("/api/reservations/<reservation_id>/cancel")
    async def cancel_reservation(reservation_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            user_id = _required(payload, "user_id")
        except ValidationError as error:
            return _error_response(error)
        apartment = str(payload.get("apartment", "")).strip() or None

        engine, _store = _open()
        result = await engine.cancel_reservation.execute(reservation_id, user_id, apartment)
        return await _respond(engine, result, "reservation")

    @app.get("/api/apartments/<apartment>/reservations")
    async def list_apartment_reservations(apartment: str) -> Any:
        engine, store = _open()
        await store.close_expired(clock())
        result = await engine.get_reservations_by_apartment.execute(apartment)
        return await _respond(engine, result, "reservations")

    @app.get("/api/reservations/<reservation_id>/conversion")
    async def get_conversion(reservation_id: str) -> Any:
        engine, _store = _open()
        result = await engine.get_conversion_info.execute(reservation_id)
        return await _respond(engine, result, "conversion")

    @app.get("/api/statistics")
    async def get_statistics() -> Any:
        engine, _store = _open()
        result = await engine.get_statistics.execute()
        return await _respond(engine, result, "statistics")

    @app.post("/api/blockouts")
    async def create_blockout() -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            data = CreateBlockoutData(
                court_id=_required(payload, "court_id"),
                date=_required(payload, "date"),
                start_time=_required(payload, "start_time"),
                end_time=_required(payload, "end_time"),
                created_by=_required(payload, "created_by"),
                reason=str(payload["reason"]).strip() if payload.get("reason") else None,
            )
        except ValidationError as error:
            return _error_response(error)

        engine, _store = _open()
        result = await engine.create_blockout.execute(data)
        return await _respond(engine, result, "blockout", status=201)

    @app.delete("/api/blockouts/<blockout_id>")
    async def delete_blockout(blockout_id: str) -> Any:
        engine, _store = _open()
        result = await engine.delete_blockout.execute(blockout_id)
        await engine.background.drain()
        if not result.success:
            return _error_response(result.error)
        return jsonify({"ok": True, "blockout_id": blockout_id})

    @app.get("/api/schedule-config")
    async def get_schedule_config() -> Any:
        engine, _store = _open()
        result = await engine.get_schedule_config.execute()
        return await _respond(engine, result, "config")

    @app.put("/api/schedule-config")
    async def update_schedule_config() -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            user_id = _required(payload, "user_id")
            raw_config = payload.get("config")
            if not isinstance(raw_config, dict):
                raise ValidationError("config must be an object")
            config = ScheduleConfig.from_dict(raw_config)
        except ValidationError as error:
            return _error_response(error)
        except (TypeError, ValueError) as error:
            return _error_response(ValidationError(f"Invalid schedule configuration: {error}"))

        engine, _store = _open()
        result = await engine.update_schedule_config.execute(user_id, config)
        return await _respond(engine, result, "config")

    @app.get("/api/users/<user_id>/displacement-notifications")
    async def list_displacement_notifications(user_id: str) -> Any:
        engine, _store = _open()
        result = await engine.get_pending_displacement_notifications.execute(user_id)
        return await _respond(engine, result, "notifications")

    @app.post("/api/users/<user_id>/displacement-notifications/read")
    async def mark_displacement_notifications_read(user_id: str) -> Any:
        engine, _store = _open()
        result = await engine.mark_displacement_notifications_read.execute(user_id)
        await engine.background.drain()
        if not result.success:
            return _error_response(result.error)
        return jsonify({"ok": True, "user_id": user_id})

    return app


def _required(payload: dict[str, Any], key: str) -> str:
    value = str(payload.get(key, "")).strip()
    if not value:
        raise ValidationError(f"{key} is required")
    return value


def _flag(payload: dict[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{key} must be true or false")


def _error_response(error: ReservationError | None) -> Any:
    body: dict[str, Any] = {
        "ok": False,
        "code": getattr(error, "code", "INTERNAL_ERROR"),
        "message": str(error) if error is not None else "Unknown error",
    }
    if isinstance(error, DisplacementRequiredError):
        body["reservation"] = error.reservation.to_dict()
    return jsonify(body), status_for(error)


if __name__ == "__main__":
    from .config import setup_logging

    setup_logging()
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
