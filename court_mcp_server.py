from __future__ import annotations

from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from court_reservations import CreateReservationData, build_yaml_engine
from court_reservations.config import COURT_NAMES, setup_logging

mcp = FastMCP(
    "Court Reservation MCP Server",
    instructions="Check court availability and book or cancel reservations for residential apartments.",
    json_response=True,
)

DATA_DIR = Path(__file__).parent / "data"
ENGINE = build_yaml_engine(DATA_DIR)


def _outcome(result: Any, key: str) -> dict[str, Any]:
    if not result.success:
        body: dict[str, Any] = {"ok": False, "code": result.error.code, "message": result.error.message}
        reservation = getattr(result.error, "reservation", None)
        if reservation is not None:
            body["reservation"] = reservation.to_dict()
        return body
    value = result.value
    if isinstance(value, list):
        return {"ok": True, key: [item.to_dict() for item in value]}
    return {"ok": True, key: value.to_dict() if value is not None else None}


@mcp.resource("courts://list")
async def list_courts() -> dict[str, str]:
    """List court ids and their display names."""
    return dict(COURT_NAMES)


@mcp.tool()
async def get_availability(court_id: str, date: str) -> dict[str, Any]:
    """Return the slot grid of a court for a date (YYYY-MM-DD)."""
    return _outcome(await ENGINE.get_availability.execute(court_id, date), "slots")


@mcp.tool()
async def create_reservation(
    court_id: str,
    user_id: str,
    apartment: str,
    date: str,
    start_time: str,
    end_time: str,
    user_name: str = "",
    force_displacement: bool = False,
) -> dict[str, Any]:
    """Book a court. Repeat with force_displacement=True to take over a provisional slot."""
    data = CreateReservationData(
        court_id=court_id,
        user_id=user_id,
        user_name=user_name,
        apartment=apartment,
        date=date,
        start_time=start_time,
        end_time=end_time,
        force_displacement=force_displacement,
    )
    return _outcome(await ENGINE.create_reservation.execute(data), "reservation")


@mcp.tool()
async def cancel_reservation(reservation_id: str, user_id: str, apartment: str | None = None) -> dict[str, Any]:
    """Cancel a reservation on behalf of a user or apartment."""
    return _outcome(await ENGINE.cancel_reservation.execute(reservation_id, user_id, apartment), "reservation")


@mcp.tool()
async def list_apartment_reservations(apartment: str) -> dict[str, Any]:
    """Return every reservation of an apartment ordered by date and start time."""
    return _outcome(await ENGINE.get_reservations_by_apartment.execute(apartment), "reservations")


def main() -> None:
    setup_logging()
    mcp.run()


if __name__ == "__main__":
    main()
