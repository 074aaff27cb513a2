from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

from .yaml_store import YamlDataDirectory

logger = logging.getLogger(__name__)

KIND_DISPLACEMENT = "displacement"
KIND_BLOCKOUT_CANCELLATION = "blockout_cancellation"


class OutboxDisplacementNotifier(YamlDataDirectory):
    """Queues apartment-facing messages in ``notifications.yaml``.

    Delivery (push, e-mail) reads the outbox; this adapter only records.
    """

    def __init__(self, base_dir: str | Path = "data", clock: Callable[[], datetime] = datetime.now) -> None:
        super().__init__(base_dir, clock)
        self.outbox_file = self.base_dir / "notifications.yaml"
        self._ensure_files(self.outbox_file)

    async def notify_apartment_displacement(
        self,
        apartment: str,
        day: str,
        start_time: str,
        end_time: str,
        court_name: str,
        displacing_apartment: str,
    ) -> None:
        self._enqueue(
            KIND_DISPLACEMENT,
            apartment,
            {
                "date": day,
                "start_time": start_time,
                "end_time": end_time,
                "court_name": court_name,
                "displaced_by_apartment": displacing_apartment,
            },
            f"Your reservation on {court_name} at {day} {start_time}-{end_time} "
            f"was displaced by apartment {displacing_apartment}.",
        )

    async def notify_apartment_blockout_cancellation(
        self,
        apartment: str,
        day: str,
        start_time: str,
        end_time: str,
        court_name: str,
    ) -> None:
        self._enqueue(
            KIND_BLOCKOUT_CANCELLATION,
            apartment,
            {"date": day, "start_time": start_time, "end_time": end_time, "court_name": court_name},
            f"Your reservation on {court_name} at {day} {start_time}-{end_time} "
            "was cancelled because the court was blocked.",
        )

    def pending_for(self, apartment: str) -> list[dict[str, Any]]:
        return [row for row in self._read_yaml_list(self.outbox_file) if row.get("apartment") == apartment]

    def _enqueue(self, kind: str, apartment: str, details: dict[str, Any], message: str) -> None:
        now = self.clock()
        rows = self._read_yaml_list(self.outbox_file)
        rows.append(
            {
                "notification_id": str(uuid4()),
                "kind": kind,
                "apartment": apartment,
                "message": message,
                "details": details,
                "created_at": now.isoformat(timespec="seconds"),
            }
        )
        self._write_yaml(self.outbox_file, rows)
        logger.info("Queued %s notification for apartment %s", kind, apartment)


class EventLogLinkedEntityCancellation(YamlDataDirectory):
    """Records that entities tied to a reservation (matches, invites) must be cancelled."""

    async def cancel_by_reservation(self, reservation_id: str) -> None:
        self._log_event("LINKED_ENTITY_CANCEL_REQUESTED", {"reservation_id": reservation_id})
        logger.debug("Linked entity cancellation requested for reservation %s", reservation_id)
