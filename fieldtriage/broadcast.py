"""
Broadcast Controller
====================
Tracks the one case that is currently being advertised to nearby
devices. Two states: idle, or broadcasting a single case since a given
time. Only the logical state is modelled here; no radio I/O happens.

Whether a case "is broadcasting" is answered from the controller's single
pointer, so at most one case can ever report it.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from fieldtriage.case_models import Case, now_ms

logger = logging.getLogger(__name__)

APP_NAME = "Field Triage"


class BroadcastController:
    """State machine for the active broadcast.

    Attributes:
        current_id: Id of the broadcasting case, or None when idle.
        started_at: Epoch ms when the current broadcast began.
    """

    def __init__(self, lookup: Callable[[str], Optional[Case]]) -> None:
        """Initialize an idle controller.

        Args:
            lookup: Resolves a case id to the stored Case, or None.
        """
        self._lookup = lookup
        self.current_id: Optional[str] = None
        self.started_at: Optional[int] = None

    @property
    def active(self) -> bool:
        return self.current_id is not None

    def is_broadcasting(self, case_id: str) -> bool:
        return self.current_id is not None and self.current_id == case_id

    def start(self, case_id: str, now: Optional[int] = None) -> Optional[Case]:
        """Point the controller at a case and stamp its start time.

        Starting a new case while another one is broadcasting simply moves
        the pointer; the previous case stops reporting as broadcasting.

        Args:
            case_id: Case to broadcast.
            now: Optional timestamp override (epoch ms).

        Returns:
            The stored Case, or None if the id is unknown or the case
            is already resolved.
        """
        case = self._lookup(case_id)
        if case is None:
            logger.info("Broadcast not started: unknown case %s.", case_id)
            return None
        if case.resolved:
            logger.info("Broadcast not started: case %s is resolved.", case_id)
            return None

        started = now_ms() if now is None else now
        previous = self.current_id
        self.current_id = case.id
        self.started_at = started
        case.broadcast_started_at = started

        if previous and previous != case.id:
            logger.info("Broadcast moved from case %s to %s.", previous, case.id)
        else:
            logger.info("Broadcast started for case %s.", case.id)
        return case

    def stop(self) -> Optional[str]:
        """Return to idle.

        The case keeps its ``broadcast_started_at`` as a historical record.

        Returns:
            Id of the case that was broadcasting, or None if already idle.
        """
        if self.current_id is None:
            return None
        stopped = self.current_id
        self.current_id = None
        self.started_at = None
        logger.info("Broadcast stopped for case %s.", stopped)
        return stopped

    def restore(self, case_id: str, started_at: Optional[int]) -> None:
        """Resume a broadcast recorded before a restart, without re-stamping."""
        self.current_id = case_id
        self.started_at = started_at
        logger.info("Broadcast restored for case %s.", case_id)

    def current(self) -> Optional[Case]:
        if self.current_id is None:
            return None
        return self._lookup(self.current_id)

    def elapsed_seconds(self, now: Optional[int] = None) -> Optional[int]:
        """Whole seconds since the current broadcast began (display only)."""
        if self.current_id is None or self.started_at is None:
            return None
        current = now_ms() if now is None else now
        return max(0, (current - self.started_at) // 1000)


def broadcast_payload(case: Case) -> dict:
    """Build the summary advertised for a case (what a QR code would carry).

    Args:
        case: The case being shared.

    Returns:
        Dict with id, category, priority, timestamp, subject name, tags,
        location label, GPS position and app name.
    """
    return {
        "id": case.id,
        "category": case.category,
        "priority": case.priority,
        "createdAt": case.created_at,
        "subjectName": case.subject_name or "Anonymous",
        "symptomTags": list(case.symptom_tags),
        "supplyTags": list(case.supply_tags) if case.supply_tags is not None else None,
        "locationLabel": case.location_label,
        "coordinates": case.coordinates.model_dump() if case.coordinates else None,
        "app": APP_NAME,
    }
