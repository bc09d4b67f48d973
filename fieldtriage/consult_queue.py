"""
Consult Queue Manager
=====================
Set of case ids awaiting remote professional review. The queue never
owns case data: entries are ids, joined against the case repository
whenever they are read, so a resolved case shows up resolved here too.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from fieldtriage.case_models import Case

logger = logging.getLogger(__name__)


class ConsultQueue:
    """Insertion-ordered, duplicate-free queue of case references."""

    def __init__(self, lookup: Callable[[str], Optional[Case]]) -> None:
        self._lookup = lookup
        # dict keys keep insertion order and give set semantics
        self._ids: dict[str, None] = {}

    def __contains__(self, case_id: str) -> bool:
        return case_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def enqueue(self, case_id: str) -> bool:
        """Queue a case for consultation.

        Args:
            case_id: Id of an existing case.

        Returns:
            True if the queue changed. Unknown or already queued ids
            leave it untouched.
        """
        if case_id in self._ids:
            return False
        if self._lookup(case_id) is None:
            logger.info("Consult enqueue ignored: unknown case %s.", case_id)
            return False
        self._ids[case_id] = None
        logger.info("Case %s queued for consult (%d queued).", case_id, len(self._ids))
        return True

    def dequeue(self, case_id: str) -> bool:
        """Drop a case from the queue. Returns True if it was queued."""
        if case_id not in self._ids:
            return False
        del self._ids[case_id]
        logger.info("Case %s removed from consult queue.", case_id)
        return True

    def ids(self) -> list[str]:
        return list(self._ids)

    def list_queued(self) -> list[Case]:
        """Resolve every queued id against the repository, in queue order."""
        cases = []
        for case_id in self._ids:
            case = self._lookup(case_id)
            if case is not None:
                cases.append(case)
        return cases

    def restore(self, case_ids: Iterable[str]) -> None:
        """Replace the queue contents with previously persisted ids.

        Ids that no longer resolve to a case are dropped.
        """
        self._ids = {}
        dropped = 0
        for case_id in case_ids:
            if self._lookup(case_id) is None:
                dropped += 1
                continue
            self._ids.setdefault(case_id, None)
        if dropped:
            logger.warning("Dropped %d consult entries with no matching case.", dropped)
