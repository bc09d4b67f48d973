"""
Case Engine Module
==================
Owns the authoritative in-memory case collection and wires together the
classifier, broadcast controller, consult queue, location resolver and
durable store. One TriageEngine instance is the application context:
create it once, hydrate it from storage, and pass it to every caller.

Flow for a new submission:
  1. (optional) await resolve_location()
  2. create_case() -> classify -> append -> persist
  3. red/blue public or medic cases start broadcasting automatically

All operations are meant to run on one thread (an event loop or a UI
thread). Unknown case ids are no-ops, never errors.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from fieldtriage.broadcast import BroadcastController, broadcast_payload
from fieldtriage.case_models import Case, CaseInput, Coordinates, generate_case_id, now_ms
from fieldtriage.case_store import CASES_KEY, CONSULT_QUEUE_KEY, CaseStore
from fieldtriage.consult_queue import ConsultQueue
from fieldtriage.location_resolver import LocationResolver
from fieldtriage.triage_rules import (
    CATEGORY_SUPPLY,
    PRIORITY_BLUE,
    PRIORITY_GREEN,
    PRIORITY_RED,
    SUPPLY_PRIORITY,
    classify,
    is_auto_broadcast,
    unknown_symptoms,
)

logger = logging.getLogger(__name__)

CaseFields = Union[CaseInput, Mapping[str, Any]]


class CaseRepository:
    """Insertion-ordered collection of cases indexed by id."""

    def __init__(self) -> None:
        self._cases: list[Case] = []
        self._index: dict[str, Case] = {}

    def __len__(self) -> int:
        return len(self._cases)

    def __contains__(self, case_id: str) -> bool:
        return case_id in self._index

    def get(self, case_id: str) -> Optional[Case]:
        return self._index.get(case_id)

    def add(self, case: Case) -> None:
        self._cases.append(case)
        self._index[case.id] = case

    def new_id(self, timestamp_ms: int) -> str:
        """Generate an id that no stored case has ever used."""
        case_id = generate_case_id(timestamp_ms)
        while case_id in self._index:
            case_id = generate_case_id(timestamp_ms)
        return case_id

    def all(self) -> list[Case]:
        return list(self._cases)

    def replace_all(self, cases: list[Case]) -> None:
        self._cases = []
        self._index = {}
        for case in cases:
            if case.id in self._index:
                logger.warning("Skipping duplicate stored case id %s.", case.id)
                continue
            self.add(case)


class TriageEngine:
    """Case lifecycle and triage state for one device.

    Attributes:
        store: Durable CaseStore.
        repository: In-memory CaseRepository.
        broadcast: BroadcastController holding the single active broadcast.
        consult_queue: ConsultQueue of case ids awaiting remote review.
        location_resolver: LocationResolver used by submit_case().
    """

    def __init__(
        self,
        store: Optional[CaseStore] = None,
        location_resolver: Optional[LocationResolver] = None,
    ) -> None:
        """Initialize the engine and hydrate it from storage.

        Args:
            store: Optional CaseStore; defaults to the configured database.
            location_resolver: Optional LocationResolver; defaults to one
                with no provider (positions always unavailable).
        """
        self.store = store or CaseStore()
        self.location_resolver = location_resolver or LocationResolver()
        self.repository = CaseRepository()
        self.broadcast = BroadcastController(self.repository.get)
        self.consult_queue = ConsultQueue(self.repository.get)
        self.hydrate()

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    def hydrate(self) -> None:
        """Load cases, consult queue and broadcast state from the store."""
        cases: list[Case] = []
        for raw in self.store.load(CASES_KEY):
            try:
                cases.append(Case.model_validate(raw))
            except Exception as exc:
                logger.warning("Skipping unreadable stored case: %s", exc)
        self.repository.replace_all(cases)

        self.broadcast.stop()
        live = [
            c for c in self.repository.all() if c.broadcasting and not c.resolved
        ]
        if live:
            latest = max(live, key=lambda c: c.broadcast_started_at or 0)
            self.broadcast.restore(latest.id, latest.broadcast_started_at)

        queued_ids = []
        for entry in self.store.load(CONSULT_QUEUE_KEY):
            if isinstance(entry, dict):
                entry = entry.get("id")
            if isinstance(entry, str):
                queued_ids.append(entry)
        self.consult_queue.restore(queued_ids)

        logger.info(
            "Engine hydrated: %d cases, %d queued for consult.",
            len(self.repository),
            len(self.consult_queue),
        )

    def _view(self, case: Case) -> Case:
        """Copy of a case with its broadcasting flag taken from the controller."""
        return case.model_copy(
            update={"broadcasting": self.broadcast.is_broadcasting(case.id)},
            deep=True,
        )

    def _persist_cases(self) -> bool:
        return self.store.save(
            CASES_KEY, [self._view(c).to_record() for c in self.repository.all()]
        )

    def _persist_queue(self) -> bool:
        return self.store.save(
            CONSULT_QUEUE_KEY,
            [self._view(c).to_record() for c in self.consult_queue.list_queued()],
        )

    # ------------------------------------------------------------------
    # Case lifecycle
    # ------------------------------------------------------------------

    def create_case(self, fields: CaseFields) -> Case:
        """Record a new case, classify it and persist the collection.

        Public and medic cases whose priority is red or blue start
        broadcasting immediately. Supply cases are always blue, carry no
        symptoms and never broadcast on their own.

        Args:
            fields: CaseInput, or a mapping accepted by CaseInput.

        Returns:
            The new case, including the generated id.
        """
        data = fields if isinstance(fields, CaseInput) else CaseInput.model_validate(fields)
        created_at = now_ms()

        if data.category == CATEGORY_SUPPLY:
            priority = SUPPLY_PRIORITY
            symptom_tags: list[str] = []
            supply_tags = list(data.supply_tags or [])
            other_supply = data.other_supply_description
        else:
            symptom_tags = list(data.symptom_tags)
            priority = classify(symptom_tags)
            supply_tags = None
            other_supply = None
            unknown = unknown_symptoms(symptom_tags)
            if unknown:
                logger.warning("Ignoring unknown symptom tags: %s", ", ".join(unknown))

        case = Case(
            id=self.repository.new_id(created_at),
            category=data.category,
            created_at=created_at,
            priority=priority,
            symptom_tags=symptom_tags,
            supply_tags=supply_tags,
            other_supply_description=other_supply,
            subject_name=data.subject_name,
            age=data.age,
            location_label=data.location_label,
            coordinates=data.coordinates.model_copy() if data.coordinates else None,
            is_anonymous=data.is_anonymous,
            photo=data.photo,
        )
        self.repository.add(case)
        logger.info(
            "Case %s created (%s, priority %s).", case.id, case.category, case.priority
        )

        if is_auto_broadcast(case.category, case.priority):
            self.broadcast.start(case.id)

        self._persist_cases()
        return self._view(case)

    async def submit_case(self, fields: CaseFields) -> Case:
        """Resolve the device location, then create the case.

        Coordinates already present in ``fields`` are kept as-is.
        """
        data = fields if isinstance(fields, CaseInput) else CaseInput.model_validate(fields)
        if data.coordinates is None:
            coordinates = await self.resolve_location()
            if coordinates is not None:
                data = data.model_copy(update={"coordinates": coordinates})
        return self.create_case(data)

    def resolve_case(self, case_id: str) -> Optional[Case]:
        """Mark a case resolved, stopping its broadcast if it has one.

        Returns:
            The updated case, or None if the id is unknown.
        """
        case = self.repository.get(case_id)
        if case is None:
            logger.info("Resolve ignored: unknown case %s.", case_id)
            return None

        case.resolved = True
        if self.broadcast.is_broadcasting(case_id):
            self.broadcast.stop()
        logger.info("Case %s resolved.", case_id)

        self._persist_cases()
        if case_id in self.consult_queue:
            self._persist_queue()
        return self._view(case)

    def get_case(self, case_id: str) -> Optional[Case]:
        case = self.repository.get(case_id)
        return self._view(case) if case is not None else None

    def list_cases(self) -> list[Case]:
        """Snapshot of every case, oldest first."""
        return [self._view(c) for c in self.repository.all()]

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def unresolved(self, priority: str) -> list[Case]:
        return [c for c in self.list_cases() if c.priority == priority and not c.resolved]

    def resolved_cases(self) -> list[Case]:
        return [c for c in self.list_cases() if c.resolved]

    def stats(self) -> dict:
        """Counts for the status screen."""
        cases = self.list_cases()
        open_cases = [c for c in cases if not c.resolved]
        return {
            "total": len(cases),
            "unresolved": {
                PRIORITY_RED: sum(1 for c in open_cases if c.priority == PRIORITY_RED),
                PRIORITY_BLUE: sum(1 for c in open_cases if c.priority == PRIORITY_BLUE),
                PRIORITY_GREEN: sum(1 for c in open_cases if c.priority == PRIORITY_GREEN),
            },
            "resolved": len(cases) - len(open_cases),
            "consult_queued": len(self.consult_queue),
            "broadcasting": self.broadcast.current_id,
        }

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    def start_broadcast(self, case_id: str) -> Optional[Case]:
        """Broadcast a case, replacing any current broadcast.

        Returns:
            The broadcasting case, or None if the id is unknown or resolved.
        """
        previous = self.broadcast.current_id
        case = self.broadcast.start(case_id)
        if case is None:
            return None
        self._persist_cases()
        if case.id in self.consult_queue or (previous and previous in self.consult_queue):
            self._persist_queue()
        return self._view(case)

    def stop_broadcast(self) -> Optional[str]:
        """Stop the current broadcast. Returns the id that was broadcasting."""
        stopped = self.broadcast.stop()
        if stopped is not None:
            self._persist_cases()
            if stopped in self.consult_queue:
                self._persist_queue()
        return stopped

    def current_broadcast(self) -> Optional[Case]:
        case = self.broadcast.current()
        return self._view(case) if case is not None else None

    def current_broadcast_payload(self) -> Optional[dict]:
        case = self.broadcast.current()
        return broadcast_payload(case) if case is not None else None

    # ------------------------------------------------------------------
    # Consult queue
    # ------------------------------------------------------------------

    def enqueue_consult(self, case_id: str) -> bool:
        """Queue a case for remote consult. Idempotent; unknown ids are ignored."""
        changed = self.consult_queue.enqueue(case_id)
        if changed:
            self._persist_queue()
        return changed

    def dequeue_consult(self, case_id: str) -> bool:
        changed = self.consult_queue.dequeue(case_id)
        if changed:
            self._persist_queue()
        return changed

    def list_consult_queue(self) -> list[Case]:
        return [self._view(c) for c in self.consult_queue.list_queued()]

    # ------------------------------------------------------------------
    # Location
    # ------------------------------------------------------------------

    async def resolve_location(self) -> Optional[Coordinates]:
        return await self.location_resolver.resolve_location()
