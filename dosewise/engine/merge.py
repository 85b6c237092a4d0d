"""
Schedule Diff/Merge

Reconciles a freshly generated slot list with the persisted one so intake
logs keep pointing at valid slot ids:

- a new slot whose (time, context) matches an existing slot inherits its id
- an existing slot that has "taken" history but no successor is kept as an
  empty placeholder with the same id, sorted last
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

from dosewise.engine.enums import MealContext
from dosewise.engine.recurrence import DAILY
from dosewise.engine.scheduler import SlotPlan

logger = logging.getLogger(__name__)

PLACEHOLDER_SORT_ORDER = 999


@dataclass
class MergeResult:
    slots: List[SlotPlan] = field(default_factory=list)
    placeholders: List[SlotPlan] = field(default_factory=list)

    @property
    def all_slots(self) -> List[SlotPlan]:
        """Everything to persist, real slots first."""
        return self.slots + self.placeholders


def _key(slot) -> Tuple[str, MealContext]:
    return (slot.time, MealContext(slot.context))


def historical_slot_ids(logs: Iterable) -> Set[str]:
    """Slot ids referenced by any log with at least one taken supplement."""
    return {log.schedule_slot_id for log in logs if log.supplement_ids_taken}


def merge_schedule(existing_slots: Iterable, logs: Iterable, new_slots: List[SlotPlan]) -> MergeResult:
    """
    Assign stable ids to `new_slots` (mutated in place) and build placeholders.

    `existing_slots` and `logs` only need the attributes the persisted
    models expose (id, time, context, explanation, recurrence /
    schedule_slot_id, supplement_ids_taken). Each existing id is handed to
    at most one new slot. Pairs with matching recurrence are made first;
    leftovers then pair in stored order.
    """
    existing_slots = list(existing_slots)
    history = historical_slot_ids(logs)

    candidates: Dict[Tuple[str, MealContext], List] = {}
    for slot in existing_slots:
        candidates.setdefault(_key(slot), []).append(slot)

    claimed: Set[str] = set()
    assigned: Set[int] = set()
    # Same key and recurrence pair up first, then any remaining same-key slot
    for same_recurrence_only in (True, False):
        for position, new_slot in enumerate(new_slots):
            if position in assigned:
                continue
            match = next(
                (
                    s for s in candidates.get(new_slot.key, [])
                    if s.id not in claimed
                    and (not same_recurrence_only or getattr(s, "recurrence", DAILY) == new_slot.recurrence)
                ),
                None,
            )
            if match is None:
                continue
            new_slot.id = match.id
            claimed.add(match.id)
            assigned.add(position)

    covered = history & claimed
    orphaned = history - covered

    placeholders = []
    # Existing order keeps placeholder output deterministic
    for old in existing_slots:
        if old.id not in orphaned:
            continue
        placeholders.append(SlotPlan(
            id=old.id,
            time=old.time,
            context=MealContext(old.context),
            supplement_ids=[],
            explanation=old.explanation or "",
            recurrence=getattr(old, "recurrence", DAILY),
            sort_order=PLACEHOLDER_SORT_ORDER,
        ))
        orphaned.discard(old.id)

    if orphaned:
        # Logs pointing at slots that no longer exist at all have nothing to rebuild from
        logger.debug(f"{len(orphaned)} historical slot ids have no stored slot to preserve")

    return MergeResult(slots=new_slots, placeholders=placeholders)
