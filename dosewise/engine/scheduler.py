"""
Slot Assignment Engine

Places each of a user's supplements into one time-of-day slot:

1. Ideal context from the linked reference's timing preference, falling back
   to category heuristics when there is no reference.
2. A single conflict-resolution pass that moves the second supplement of any
   co-located interaction pair to a slot at least two hours away.
3. Custom-timed supplements grouped into their own slots by (time, recurrence).

Supplements are duck-typed: anything with `id`, `name`, `category`,
`reference_id`, `custom_time` and `custom_recurrence` works, which covers the
ORM model as well as plain test doubles.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from dosewise.engine.enums import MEAL_CONTEXTS, MealContext, SupplementCategory
from dosewise.engine.explanations import generate_explanation
from dosewise.engine.recurrence import DAILY, RecurrenceRule
from dosewise.engine.reference import (
    TIMING_BEDTIME,
    TIMING_EMPTY_STOMACH,
    TIMING_EVENING,
    TIMING_FLEXIBLE,
    TIMING_WITH_FOOD,
    ReferenceIndex,
    SupplementReference,
)
from dosewise.engine.time_slots import CandidateSlot, build_time_slots, try_parse_time

logger = logging.getLogger(__name__)

MIN_SPACING_MINUTES = 120

# Reference timing -> slot context ("flexible" is decided by goal tags)
TIMING_CONTEXTS: Dict[str, MealContext] = {
    TIMING_EMPTY_STOMACH: MealContext.EMPTY_STOMACH,
    TIMING_WITH_FOOD: MealContext.WITH_BREAKFAST,
    TIMING_EVENING: MealContext.BEDTIME,
    TIMING_BEDTIME: MealContext.BEDTIME,
}

# Category heuristics for supplements without reference data
CATEGORY_CONTEXTS: Dict[SupplementCategory, MealContext] = {
    SupplementCategory.VITAMIN_FAT_SOLUBLE: MealContext.WITH_BREAKFAST,
    SupplementCategory.OMEGA: MealContext.WITH_BREAKFAST,
    SupplementCategory.VITAMIN_WATER_SOLUBLE: MealContext.WITH_BREAKFAST,
    SupplementCategory.MINERAL: MealContext.BETWEEN_MEALS,
    SupplementCategory.PROBIOTIC: MealContext.EMPTY_STOMACH,
    SupplementCategory.HERBAL: MealContext.WITH_BREAKFAST,
    SupplementCategory.AMINO_ACID: MealContext.EMPTY_STOMACH,
    SupplementCategory.OTHER: MealContext.WITH_BREAKFAST,
}

# Name substrings that override the category default, checked in order
CATEGORY_NAME_OVERRIDES: Dict[SupplementCategory, Tuple[Tuple[str, MealContext], ...]] = {
    SupplementCategory.MINERAL: (
        ("iron", MealContext.EMPTY_STOMACH),
        ("magnesium", MealContext.BEDTIME),
    ),
    SupplementCategory.HERBAL: (
        ("ashwagandha", MealContext.BEDTIME),
        ("melatonin", MealContext.BEDTIME),
    ),
}


@dataclass
class PlacedSupplement:
    """A user supplement paired with the reference it resolved to, if any."""
    supplement: object
    reference: Optional[SupplementReference] = None

    @property
    def reference_id(self) -> Optional[str]:
        return self.reference.id if self.reference else None


@dataclass
class SlotPlan:
    """A generated slot, ready for merging against the persisted schedule."""
    time: str
    context: MealContext
    supplement_ids: List[str]
    explanation: str = ""
    recurrence: RecurrenceRule = DAILY
    sort_order: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def key(self) -> Tuple[str, MealContext]:
        return (self.time, MealContext(self.context))


class SchedulingEngine:
    """Builds a user's daily supplement schedule from their meal times."""

    def __init__(self, index: ReferenceIndex):
        self.index = index

    def generate_schedule(
        self,
        supplements: Iterable,
        breakfast_time: str,
        lunch_time: str,
        dinner_time: str,
        skip_breakfast: bool = False,
    ) -> List[SlotPlan]:
        """
        Generate the slot list for the given (already active) supplements.

        Raises TimeFormatError if a meal time is not "HH:mm".
        """
        supplements = list(supplements)
        custom = [s for s in supplements if s.custom_time]
        automatic = [s for s in supplements if not s.custom_time]

        slots = build_time_slots(breakfast_time, lunch_time, dinner_time, skip_breakfast)

        placed = [
            PlacedSupplement(s, self.index.resolve(s.reference_id, s.name))
            for s in automatic
        ]
        self._assign(placed, slots)
        self._resolve_conflicts(slots)

        all_slots = slots + self._custom_slots(custom)
        return self._finalize(all_slots)

    def ideal_context(self, supplement, reference: Optional[SupplementReference]) -> MealContext:
        if reference is not None:
            if reference.timing == TIMING_FLEXIBLE:
                # Water-soluble can go anywhere; morning for energy
                if "energy" in reference.goal_relevance:
                    return MealContext.WITH_BREAKFAST
                return MealContext.BETWEEN_MEALS
            if reference.timing in TIMING_CONTEXTS:
                return TIMING_CONTEXTS[reference.timing]

        category = SupplementCategory.parse(supplement.category)
        name = (supplement.name or "").lower()
        for needle, context in CATEGORY_NAME_OVERRIDES.get(category, ()):
            if needle in name:
                return context
        return CATEGORY_CONTEXTS[category]

    def _assign(self, placed: List[PlacedSupplement], slots: List[CandidateSlot]) -> None:
        for item in placed:
            context = self.ideal_context(item.supplement, item.reference)
            target = next((slot for slot in slots if slot.context == context), None)
            if target is None:
                target = next((slot for slot in slots if slot.context in MEAL_CONTEXTS), None)
            if target is None:
                logger.warning(f"No slot available for supplement {item.supplement.name!r}; dropping it")
                continue
            logger.debug(f"Placing {item.supplement.name!r} at {target.time} ({target.context.value})")
            target.supplements.append(item)

    def _resolve_conflicts(self, slots: List[CandidateSlot]) -> None:
        """
        One best-effort pass over the interactions detected up front.

        Not a fixpoint: a relocation that lands in a conflicting fallback
        slot is not revisited.
        """
        all_ids = [p.reference_id for slot in slots for p in slot.supplements if p.reference_id]
        interactions = self.index.interactions_between(all_ids)
        if not interactions:
            return

        for slot_index, slot in enumerate(slots):
            present = {p.reference_id for p in slot.supplements if p.reference_id}
            for interaction in interactions:
                if interaction.supplement_a not in present or interaction.supplement_b not in present:
                    continue

                moving = next(
                    (p for p in slot.supplements if p.reference_id == interaction.supplement_b),
                    None,
                )
                if moving is None:
                    continue

                target_index = self._find_alternative_slot(moving, slot_index, slots)
                if target_index is None:
                    logger.warning(
                        f"Could not separate {interaction.supplement_a} and "
                        f"{interaction.supplement_b} at {slot.time}"
                    )
                    continue

                slot.supplements.remove(moving)
                slots[target_index].supplements.append(moving)
                logger.debug(
                    f"Moved {interaction.supplement_b} from {slot.time} to "
                    f"{slots[target_index].time} to avoid {interaction.supplement_a}"
                )

    def _find_alternative_slot(
        self,
        moving: PlacedSupplement,
        current_index: int,
        slots: List[CandidateSlot],
    ) -> Optional[int]:
        current = try_parse_time(slots[current_index].time)
        if current is None:
            return None

        fallback = None
        for index, slot in enumerate(slots):
            if index == current_index:
                continue
            slot_time = try_parse_time(slot.time)
            if slot_time is None or abs(slot_time - current) < MIN_SPACING_MINUTES:
                continue

            if fallback is None:
                fallback = index

            occupants = [p.reference_id for p in slot.supplements if p.reference_id]
            introduced = [
                i for i in self.index.interactions_between(occupants + [moving.reference_id])
                if i.involves(moving.reference_id)
            ]
            if not introduced:
                return index

        return fallback

    def _custom_slots(self, supplements: List) -> List[CandidateSlot]:
        custom_slots: List[CandidateSlot] = []
        for supplement in supplements:
            recurrence = supplement.custom_recurrence or DAILY
            existing = next(
                (s for s in custom_slots if s.time == supplement.custom_time and s.recurrence == recurrence),
                None,
            )
            if existing is not None:
                existing.supplements.append(PlacedSupplement(supplement))
            else:
                custom_slots.append(CandidateSlot(
                    time=supplement.custom_time,
                    context=MealContext.BETWEEN_MEALS,
                    supplements=[PlacedSupplement(supplement)],
                    recurrence=recurrence,
                ))
        return custom_slots

    def _finalize(self, slots: List[CandidateSlot]) -> List[SlotPlan]:
        filled = sorted((s for s in slots if s.supplements), key=lambda s: s.sort_key)
        return [
            SlotPlan(
                time=slot.time,
                context=slot.context,
                supplement_ids=[p.supplement.id for p in slot.supplements],
                explanation=generate_explanation(slot.context, [p.supplement for p in slot.supplements]),
                recurrence=slot.recurrence,
                sort_order=index,
            )
            for index, slot in enumerate(filled)
        ]
