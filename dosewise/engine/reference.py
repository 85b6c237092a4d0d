"""
Supplement Reference Index

Static metadata for known supplements (timing preference, interactions,
synergies, goals), loaded once from the bundled JSON dataset and read-only
afterwards. A missing or malformed dataset yields an empty index: every
lookup reports "not found" and scheduling falls back to category heuristics.
"""

import json
import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from dosewise.engine.enums import Goal, SupplementCategory

logger = logging.getLogger(__name__)


# Timing preferences as they appear in the dataset
TIMING_EMPTY_STOMACH = "empty_stomach"
TIMING_WITH_FOOD = "with_food"
TIMING_EVENING = "evening"
TIMING_BEDTIME = "bedtime"
TIMING_FLEXIBLE = "flexible"


def format_amount(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


@dataclass(frozen=True)
class SupplementReference:
    """Canonical metadata for one supplement."""
    id: str
    names: Tuple[str, ...]
    category: str
    default_dosage_min: float
    default_dosage_max: float
    default_dosage_unit: str
    timing: str  # "empty_stomach", "with_food", "evening", "bedtime", "flexible"
    requires_fat: bool
    absorption_notes: str
    avoid_with: Tuple[str, ...]
    pairs_with: Tuple[str, ...]
    spacing_hours: int
    goal_relevance: Tuple[str, ...]
    keywords: Tuple[str, ...] = ()
    benefits: str = ""
    demographics: Tuple[str, ...] = ()
    deficiency_signs: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict) -> "SupplementReference":
        return cls(
            id=data["id"],
            names=tuple(data["names"]),
            category=data["category"],
            default_dosage_min=float(data["default_dosage_min"]),
            default_dosage_max=float(data["default_dosage_max"]),
            default_dosage_unit=data["default_dosage_unit"],
            timing=data["timing"],
            requires_fat=bool(data["requires_fat"]),
            absorption_notes=data["absorption_notes"],
            avoid_with=tuple(data["avoid_with"]),
            pairs_with=tuple(data["pairs_with"]),
            spacing_hours=int(data["spacing_hours"]),
            goal_relevance=tuple(data["goal_relevance"]),
            # Enhanced metadata, optional in older datasets
            keywords=tuple(data.get("keywords") or ()),
            benefits=data.get("benefits") or "",
            demographics=tuple(data.get("demographics") or ()),
            deficiency_signs=tuple(data.get("deficiency_signs") or ()),
        )

    @property
    def primary_name(self) -> str:
        return self.names[0] if self.names else self.id

    @property
    def supplement_category(self) -> SupplementCategory:
        return SupplementCategory.parse(self.category)

    @property
    def display_dosage_range(self) -> str:
        return (
            f"{format_amount(self.default_dosage_min)}-"
            f"{format_amount(self.default_dosage_max)} {self.default_dosage_unit}"
        )


@dataclass(frozen=True)
class Interaction:
    """Unordered pair of supplements that should be spaced apart."""
    supplement_a: str
    supplement_b: str
    spacing_hours: int
    severity: str  # "minor", "moderate", "major"
    description: str

    @classmethod
    def from_dict(cls, data: Dict) -> "Interaction":
        return cls(
            supplement_a=data["supplement_a"],
            supplement_b=data["supplement_b"],
            spacing_hours=int(data["spacing_hours"]),
            severity=data["severity"],
            description=data["description"],
        )

    def involves(self, supplement_id: str) -> bool:
        return supplement_id in (self.supplement_a, self.supplement_b)


@dataclass(frozen=True)
class Synergy:
    """Unordered pair of supplements that work better together."""
    supplement_a: str
    supplement_b: str
    effect: str

    @classmethod
    def from_dict(cls, data: Dict) -> "Synergy":
        return cls(
            supplement_a=data["supplement_a"],
            supplement_b=data["supplement_b"],
            effect=data["effect"],
        )

    def involves(self, supplement_id: str) -> bool:
        return supplement_id in (self.supplement_a, self.supplement_b)


class MatchType(IntEnum):
    """Search tiers, best first."""
    EXACT_NAME = 0
    PARTIAL_NAME = 1
    KEYWORD = 2
    GOAL = 3


@dataclass(frozen=True)
class SearchResult:
    supplement: SupplementReference
    matched_terms: Tuple[str, ...]
    match_type: MatchType

    @property
    def id(self) -> str:
        return self.supplement.id


class ReferenceIndex:
    """Read-only lookups over the reference dataset. Safe to share across threads."""

    def __init__(
        self,
        supplements: Iterable[SupplementReference] = (),
        interactions: Iterable[Interaction] = (),
        synergies: Iterable[Synergy] = (),
    ):
        self._supplements: Tuple[SupplementReference, ...] = tuple(supplements)
        self._interactions: Tuple[Interaction, ...] = tuple(interactions)
        self._synergies: Tuple[Synergy, ...] = tuple(synergies)

        self._by_id: Dict[str, SupplementReference] = {}
        self._by_name: Dict[str, SupplementReference] = {}
        for supplement in self._supplements:
            self._by_id.setdefault(supplement.id, supplement)
            for name in supplement.names:
                self._by_name[name.lower()] = supplement

    @classmethod
    def from_dict(cls, data: Dict) -> "ReferenceIndex":
        return cls(
            supplements=[SupplementReference.from_dict(s) for s in data["supplements"]],
            interactions=[Interaction.from_dict(i) for i in data.get("interactions", [])],
            synergies=[Synergy.from_dict(s) for s in data.get("synergies", [])],
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ReferenceIndex":
        """Load the dataset; any failure leaves an empty (degraded) index."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            index = cls.from_dict(data)
        except FileNotFoundError:
            logger.warning(f"Supplement reference dataset not found at {path}; using empty index")
            return cls()
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to decode supplement reference dataset {path}: {e}; using empty index")
            return cls()

        logger.info(
            f"Loaded {len(index._supplements)} supplement references, "
            f"{len(index._interactions)} interactions, {len(index._synergies)} synergies"
        )
        return index

    @property
    def is_empty(self) -> bool:
        return not self._supplements

    def all(self) -> List[SupplementReference]:
        return list(self._supplements)

    def get_by_id(self, supplement_id: Optional[str]) -> Optional[SupplementReference]:
        if not supplement_id:
            return None
        return self._by_id.get(supplement_id)

    def get_by_name(self, name: Optional[str]) -> Optional[SupplementReference]:
        if not name:
            return None
        return self._by_name.get(name.lower())

    def resolve(self, reference_id: Optional[str], name: Optional[str]) -> Optional[SupplementReference]:
        """Linked reference first, then a lookup by display name."""
        return self.get_by_id(reference_id) or self.get_by_name(name)

    def search(self, query: str) -> List[SupplementReference]:
        if not query:
            return self.all()
        return [result.supplement for result in self.search_with_context(query)]

    def search_with_context(self, query: str) -> List[SearchResult]:
        """
        Ranked free-text search.

        Each reference is checked against, in order: exact name, partial
        name, keyword, goal tag. Only the first tier that matches is
        recorded, so a reference never appears twice. Results are sorted by
        tier (stable within a tier, i.e. dataset order).
        """
        if not query:
            return [
                SearchResult(supplement=s, matched_terms=(), match_type=MatchType.EXACT_NAME)
                for s in self._supplements
            ]

        needle = query.lower()
        results: List[SearchResult] = []

        for supplement in self._supplements:
            exact = [n for n in supplement.names if n.lower() == needle]
            if exact:
                results.append(SearchResult(supplement, (exact[0],), MatchType.EXACT_NAME))
                continue

            partial = [n for n in supplement.names if needle in n.lower()]
            if partial:
                results.append(SearchResult(supplement, tuple(partial), MatchType.PARTIAL_NAME))
                continue

            keywords = [k for k in supplement.keywords if needle in k.lower()]
            if keywords:
                results.append(SearchResult(supplement, tuple(keywords), MatchType.KEYWORD))
                continue

            goals = [g for g in supplement.goal_relevance if needle in g.lower()]
            if goals:
                results.append(SearchResult(supplement, tuple(goals), MatchType.GOAL))

        return sorted(results, key=lambda r: r.match_type)

    def interactions_for(self, supplement_id: str) -> List[Interaction]:
        return [i for i in self._interactions if i.involves(supplement_id)]

    def interactions_between(self, supplement_ids: Iterable[str]) -> List[Interaction]:
        """Interactions whose two ids both appear in `supplement_ids`."""
        ids = set(supplement_ids)
        return [i for i in self._interactions if i.supplement_a in ids and i.supplement_b in ids]

    def synergies_for(self, supplement_id: str) -> List[Synergy]:
        return [s for s in self._synergies if s.involves(supplement_id)]

    def synergies_between(self, supplement_ids: Iterable[str]) -> List[Synergy]:
        ids = set(supplement_ids)
        return [s for s in self._synergies if s.supplement_a in ids and s.supplement_b in ids]

    def supplements_for_goal(self, goal: Union[Goal, str]) -> List[SupplementReference]:
        tag = goal.value if isinstance(goal, Goal) else goal
        return [s for s in self._supplements if tag in s.goal_relevance]
