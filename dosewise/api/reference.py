from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from dosewise.engine.enums import Goal
from dosewise.engine.reference import ReferenceIndex, SupplementReference
from dosewise.services.reference_data import get_reference_index

router = APIRouter()


class ReferenceResponse(BaseModel):
    id: str
    name: str
    names: List[str]
    category: str
    category_display: str
    default_dosage_range: str
    timing: str
    requires_fat: bool
    absorption_notes: str
    spacing_hours: int
    goal_relevance: List[str]
    benefits: str


class SearchResultResponse(BaseModel):
    supplement: ReferenceResponse
    match_type: str
    matched_terms: List[str]


class GoalResponse(BaseModel):
    id: str
    display_name: str
    supplements: List[ReferenceResponse]


class InteractionResponse(BaseModel):
    supplement_a: str
    supplement_b: str
    spacing_hours: int
    severity: str
    description: str


class SynergyResponse(BaseModel):
    supplement_a: str
    supplement_b: str
    effect: str


def _reference_response(reference: SupplementReference) -> ReferenceResponse:
    return ReferenceResponse(
        id=reference.id,
        name=reference.primary_name,
        names=list(reference.names),
        category=reference.category,
        category_display=reference.supplement_category.display_name,
        default_dosage_range=reference.display_dosage_range,
        timing=reference.timing,
        requires_fat=reference.requires_fat,
        absorption_notes=reference.absorption_notes,
        spacing_hours=reference.spacing_hours,
        goal_relevance=list(reference.goal_relevance),
        benefits=reference.benefits
    )


def _get_reference_or_404(index: ReferenceIndex, reference_id: str) -> SupplementReference:
    reference = index.get_by_id(reference_id)
    if reference is None:
        raise HTTPException(status_code=404, detail="Reference supplement not found")
    return reference


@router.get("/search", response_model=List[SearchResultResponse])
def search_reference(
    q: str = Query("", description="Name, keyword or goal"),
    index: ReferenceIndex = Depends(get_reference_index)
):
    """
    Ranked search: exact name, then partial name, then keyword, then goal.

    An empty query returns the whole database.
    """
    return [
        SearchResultResponse(
            supplement=_reference_response(result.supplement),
            match_type=result.match_type.name.lower(),
            matched_terms=list(result.matched_terms)
        )
        for result in index.search_with_context(q.strip())
    ]


@router.get("/goals", response_model=List[GoalResponse])
def list_goals(index: ReferenceIndex = Depends(get_reference_index)):
    return [
        GoalResponse(
            id=goal.value,
            display_name=goal.display_name,
            supplements=[_reference_response(s) for s in index.supplements_for_goal(goal)]
        )
        for goal in Goal
    ]


@router.get("/{reference_id}", response_model=ReferenceResponse)
def get_reference(reference_id: str, index: ReferenceIndex = Depends(get_reference_index)):
    return _reference_response(_get_reference_or_404(index, reference_id))


@router.get("/{reference_id}/interactions", response_model=List[InteractionResponse])
def get_reference_interactions(reference_id: str, index: ReferenceIndex = Depends(get_reference_index)):
    reference = _get_reference_or_404(index, reference_id)
    return [InteractionResponse(**asdict(i)) for i in index.interactions_for(reference.id)]


@router.get("/{reference_id}/synergies", response_model=List[SynergyResponse])
def get_reference_synergies(reference_id: str, index: ReferenceIndex = Depends(get_reference_index)):
    reference = _get_reference_or_404(index, reference_id)
    return [SynergyResponse(**asdict(s)) for s in index.synergies_for(reference.id)]
