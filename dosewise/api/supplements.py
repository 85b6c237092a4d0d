from dataclasses import asdict
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel

from dosewise.api.deps import get_schedule_service, get_supplement_or_404, get_user_or_404
from dosewise.db import get_db
from dosewise.engine.enums import SupplementCategory
from dosewise.engine.recurrence import recurrence_from_columns
from dosewise.services.schedule_service import DuplicateSupplementError, ScheduleService

router = APIRouter()


class RecurrenceIn(BaseModel):
    kind: str  # daily, specific_days, every_n_days, weekly
    weekdays: Optional[List[int]] = None  # ISO, Monday=1
    interval: Optional[int] = None
    start_date: Optional[date] = None
    weekday: Optional[int] = None

    def to_rule(self):
        return recurrence_from_columns(self.kind, self.weekdays, self.interval, self.start_date, self.weekday)


class ReferenceSupplementCreate(BaseModel):
    reference_id: str
    dosage: Optional[float] = None
    dosage_unit: Optional[str] = None
    form: Optional[str] = None


class ManualSupplementCreate(BaseModel):
    name: str
    category: SupplementCategory = SupplementCategory.OTHER
    dosage: Optional[float] = None
    dosage_unit: Optional[str] = None
    form: Optional[str] = None
    custom_time: Optional[str] = None  # "21:30" format
    custom_recurrence: Optional[RecurrenceIn] = None
    barcode: Optional[str] = None


class SupplementUpdate(BaseModel):
    dosage: Optional[float] = None
    dosage_unit: Optional[str] = None
    form: Optional[str] = None
    custom_time: Optional[str] = None
    custom_recurrence: Optional[RecurrenceIn] = None


class SupplementResponse(BaseModel):
    id: str
    name: str
    category: str
    category_display: str
    dosage: Optional[float]
    dosage_unit: Optional[str]
    display_dosage: Optional[str]
    form: Optional[str]
    barcode: Optional[str]
    reference_id: Optional[str]
    is_active: bool
    is_archived: bool
    archived_at: Optional[str]
    custom_time: Optional[str]
    custom_recurrence: Optional[dict]
    created_at: Optional[str]


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


class SlotGroupResponse(BaseModel):
    slot: dict
    supplements: List[SupplementResponse]


def _recurrence_rule(recurrence: Optional[RecurrenceIn]):
    if recurrence is None:
        return None
    try:
        return recurrence.to_rule()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{user_id}/supplements", response_model=List[SupplementResponse])
def list_supplements(
    user_id: str,
    include_archived: bool = Query(False),
    db: Session = Depends(get_db)
):
    user = get_user_or_404(db, user_id)
    supplements = sorted(user.supplements, key=lambda s: s.created_at)
    if not include_archived:
        supplements = [s for s in supplements if not s.is_archived]
    return [SupplementResponse(**s.to_dict()) for s in supplements]


@router.post("/{user_id}/supplements/reference", response_model=SupplementResponse, status_code=201)
def add_reference_supplement(
    user_id: str,
    data: ReferenceSupplementCreate,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    """Add a supplement from the reference database and regenerate the schedule."""
    user = get_user_or_404(db, user_id)

    reference = service.engine.index.get_by_id(data.reference_id)
    if reference is None:
        raise HTTPException(status_code=404, detail="Reference supplement not found")

    try:
        supplement = service.add_from_reference(
            user,
            reference,
            dosage=data.dosage,
            dosage_unit=data.dosage_unit or reference.default_dosage_unit,
            form=data.form,
        )
    except DuplicateSupplementError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    return SupplementResponse(**supplement.to_dict())


@router.post("/{user_id}/supplements/manual", response_model=SupplementResponse, status_code=201)
def add_manual_supplement(
    user_id: str,
    data: ManualSupplementCreate,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    """
    Add a supplement that is not in the reference database.

    With `custom_time` it gets its own slot at that time (and recurrence);
    without one it is placed by category.
    """
    user = get_user_or_404(db, user_id)
    recurrence = _recurrence_rule(data.custom_recurrence)

    try:
        supplement = service.add_manual(
            user,
            name=data.name,
            category=data.category,
            dosage=data.dosage,
            dosage_unit=data.dosage_unit,
            form=data.form,
            custom_time=data.custom_time,
            custom_recurrence=recurrence,
            barcode=data.barcode,
        )
    except DuplicateSupplementError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    return SupplementResponse(**supplement.to_dict())


@router.patch("/{user_id}/supplements/{supplement_id}", response_model=SupplementResponse)
def update_supplement(
    user_id: str,
    supplement_id: str,
    data: SupplementUpdate,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    """Only the fields sent are changed; send null to clear a custom time."""
    user = get_user_or_404(db, user_id)
    supplement = get_supplement_or_404(db, user_id, supplement_id)

    changes = data.model_dump(exclude_unset=True)
    if "custom_recurrence" in changes:
        changes["custom_recurrence"] = _recurrence_rule(data.custom_recurrence)

    try:
        service.update_supplement(user, supplement, **changes)
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    return SupplementResponse(**supplement.to_dict())


@router.delete("/{user_id}/supplements/{supplement_id}")
def delete_supplement(
    user_id: str,
    supplement_id: str,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    """Archive the supplement if it has intake history, otherwise delete it."""
    user = get_user_or_404(db, user_id)
    supplement = get_supplement_or_404(db, user_id, supplement_id)
    if supplement.is_archived:
        raise HTTPException(status_code=400, detail="Supplement is already archived")

    outcome = service.delete_supplement(user, supplement)
    return {"id": supplement_id, "status": outcome}


@router.get("/{user_id}/supplements/interactions", response_model=List[InteractionResponse])
def get_user_interactions(
    user_id: str,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    """Known interactions among the user's active supplements."""
    user = get_user_or_404(db, user_id)
    return [InteractionResponse(**asdict(i)) for i in service.interactions_for_user(user)]


@router.get("/{user_id}/supplements/synergies", response_model=List[SynergyResponse])
def get_user_synergies(
    user_id: str,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    user = get_user_or_404(db, user_id)
    return [SynergyResponse(**asdict(s)) for s in service.synergies_for_user(user)]


@router.get("/{user_id}/supplements/grouped", response_model=List[SlotGroupResponse])
def get_supplements_by_slot(
    user_id: str,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    user = get_user_or_404(db, user_id)
    return [
        SlotGroupResponse(
            slot=group["slot"].to_dict(),
            supplements=[SupplementResponse(**s.to_dict()) for s in group["supplements"]]
        )
        for group in service.group_by_slot(user)
    ]
