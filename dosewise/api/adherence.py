from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel

from dosewise.api.deps import get_user_or_404
from dosewise.db import get_db
from dosewise.engine.adherence import AdherenceCalculator
from dosewise.services.notifications import local_now, user_timezone
from dosewise.services.widget_state import build_widget_state

router = APIRouter()


class StreakResponse(BaseModel):
    user_id: str
    streak: int
    today_complete: bool


class DayResponse(BaseModel):
    date: str
    day_letter: str
    status: str
    taken_count: int
    total_count: int


class MonthResponse(BaseModel):
    year: int
    month: int
    days: List[DayResponse]


class SummaryResponse(BaseModel):
    completed: int
    total: int
    progress: float
    is_complete: bool
    streak: int
    next_dose_time: Optional[str]
    next_dose_supplements: List[str]
    next_dose_context: Optional[str]
    last_updated: str


def _calculator(user) -> AdherenceCalculator:
    return AdherenceCalculator(
        user.intake_logs,
        user.schedule_slots,
        user.supplements,
        today=local_now(user).date(),
        tz=user_timezone(user)
    )


def _day_response(day) -> DayResponse:
    return DayResponse(**day.to_dict(), day_letter=day.day_letter)


@router.get("/{user_id}/adherence/streak", response_model=StreakResponse)
def get_streak(user_id: str, db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    calculator = _calculator(user)
    return StreakResponse(
        user_id=user.id,
        streak=calculator.calculate_streak(),
        today_complete=calculator.is_day_complete(calculator.today)
    )


@router.get("/{user_id}/adherence/week", response_model=List[DayResponse])
def get_seven_day_history(user_id: str, db: Session = Depends(get_db)):
    """The last seven days, oldest first, ending today."""
    user = get_user_or_404(db, user_id)
    return [_day_response(day) for day in _calculator(user).seven_day_history()]


@router.get("/{user_id}/adherence/month", response_model=MonthResponse)
def get_month_history(
    user_id: str,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db)
):
    """
    Calendar view for one month (defaults to the current one).

    Days before the account was created (in the user's timezone) and days
    after today are "future".
    """
    user = get_user_or_404(db, user_id)
    calculator = _calculator(user)
    year = year or calculator.today.year
    month = month or calculator.today.month

    days = calculator.month_history(year, month, tracking_start=user.created_at)
    return MonthResponse(year=year, month=month, days=[_day_response(day) for day in days])


@router.get("/{user_id}/adherence/summary", response_model=SummaryResponse)
def get_summary(user_id: str, db: Session = Depends(get_db)):
    """Today's progress, streak and next dose, as published to widgets."""
    user = get_user_or_404(db, user_id)
    state = build_widget_state(user, local_now(user))
    return SummaryResponse(
        completed=state.completed,
        total=state.total,
        progress=state.progress,
        is_complete=state.is_complete,
        streak=state.streak,
        next_dose_time=state.next_dose_time,
        next_dose_supplements=state.next_dose_supplements,
        next_dose_context=state.next_dose_context,
        last_updated=state.last_updated.isoformat()
    )
