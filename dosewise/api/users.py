from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr
import pytz

from dosewise.api.deps import get_schedule_service, get_user_or_404
from dosewise.config import get_settings
from dosewise.db import get_db
from dosewise.engine.enums import Goal
from dosewise.engine.time_slots import TimeFormatError, normalize_time
from dosewise.models import User
from dosewise.services.schedule_service import ScheduleService

router = APIRouter()


class UserCreate(BaseModel):
    name: str
    email: Optional[EmailStr] = None
    breakfast_time: Optional[str] = None  # "08:00" format
    lunch_time: Optional[str] = None
    dinner_time: Optional[str] = None
    skip_breakfast: bool = False
    goals: List[Goal] = []
    timezone: Optional[str] = None  # IANA timezone
    phone_number: Optional[str] = None  # E.164 format
    notifications_enabled: bool = False
    notification_advance_minutes: Optional[int] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    breakfast_time: Optional[str] = None
    lunch_time: Optional[str] = None
    dinner_time: Optional[str] = None
    skip_breakfast: Optional[bool] = None
    goals: Optional[List[Goal]] = None
    timezone: Optional[str] = None
    phone_number: Optional[str] = None
    notifications_enabled: Optional[bool] = None
    notification_advance_minutes: Optional[int] = None


class UserResponse(BaseModel):
    id: str
    name: str
    email: Optional[str]
    breakfast_time: str
    lunch_time: str
    dinner_time: str
    skip_breakfast: bool
    goals: List[str]
    timezone: Optional[str]
    notifications_enabled: bool
    notification_advance_minutes: Optional[int]
    phone_number: Optional[str]
    created_at: Optional[str]


def _validate_timezone(name: str) -> str:
    if name not in pytz.all_timezones_set:
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {name}")
    return name


def _validate_advance(minutes: int) -> int:
    if minutes < 0 or minutes > 120:
        raise HTTPException(status_code=400, detail="notification_advance_minutes must be between 0 and 120")
    return minutes


@router.post("", response_model=UserResponse, status_code=201)
def create_user(user_data: UserCreate, db: Session = Depends(get_db)):
    """Create a user; meal times default to the configured ones."""
    settings = get_settings()

    if user_data.email:
        existing = db.query(User).filter(User.email == user_data.email).first()
        if existing:
            raise HTTPException(status_code=409, detail="Email already registered")

    try:
        breakfast = normalize_time(user_data.breakfast_time or settings.default_breakfast_time)
        lunch = normalize_time(user_data.lunch_time or settings.default_lunch_time)
        dinner = normalize_time(user_data.dinner_time or settings.default_dinner_time)
    except TimeFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))

    user = User(
        name=user_data.name,
        email=user_data.email,
        breakfast_time=breakfast,
        lunch_time=lunch,
        dinner_time=dinner,
        skip_breakfast=user_data.skip_breakfast,
        goals=[g.value for g in user_data.goals],
        timezone=_validate_timezone(user_data.timezone or settings.default_timezone),
        phone_number=user_data.phone_number,
        notifications_enabled=user_data.notifications_enabled,
        notification_advance_minutes=_validate_advance(
            settings.notification_advance_minutes
            if user_data.notification_advance_minutes is None
            else user_data.notification_advance_minutes
        ),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserResponse(**user.to_dict())


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: str, db: Session = Depends(get_db)):
    user = get_user_or_404(db, user_id)
    return UserResponse(**user.to_dict())


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    """
    Update profile and preferences.

    Changing meal times or skip_breakfast regenerates the schedule;
    toggling notifications schedules or cancels reminders.
    """
    user = get_user_or_404(db, user_id)

    if user_data.name is not None:
        user.name = user_data.name
    if user_data.goals is not None:
        user.goals = [g.value for g in user_data.goals]
    if user_data.timezone is not None:
        user.timezone = _validate_timezone(user_data.timezone)
    if user_data.phone_number is not None:
        user.phone_number = user_data.phone_number
    if user_data.notification_advance_minutes is not None:
        user.notification_advance_minutes = _validate_advance(user_data.notification_advance_minutes)

    if user_data.notifications_enabled is not None:
        user.notifications_enabled = user_data.notifications_enabled

    try:
        regenerated = service.update_meal_times(
            user,
            breakfast_time=user_data.breakfast_time,
            lunch_time=user_data.lunch_time,
            dinner_time=user_data.dinner_time,
            skip_breakfast=user_data.skip_breakfast,
        )
    except TimeFormatError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    if not regenerated:
        db.commit()
        service.reschedule_reminders(user)
    if not user.notifications_enabled and service.reminders is not None:
        service.reminders.cancel_user(user.id)

    db.refresh(user)
    return UserResponse(**user.to_dict())
