import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import dosewise.models  # noqa: F401  registers the tables
from dosewise.db import get_db
from dosewise.db.database import Base
from dosewise.engine.reference import ReferenceIndex
from dosewise.engine.scheduler import SchedulingEngine
from dosewise.main import app
from dosewise.models import User
from dosewise.services.intake_service import IntakeService
from dosewise.services.notifications import ReminderScheduler, get_reminder_scheduler
from dosewise.services.reference_data import get_reference_index
from dosewise.services.schedule_service import ScheduleService

from tests.factories import TEST_DATASET


@pytest.fixture
def index():
    return ReferenceIndex.from_dict(TEST_DATASET)


@pytest.fixture
def scheduling_engine(index):
    return SchedulingEngine(index)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def reminders():
    # Never started: jobs stay pending and can be inspected
    return ReminderScheduler(BackgroundScheduler(), advance_minutes=5, every_n_days_window=3)


@pytest.fixture
def user(db_session):
    user = User(name="Alex Rivera", timezone="UTC")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def schedule_service(db_session, scheduling_engine, reminders):
    return ScheduleService(db_session, scheduling_engine, reminders)


@pytest.fixture
def intake_service(db_session, reminders):
    return IntakeService(db_session, reminders)


@pytest.fixture
def client(db_session, index, reminders):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_reference_index] = lambda: index
    app.dependency_overrides[get_reminder_scheduler] = lambda: reminders
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
