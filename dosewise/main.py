from contextlib import asynccontextmanager

from fastapi import FastAPI

from dosewise import __version__
from dosewise.api import adherence, intake, reference, schedule, supplements, users
from dosewise.config import get_settings
from dosewise.db.database import Base, engine
from dosewise.services.notifications import reminder_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    if get_settings().reminder_scheduler_enabled:
        reminder_scheduler.start()
    yield
    reminder_scheduler.shutdown()


app = FastAPI(
    title="Dosewise API",
    description="Supplement scheduling and adherence tracking",
    version=__version__,
    lifespan=lifespan
)

app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(supplements.router, prefix="/users", tags=["supplements"])
app.include_router(schedule.router, prefix="/users", tags=["schedule"])
app.include_router(intake.router, prefix="/users", tags=["intake"])
app.include_router(adherence.router, prefix="/users", tags=["adherence"])
app.include_router(reference.router, prefix="/reference", tags=["reference"])


@app.get("/")
async def root():
    return {"message": "Dosewise API", "docs": "/docs"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
