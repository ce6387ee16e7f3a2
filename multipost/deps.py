from typing import Generator
from fastapi import Request
from multipost.db.base import SessionLocal, engine, Base
from multipost.db import models  # noqa: F401  registers the tables
from multipost.services.scheduler import SchedulerSupervisor

def init_db() -> None:
    Base.metadata.create_all(bind=engine)

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_supervisor(request: Request) -> SchedulerSupervisor:
    return request.app.state.supervisor
