from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Dict, Any
from multipost.deps import get_db, get_supervisor
from multipost.services.scheduler import SchedulerSupervisor, run_due_scheduled_jobs
from multipost.services.token_refresh import refresh_expired_tokens

router = APIRouter(prefix="/scheduler", tags=["scheduler"])

@router.post("/run-jobs")
def run_jobs(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return run_due_scheduled_jobs(db).as_dict()

@router.post("/refresh-tokens")
def refresh_tokens(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return refresh_expired_tokens(db).as_dict()

@router.post("/start")
def start(supervisor: SchedulerSupervisor = Depends(get_supervisor)) -> Dict[str, Any]:
    if not supervisor.start():
        return {"status": "already-running"}
    return {"status": "started", **supervisor.status()}

@router.post("/stop")
def stop(supervisor: SchedulerSupervisor = Depends(get_supervisor)) -> Dict[str, Any]:
    if supervisor.stop():
        return {"status": "stopped"}
    return {"status": "not-running"}

@router.get("/status")
def status(supervisor: SchedulerSupervisor = Depends(get_supervisor)) -> Dict[str, Any]:
    return supervisor.status()
