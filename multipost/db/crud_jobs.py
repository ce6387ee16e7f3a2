# multipost/db/crud_jobs.py
from datetime import datetime
from typing import Any, Dict, List
from sqlalchemy.orm import Session
from multipost.db.models import JobStatus, ScheduledJob

def list_due_jobs(db: Session, now: datetime, limit: int = 10) -> List[ScheduledJob]:
    return (
        db.query(ScheduledJob)
        .filter(ScheduledJob.status == JobStatus.PENDING.value, ScheduledJob.scheduled_at <= now)
        .order_by(ScheduledJob.scheduled_at.asc())
        .limit(limit)
        .all()
    )

def update_job(db: Session, job: ScheduledJob, fields: Dict[str, Any]) -> None:
    for key, value in fields.items():
        setattr(job, key, value)
    db.add(job)
    db.commit()

def get_pending_job_for_post(db: Session, post_id: str) -> ScheduledJob | None:
    return (
        db.query(ScheduledJob)
        .filter(ScheduledJob.post_id == post_id, ScheduledJob.status == JobStatus.PENDING.value)
        .first()
    )

def upsert_pending_job(db: Session, org_id: str, post_id: str, scheduled_at: datetime) -> ScheduledJob:
    """A rescheduled post moves its pending job instead of queueing a second one."""
    job = get_pending_job_for_post(db, post_id)
    if job:
        job.scheduled_at = scheduled_at
    else:
        job = ScheduledJob(post_id=post_id, org_id=org_id, scheduled_at=scheduled_at, status=JobStatus.PENDING.value)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job
