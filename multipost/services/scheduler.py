# multipost/services/scheduler.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from multipost.config import settings
from multipost.db import crud_jobs, crud_posts
from multipost.db.base import SessionLocal, utcnow
from multipost.db.models import JobStatus, Post, PostStatus
from multipost.errors import InvalidState, NotFound
from multipost.services.publisher import BLOCKED_PUBLISH, publish_post
from multipost.services.token_refresh import refresh_expired_tokens

logger = structlog.get_logger(__name__)

# a post already being published may still be rescheduled
NOT_SCHEDULABLE = {k: v for k, v in BLOCKED_PUBLISH.items() if k != PostStatus.PUBLISHING.value}

@dataclass
class JobRunReport:
    completed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {"completed": len(self.completed), "failed": len(self.failed), "job_ids": self.completed + self.failed}

def schedule_post(db: Session, org_id: str, post_id: str, scheduled_at: datetime) -> Post:
    post = crud_posts.get_post(db, org_id, post_id)
    if not post:
        raise NotFound("Post not found")
    if scheduled_at <= utcnow():
        raise InvalidState("Scheduled time must be in the future")
    if post.status in NOT_SCHEDULABLE:
        raise InvalidState(NOT_SCHEDULABLE[post.status])
    crud_jobs.upsert_pending_job(db, org_id, post_id, scheduled_at)
    return crud_posts.update_post(db, post, {"status": PostStatus.SCHEDULED.value, "scheduled_at": scheduled_at})

def run_due_scheduled_jobs(
    db: Session,
    publish: Callable[[Session, str, str], None] = publish_post,
    now: Optional[datetime] = None,
) -> JobRunReport:
    """Claim due pending jobs and publish their posts one after another."""
    now = now or utcnow()
    report = JobRunReport()
    jobs = crud_jobs.list_due_jobs(db, now, limit=settings.scheduler_batch_size)
    if not jobs:
        return report

    for job in jobs:
        log = logger.bind(job_id=job.id, org_id=job.org_id, post_id=job.post_id)
        try:
            job.status = JobStatus.PROCESSING.value
            job.processed_at = now
            db.add(job)
            post = crud_posts.get_post(db, job.org_id, job.post_id)
            # approval or status may have changed since the job was queued
            blocked = BLOCKED_PUBLISH.get(post.status) if post else None
            if blocked:
                crud_jobs.update_job(db, job, {"status": JobStatus.FAILED.value, "error": blocked})
                log.warning("scheduled_job_blocked", post_status=post.status, error=blocked)
                report.failed.append(job.id)
                continue
            # commits the job claim together with the post status
            if not crud_posts.mark_publishing(db, job.org_id, job.post_id):
                db.commit()
            log.info("scheduled_job_started")
        except Exception:
            db.rollback()
            log.exception("scheduled_job_claim_failed")
            report.failed.append(job.id)
            continue

        try:
            publish(db, job.org_id, job.post_id)
        except Exception as e:
            db.rollback()
            log.error("scheduled_job_failed", error_type=type(e).__name__, error=str(e))
            try:
                crud_jobs.update_job(db, job, {"status": JobStatus.FAILED.value, "error": str(e) or type(e).__name__})
            except Exception:
                db.rollback()
                log.exception("scheduled_job_update_failed")
            report.failed.append(job.id)
            continue

        try:
            crud_jobs.update_job(db, job, {"status": JobStatus.COMPLETED.value})
        except Exception:
            db.rollback()
            log.exception("scheduled_job_update_failed")
            report.failed.append(job.id)
            continue
        log.info("scheduled_job_completed")
        report.completed.append(job.id)

    logger.info("scheduled_jobs_finished", completed=len(report.completed), failed=len(report.failed))
    return report

def run_jobs_pass(session_factory: Callable[[], Session] = SessionLocal) -> Dict[str, Any]:
    # each pass gets its own session
    db = session_factory()
    try:
        return run_due_scheduled_jobs(db).as_dict()
    finally:
        db.close()

def run_refresh_pass(session_factory: Callable[[], Session] = SessionLocal) -> Dict[str, Any]:
    db = session_factory()
    try:
        return refresh_expired_tokens(db).as_dict()
    finally:
        db.close()

class SchedulerSupervisor:
    """Owns one BackgroundScheduler running the job pass and the token refresh pass."""

    def __init__(
        self,
        jobs_cron: Optional[str] = None,
        refresh_cron: Optional[str] = None,
        jobs_pass: Callable[[], Any] = run_jobs_pass,
        refresh_pass: Callable[[], Any] = run_refresh_pass,
    ):
        self.jobs_cron = jobs_cron or settings.scheduler_jobs_cron
        self.refresh_cron = refresh_cron or settings.scheduler_refresh_cron
        self._jobs_pass = jobs_pass
        self._refresh_pass = refresh_pass
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return bool(self._scheduler and self._scheduler.running)

    def start(self) -> bool:
        """Returns False if it was already running."""
        if self.running:
            return False
        scheduler = BackgroundScheduler(timezone="UTC")
        # max_instances=1 keeps passes of the same kind from overlapping
        scheduler.add_job(self._jobs_pass, CronTrigger.from_crontab(self.jobs_cron, timezone="UTC"),
                          id="scheduled_jobs", replace_existing=True, max_instances=1, coalesce=True)
        scheduler.add_job(self._refresh_pass, CronTrigger.from_crontab(self.refresh_cron, timezone="UTC"),
                          id="token_refresh", replace_existing=True, max_instances=1, coalesce=True)
        scheduler.start()
        self._scheduler = scheduler
        logger.info("scheduler_started", jobs_cron=self.jobs_cron, refresh_cron=self.refresh_cron)
        return True

    def stop(self) -> bool:
        if not self.running:
            return False
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("scheduler_stopped")
        return True

    def status(self) -> Dict[str, Any]:
        return {"running": self.running, "jobs_cron": self.jobs_cron, "refresh_cron": self.refresh_cron}
