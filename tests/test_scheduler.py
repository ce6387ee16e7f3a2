from datetime import timedelta

import pytest

from multipost.config import settings
from multipost.db import crud_jobs, crud_posts
from multipost.db.base import utcnow
from multipost.db.models import JobStatus, PostStatus, ScheduledJob
from multipost.errors import InvalidState, NotFound
from multipost.services.scheduler import SchedulerSupervisor, run_due_scheduled_jobs, schedule_post

def _post_with_job(db, make_account, due_in=-60, job_status=JobStatus.PENDING.value):
    post = crud_posts.create_post(db, "org1", "scheduled hello", [make_account("tiktok").id],
                                  status=PostStatus.SCHEDULED.value)
    job = ScheduledJob(post_id=post.id, org_id="org1", scheduled_at=utcnow() + timedelta(seconds=due_in),
                       status=job_status)
    db.add(job)
    db.commit()
    return post, job

class Recorder:
    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)

    def __call__(self, db, org_id, post_id):
        self.calls.append(post_id)
        if post_id in self.fail_for:
            raise RuntimeError("publisher exploded")

def test_due_job_is_processed(db, make_account):
    post, job = _post_with_job(db, make_account)
    publish = Recorder()

    report = run_due_scheduled_jobs(db, publish=publish)

    assert publish.calls == [post.id]
    assert report.completed == [job.id]
    db.refresh(job)
    db.refresh(post)
    assert job.status == JobStatus.COMPLETED.value
    assert job.processed_at is not None
    assert post.status == PostStatus.PUBLISHING.value

def test_future_jobs_wait(db, make_account):
    _, job = _post_with_job(db, make_account, due_in=3600)
    publish = Recorder()
    run_due_scheduled_jobs(db, publish=publish)
    assert publish.calls == []
    db.refresh(job)
    assert job.status == JobStatus.PENDING.value

@pytest.mark.parametrize("status", [JobStatus.COMPLETED.value, JobStatus.FAILED.value, JobStatus.PROCESSING.value])
def test_non_pending_jobs_are_never_selected(db, make_account, status):
    _post_with_job(db, make_account, job_status=status)
    publish = Recorder()
    run_due_scheduled_jobs(db, publish=publish)
    assert publish.calls == []

def test_failed_job_does_not_stop_the_batch(db, make_account):
    bad_post, bad_job = _post_with_job(db, make_account, due_in=-120)
    good_post, good_job = _post_with_job(db, make_account, due_in=-60)
    publish = Recorder(fail_for=[bad_post.id])

    report = run_due_scheduled_jobs(db, publish=publish)

    assert publish.calls == [bad_post.id, good_post.id]
    assert report.failed == [bad_job.id]
    assert report.completed == [good_job.id]
    db.refresh(bad_job)
    assert bad_job.status == JobStatus.FAILED.value
    assert bad_job.error == "publisher exploded"

def test_batch_size_limits_one_pass(db, make_account, monkeypatch):
    monkeypatch.setattr(settings, "scheduler_batch_size", 2)
    for offset in (-300, -200, -100):
        _post_with_job(db, make_account, due_in=offset)
    publish = Recorder()

    run_due_scheduled_jobs(db, publish=publish)
    assert len(publish.calls) == 2
    run_due_scheduled_jobs(db, publish=publish)
    assert len(publish.calls) == 3

def test_schedule_post_keeps_a_single_pending_job(db, make_account):
    post = crud_posts.create_post(db, "org1", "later", [make_account("tiktok").id])
    first = utcnow() + timedelta(hours=1)
    second = utcnow() + timedelta(hours=2)

    schedule_post(db, "org1", post.id, first)
    updated = schedule_post(db, "org1", post.id, second)

    assert updated.status == PostStatus.SCHEDULED.value
    jobs = db.query(ScheduledJob).filter_by(post_id=post.id).all()
    assert len(jobs) == 1
    assert jobs[0].scheduled_at == second
    assert crud_jobs.get_pending_job_for_post(db, post.id).id == jobs[0].id

def test_schedule_post_rejects_past_and_published(db, make_account):
    acct = make_account("tiktok")
    post = crud_posts.create_post(db, "org1", "x", [acct.id])
    with pytest.raises(InvalidState):
        schedule_post(db, "org1", post.id, utcnow() - timedelta(minutes=1))

    done = crud_posts.create_post(db, "org1", "y", [acct.id], status=PostStatus.PUBLISHED.value)
    with pytest.raises(InvalidState):
        schedule_post(db, "org1", done.id, utcnow() + timedelta(hours=1))

    with pytest.raises(NotFound):
        schedule_post(db, "org1", "missing", utcnow() + timedelta(hours=1))

def test_supervisor_registers_both_passes():
    supervisor = SchedulerSupervisor(jobs_cron="*/5 * * * *", refresh_cron="0 * * * *",
                                     jobs_pass=lambda: None, refresh_pass=lambda: None)
    assert supervisor.running is False
    try:
        assert supervisor.start() is True
        assert supervisor.running is True
        assert supervisor.start() is False
        assert sorted(j.id for j in supervisor._scheduler.get_jobs()) == ["scheduled_jobs", "token_refresh"]
    finally:
        supervisor.stop()
    assert supervisor.running is False
    assert supervisor.stop() is False

def test_supervisors_are_independent():
    one = SchedulerSupervisor(jobs_pass=lambda: None, refresh_pass=lambda: None)
    two = SchedulerSupervisor(jobs_pass=lambda: None, refresh_pass=lambda: None)
    try:
        one.start()
        assert one.running and not two.running
    finally:
        one.stop()

def test_job_for_deleted_post_fails_with_not_found(db):
    job = ScheduledJob(post_id="gone", org_id="org1", scheduled_at=utcnow() - timedelta(minutes=1))
    db.add(job)
    db.commit()

    report = run_due_scheduled_jobs(db)

    assert report.failed == [job.id]
    db.refresh(job)
    assert job.status == JobStatus.FAILED.value
    assert job.error == "Post not found"
    assert job.processed_at is not None

@pytest.mark.parametrize("status", [PostStatus.REJECTED.value, PostStatus.PENDING_APPROVAL.value])
def test_schedule_post_refuses_unapproved_posts(db, make_account, status):
    post = crud_posts.create_post(db, "org1", "needs review", [make_account("tiktok").id], status=status)
    with pytest.raises(InvalidState):
        schedule_post(db, "org1", post.id, utcnow() + timedelta(minutes=1))
    assert crud_jobs.get_pending_job_for_post(db, post.id) is None

@pytest.mark.parametrize("status,reason", [
    (PostStatus.REJECTED.value, "Post was rejected and cannot be published"),
    (PostStatus.PENDING_APPROVAL.value, "Post is awaiting approval"),
    (PostStatus.PUBLISHED.value, "Post is already published"),
])
def test_runner_does_not_publish_posts_blocked_after_scheduling(db, make_account, status, reason):
    post = crud_posts.create_post(db, "org1", "later", [make_account("tiktok").id])
    schedule_post(db, "org1", post.id, utcnow() + timedelta(minutes=1))
    # state changes after the job was queued
    crud_posts.update_post(db, post, {"status": status})
    publish = Recorder()

    report = run_due_scheduled_jobs(db, publish=publish, now=utcnow() + timedelta(minutes=2))

    assert publish.calls == []
    job = db.query(ScheduledJob).filter_by(post_id=post.id).one()
    assert report.failed == [job.id]
    assert job.status == JobStatus.FAILED.value
    assert job.error == reason
    db.refresh(post)
    assert post.status == status
