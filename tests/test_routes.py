from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from multipost.db import crud_posts
from multipost.db.models import PostStatus, ScheduledJob
from multipost.deps import get_db, get_supervisor
from multipost.main import app
from multipost.routers import posts as posts_router
from multipost.services.scheduler import SchedulerSupervisor

@pytest.fixture
def background(monkeypatch):
    calls = []
    monkeypatch.setattr(posts_router, "publish_in_background", lambda org_id, post_id: calls.append((org_id, post_id)))
    return calls

@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()

def _future(hours=1):
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()

def test_create_post(client, make_account):
    acct = make_account("tiktok", access_token="do-not-leak")
    resp = client.post("/orgs/org1/posts", json={"content": "hello", "account_ids": [acct.id, acct.id]})
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "draft"
    assert data["platforms"] == [{
        "account_id": acct.id, "status": "draft", "platform_post_id": None, "error_message": None, "metadata": {},
    }]
    assert "do-not-leak" not in resp.text

def test_create_scheduled_post_queues_job(client, db, make_account):
    acct = make_account("youtube")
    resp = client.post("/orgs/org1/posts", json={
        "content": "soon", "account_ids": [acct.id], "media_urls": ["https://x/a.mp4"], "scheduled_at": _future(),
    })
    assert resp.status_code == 201
    assert resp.json()["status"] == "scheduled"
    assert db.query(ScheduledJob).filter_by(post_id=resp.json()["id"]).count() == 1

@pytest.mark.parametrize("body,detail", [
    ({"content": "x" * 2201, "account_ids": ["a"]}, "Content exceeds 2200 characters"),
    ({"content": "x", "media_urls": ["https://x/i.jpg"] * 11, "account_ids": ["a"]}, "At most 10 media URLs are allowed"),
    ({"content": "x", "account_ids": []}, "At least one account is required"),
    ({"content": "x", "account_ids": ["ghost"]}, "Unknown accounts: ghost"),
])
def test_create_post_validation(client, body, detail):
    resp = client.post("/orgs/org1/posts", json=body)
    assert resp.status_code == 400
    assert resp.json()["detail"] == detail

def test_create_post_rejects_other_org_accounts(client, make_account):
    acct = make_account("tiktok", org_id="org2")
    resp = client.post("/orgs/org1/posts", json={"content": "x", "account_ids": [acct.id]})
    assert resp.status_code == 400

def test_get_post(client, db, make_account):
    post = crud_posts.create_post(db, "org1", "hi", [make_account("threads").id])
    assert client.get(f"/orgs/org1/posts/{post.id}").json()["id"] == post.id
    assert client.get(f"/orgs/org2/posts/{post.id}").status_code == 404

def test_publish_is_accepted_and_runs_in_background(client, db, make_account, background):
    post = crud_posts.create_post(db, "org1", "go", [make_account("tiktok").id])
    resp = client.post(f"/orgs/org1/posts/{post.id}/publish")
    assert resp.status_code == 202
    assert resp.json() == {"status": "publishing", "post_id": post.id}
    assert background == [("org1", post.id)]
    db.refresh(post)
    assert post.status == PostStatus.PUBLISHING.value

@pytest.mark.parametrize("status", ["published", "publishing", "pending_approval", "rejected"])
def test_publish_refuses_blocked_states(client, db, make_account, background, status):
    post = crud_posts.create_post(db, "org1", "go", [make_account("tiktok").id], status=status)
    resp = client.post(f"/orgs/org1/posts/{post.id}/publish")
    assert resp.status_code == 400
    assert background == []

def test_publish_missing_post(client, background):
    assert client.post("/orgs/org1/posts/nope/publish").status_code == 404

def test_retry(client, db, make_account, background):
    acct = make_account("tiktok")
    draft = crud_posts.create_post(db, "org1", "x", [acct.id])
    assert client.post(f"/orgs/org1/posts/{draft.id}/retry").status_code == 400

    failed = crud_posts.create_post(db, "org1", "y", [acct.id], status=PostStatus.FAILED.value)
    resp = client.post(f"/orgs/org1/posts/{failed.id}/retry")
    assert resp.status_code == 202
    assert background == [("org1", failed.id)]

def test_schedule_route(client, db, make_account):
    post = crud_posts.create_post(db, "org1", "x", [make_account("tiktok").id])
    resp = client.post(f"/orgs/org1/posts/{post.id}/schedule", json={"scheduled_at": _future(2)})
    assert resp.status_code == 200
    assert resp.json()["status"] == "scheduled"

    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    resp = client.post(f"/orgs/org1/posts/{post.id}/schedule", json={"scheduled_at": past})
    assert resp.status_code == 400

def test_scheduler_run_routes(client):
    assert client.post("/scheduler/run-jobs").json() == {"completed": 0, "failed": 0, "job_ids": []}
    assert client.post("/scheduler/refresh-tokens").json() == {"refreshed": 0, "skipped": 0, "failed": 0}

def test_scheduler_start_stop(client):
    supervisor = SchedulerSupervisor(jobs_pass=lambda: None, refresh_pass=lambda: None)
    app.dependency_overrides[get_supervisor] = lambda: supervisor
    try:
        assert client.get("/scheduler/status").json()["running"] is False
        assert client.post("/scheduler/start").json()["status"] == "started"
        assert client.post("/scheduler/start").json() == {"status": "already-running"}
        assert client.get("/scheduler/status").json()["running"] is True
        assert client.post("/scheduler/stop").json() == {"status": "stopped"}
        assert client.post("/scheduler/stop").json() == {"status": "not-running"}
    finally:
        supervisor.stop()

def test_request_id_is_echoed(client):
    resp = client.get("/", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.headers["x-request-id"] == "req-123"
    assert client.get("/").headers.get("x-request-id")
