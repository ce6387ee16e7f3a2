# multipost/routers/posts.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from multipost.db import crud_accounts, crud_jobs, crud_posts
from multipost.db.base import utcnow
from multipost.db.models import MAX_CONTENT_LENGTH, MAX_MEDIA_URLS, Post, PostStatus
from multipost.deps import get_db
from multipost.errors import InvalidState, NotFound
from multipost.services.publisher import publish_in_background, retry_post, start_publish
from multipost.services.scheduler import schedule_post

router = APIRouter(prefix="/orgs/{org_id}/posts", tags=["posts"])

class PostIn(BaseModel):
    content: str = ""
    media_urls: List[str] = []
    account_ids: List[str]
    scheduled_at: Optional[datetime] = None
    # per-account extras, e.g. {"<account_id>": {"board_id": "..."}}
    target_metadata: Dict[str, Dict[str, Any]] = {}
    created_by_user_id: Optional[str] = None

class ScheduleIn(BaseModel):
    scheduled_at: datetime

def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt

def _post_out(post: Post) -> Dict[str, Any]:
    return {
        "id": post.id,
        "organization_id": post.organization_id,
        "status": post.status,
        "content": post.content,
        "media_urls": post.media_urls or [],
        "scheduled_at": post.scheduled_at,
        "published_at": post.published_at,
        "platforms": post.platforms or [],
        "created_at": post.created_at,
        "updated_at": post.updated_at,
    }

@router.post("", status_code=201)
def create(org_id: str, body: PostIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    if len(body.content) > MAX_CONTENT_LENGTH:
        raise HTTPException(400, f"Content exceeds {MAX_CONTENT_LENGTH} characters")
    if len(body.media_urls) > MAX_MEDIA_URLS:
        raise HTTPException(400, f"At most {MAX_MEDIA_URLS} media URLs are allowed")
    if not body.account_ids:
        raise HTTPException(400, "At least one account is required")

    accounts = crud_accounts.get_accounts(db, org_id, body.account_ids)
    missing = [a for a in dict.fromkeys(body.account_ids) if a not in accounts]
    if missing:
        raise HTTPException(400, f"Unknown accounts: {', '.join(missing)}")

    scheduled_at = _naive_utc(body.scheduled_at) if body.scheduled_at else None
    future = scheduled_at is not None and scheduled_at > utcnow()
    post = crud_posts.create_post(
        db,
        organization_id=org_id,
        content=body.content,
        account_ids=body.account_ids,
        media_urls=body.media_urls,
        scheduled_at=scheduled_at,
        status=PostStatus.SCHEDULED.value if future else PostStatus.DRAFT.value,
        target_metadata=body.target_metadata,
        created_by_user_id=body.created_by_user_id,
    )
    if future:
        crud_jobs.upsert_pending_job(db, org_id, post.id, scheduled_at)
    return _post_out(post)

@router.get("/{post_id}")
def get(org_id: str, post_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    post = crud_posts.get_post(db, org_id, post_id)
    if not post:
        raise HTTPException(404, "Post not found")
    return _post_out(post)

@router.post("/{post_id}/publish", status_code=202)
def publish(org_id: str, post_id: str, background: BackgroundTasks, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        start_publish(db, org_id, post_id)
    except NotFound as e:
        raise HTTPException(404, str(e))
    except InvalidState as e:
        raise HTTPException(400, str(e))
    # runs after the response is sent; the client polls GET for the outcome
    background.add_task(publish_in_background, org_id, post_id)
    return {"status": PostStatus.PUBLISHING.value, "post_id": post_id}

@router.post("/{post_id}/schedule")
def schedule(org_id: str, post_id: str, body: ScheduleIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        post = schedule_post(db, org_id, post_id, _naive_utc(body.scheduled_at))
    except NotFound as e:
        raise HTTPException(404, str(e))
    except InvalidState as e:
        raise HTTPException(400, str(e))
    return _post_out(post)

@router.post("/{post_id}/retry", status_code=202)
def retry(org_id: str, post_id: str, background: BackgroundTasks, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        retry_post(db, org_id, post_id)
    except NotFound as e:
        raise HTTPException(404, str(e))
    except InvalidState as e:
        raise HTTPException(400, str(e))
    background.add_task(publish_in_background, org_id, post_id)
    return {"status": PostStatus.PUBLISHING.value, "post_id": post_id}
