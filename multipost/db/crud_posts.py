# multipost/db/crud_posts.py
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from multipost.db.base import utcnow
from multipost.db.models import Post, PostPlatform, PostStatus

def create_post(
    db: Session,
    organization_id: str,
    content: str,
    account_ids: List[str],
    media_urls: Optional[List[str]] = None,
    scheduled_at: Optional[datetime] = None,
    status: str = PostStatus.DRAFT.value,
    target_metadata: Optional[Dict[str, Dict[str, Any]]] = None,
    created_by_user_id: Optional[str] = None,
) -> Post:
    target_metadata = target_metadata or {}
    # one target per distinct account, in the order given
    platforms = [
        PostPlatform(account_id=a, metadata=dict(target_metadata.get(a, {}))).to_dict()
        for a in dict.fromkeys(account_ids)
    ]
    obj = Post(
        organization_id=organization_id,
        status=status,
        content=content,
        media_urls=list(media_urls or []),
        scheduled_at=scheduled_at,
        platforms=platforms,
        created_by_user_id=created_by_user_id,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_post(db: Session, org_id: str, post_id: str) -> Post | None:
    return db.query(Post).filter(Post.organization_id == org_id, Post.id == post_id).first()

def update_post(db: Session, post: Post, fields: Dict[str, Any]) -> Post:
    """Apply all fields and commit once."""
    for key, value in fields.items():
        setattr(post, key, value)
    post.updated_at = utcnow()
    db.add(post)
    db.commit()
    db.refresh(post)
    return post

def mark_publishing(db: Session, org_id: str, post_id: str) -> bool:
    post = get_post(db, org_id, post_id)
    if not post:
        return False
    update_post(db, post, {"status": PostStatus.PUBLISHING.value})
    return True
