from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import Column, String, Text, DateTime, JSON, Index
from multipost.db.base import Base, utcnow

class Platform(str, Enum):
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    YOUTUBE = "youtube"
    TWITTER = "twitter"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"
    THREADS = "threads"
    PINTEREST = "pinterest"

class PostStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"

class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

MAX_CONTENT_LENGTH = 2200
MAX_MEDIA_URLS = 10

def _uuid() -> str:
    return uuid.uuid4().hex

@dataclass
class PostPlatform:
    """One publish target of a post; stored inside ``Post.platforms``."""
    account_id: str
    status: str = PostStatus.DRAFT.value
    platform_post_id: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PostPlatform":
        return cls(
            account_id=data["account_id"],
            status=data.get("status", PostStatus.DRAFT.value),
            platform_post_id=data.get("platform_post_id"),
            error_message=data.get("error_message"),
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def published(self, platform_post_id: str) -> "PostPlatform":
        return PostPlatform(self.account_id, PostStatus.PUBLISHED.value, platform_post_id, None, dict(self.metadata))

    def failed(self, message: str) -> "PostPlatform":
        return PostPlatform(self.account_id, PostStatus.FAILED.value, None, message, dict(self.metadata))

class Post(Base):
    __tablename__ = "posts"
    id = Column(String(32), primary_key=True, default=_uuid)
    organization_id = Column(String(64), nullable=False, index=True)
    status = Column(String(32), nullable=False, default=PostStatus.DRAFT.value, index=True)
    content = Column(Text, nullable=False, default="")
    media_urls = Column(JSON, nullable=False, default=list)
    scheduled_at = Column(DateTime, nullable=True)
    published_at = Column(DateTime, nullable=True)   # first successful publish only
    platforms = Column(JSON, nullable=False, default=list)  # list of PostPlatform dicts
    approval_request = Column(JSON, nullable=True)   # {status, requested_by, reviewed_by, note}
    created_by_user_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def targets(self) -> List[PostPlatform]:
        return [PostPlatform.from_dict(p) for p in (self.platforms or [])]

class SocialAccount(Base):
    __tablename__ = "social_accounts"
    id = Column(String(32), primary_key=True, default=_uuid)
    organization_id = Column(String(64), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=True)  # some platforms issue none
    token_expires_at = Column(DateTime, nullable=True, index=True)  # null = long-lived
    platform_user_id = Column(String(128), nullable=False, default="")
    username = Column(String(256), nullable=False, default="")
    connected_at = Column(DateTime, default=utcnow)
    last_sync_at = Column(DateTime, nullable=True)

class ScheduledJob(Base):
    __tablename__ = "scheduled_jobs"
    id = Column(String(32), primary_key=True, default=_uuid)
    post_id = Column(String(32), nullable=False, index=True)
    org_id = Column(String(64), nullable=False)
    scheduled_at = Column(DateTime, nullable=False)
    status = Column(String(16), nullable=False, default=JobStatus.PENDING.value)
    created_at = Column(DateTime, default=utcnow)
    processed_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)

    __table_args__ = (Index("ix_scheduled_jobs_status_due", "status", "scheduled_at"),)
