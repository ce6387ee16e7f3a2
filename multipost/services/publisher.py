# multipost/services/publisher.py
"""Fan one post out to all of its target accounts and fold the outcomes back in."""
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from multipost.db import crud_accounts, crud_posts
from multipost.db.base import SessionLocal, utcnow
from multipost.db.models import Post, PostPlatform, PostStatus
from multipost.errors import InvalidState, NotFound
from multipost.services.platforms.base import AccountIdentity, Capability, Credential, PostPayload, PublishResult
from multipost.services.registry import CapabilityRegistry, get_registry

logger = structlog.get_logger(__name__)

# statuses from which an explicit publish request is refused, with the reason shown to the user
BLOCKED_PUBLISH = {
    PostStatus.PUBLISHED.value: "Post is already published",
    PostStatus.PUBLISHING.value: "Post is currently being published",
    PostStatus.PENDING_APPROVAL.value: "Post is awaiting approval",
    PostStatus.REJECTED.value: "Post was rejected and cannot be published",
}

Dispatch = Tuple[Capability, Credential, AccountIdentity, PostPayload]

def _message(exc: Exception) -> str:
    return str(exc) or "Unknown error"

def _publish_one(capability: Capability, credential: Credential, account: AccountIdentity, payload: PostPayload) -> PublishResult:
    return capability.publish(credential, account, payload)

def publish_post(db: Session, org_id: str, post_id: str, registry: Optional[CapabilityRegistry] = None) -> None:
    """Publish ``post_id`` to every target and persist the outcome.

    Raises NotFound when the post does not exist. Anything that goes wrong for a
    single target is recorded on that target and never raised. Targets already
    published by an earlier attempt are kept and not sent again.
    """
    registry = registry or get_registry()
    post = crud_posts.get_post(db, org_id, post_id)
    if not post:
        raise NotFound("Post not found")

    targets = post.targets()
    accounts = crud_accounts.get_accounts(db, org_id, [t.account_id for t in targets])
    media = tuple(post.media_urls or ())
    log = logger.bind(org_id=org_id, post_id=post_id)
    log.info("publish_started", targets=len(targets))

    results: List[Optional[PostPlatform]] = [None] * len(targets)
    dispatch: Dict[int, Dispatch] = {}
    for i, target in enumerate(targets):
        if target.status == PostStatus.PUBLISHED.value and target.platform_post_id:
            results[i] = target
            continue
        account = accounts.get(target.account_id)
        if account is None:
            results[i] = target.failed("Account not found")
            continue
        try:
            capability = registry.resolve(account.platform)
            credential = crud_accounts.credential_for(account)
        except Exception as e:
            results[i] = target.failed(_message(e))
            continue
        payload = PostPayload(content=post.content or "", media_urls=media, metadata=dict(target.metadata))
        dispatch[i] = (capability, credential, crud_accounts.identity_for(account), payload)

    newly_published = []
    if dispatch:
        # one worker per target: every request goes out at once
        with ThreadPoolExecutor(max_workers=len(dispatch), thread_name_prefix="publish") as pool:
            futures = {i: pool.submit(_publish_one, *args) for i, args in dispatch.items()}
            for i, future in futures.items():
                target = targets[i]
                platform = dispatch[i][2].platform
                try:
                    result = future.result()
                except Exception as e:
                    results[i] = target.failed(_message(e))
                    log.warning("publish_target_failed", account_id=target.account_id, platform=platform,
                                error_type=type(e).__name__, error=_message(e))
                    continue
                results[i] = target.published(result.platform_post_id)
                newly_published.append(accounts[target.account_id])
                log.info("publish_target_succeeded", account_id=target.account_id, platform=platform,
                         platform_post_id=result.platform_post_id)

    for i, result in enumerate(results):
        if result is not None and result.status == PostStatus.FAILED.value and i not in dispatch:
            log.warning("publish_target_failed", account_id=result.account_id, error=result.error_message)

    _finish(db, post, [r for r in results if r is not None], newly_published)

def _finish(db: Session, post: Post, results: List[PostPlatform], newly_published: list) -> None:
    now = utcnow()
    succeeded = sum(1 for r in results if r.status == PostStatus.PUBLISHED.value)
    fields = {"platforms": [r.to_dict() for r in results]}
    if succeeded:
        # partial success still counts as published; failed targets carry their own message
        fields["status"] = PostStatus.PUBLISHED.value
        if post.published_at is None:
            fields["published_at"] = now
    else:
        fields["status"] = PostStatus.FAILED.value
    crud_accounts.touch_last_sync(db, newly_published, now)
    crud_posts.update_post(db, post, fields)
    logger.info("publish_finished", org_id=post.organization_id, post_id=post.id, status=fields["status"],
                succeeded=succeeded, failed=len(results) - succeeded)

def start_publish(db: Session, org_id: str, post_id: str) -> Post:
    """Validate and flip a post to ``publishing``; the caller then runs the orchestrator."""
    post = crud_posts.get_post(db, org_id, post_id)
    if not post:
        raise NotFound("Post not found")
    if post.status in BLOCKED_PUBLISH:
        raise InvalidState(BLOCKED_PUBLISH[post.status])
    if not post.platforms:
        raise InvalidState("Post has no target accounts")
    return crud_posts.update_post(db, post, {"status": PostStatus.PUBLISHING.value})

def retry_post(db: Session, org_id: str, post_id: str) -> Post:
    """Re-arm a failed or partially failed post. Only its failed targets will be attempted again."""
    post = crud_posts.get_post(db, org_id, post_id)
    if not post:
        raise NotFound("Post not found")
    has_failures = any(t.status == PostStatus.FAILED.value for t in post.targets())
    if post.status == PostStatus.FAILED.value or (post.status == PostStatus.PUBLISHED.value and has_failures):
        return crud_posts.update_post(db, post, {"status": PostStatus.PUBLISHING.value})
    raise InvalidState("Post has no failed targets to retry")

def publish_in_background(
    org_id: str,
    post_id: str,
    session_factory: Callable[[], Session] = SessionLocal,
    registry: Optional[CapabilityRegistry] = None,
) -> None:
    """Detached entry point for request handlers. Errors end up in the log, never in a response."""
    db = session_factory()
    try:
        publish_post(db, org_id, post_id, registry=registry)
    except Exception:
        logger.exception("background_publish_failed", org_id=org_id, post_id=post_id)
    finally:
        db.close()
