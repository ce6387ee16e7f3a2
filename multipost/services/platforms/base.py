# multipost/services/platforms/base.py
"""Uniform publish/refresh contract shared by every platform integration.

A capability only ever sees immutable values (Credential, AccountIdentity,
PostPayload) so it can run on a worker thread without touching the database.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx
import structlog

from multipost.config import settings
from multipost.db.models import Platform
from multipost.errors import MissingMedia, NetworkFailure, ProcessingTimedOut, RemoteRejected

logger = structlog.get_logger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm")

# Request-id headers worth keeping in logs when talking to platform support
REQUEST_ID_HEADERS = ("x-restli-request-id", "x-fb-trace-id", "x-tt-logid", "x-request-id", "x-transaction-id")

@dataclass(frozen=True)
class Credential:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def __repr__(self) -> str:
        return f"Credential(expires_at={self.expires_at!r})"

@dataclass(frozen=True)
class AccountIdentity:
    id: str
    platform: str
    platform_user_id: str
    username: str = ""

@dataclass(frozen=True)
class PostPayload:
    content: str
    media_urls: Tuple[str, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def first_media(self) -> Optional[str]:
        return self.media_urls[0] if self.media_urls else None

@dataclass(frozen=True)
class PublishResult:
    platform_post_id: str

@dataclass(frozen=True)
class RefreshedToken:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

    def __repr__(self) -> str:
        return f"RefreshedToken(rotated={self.refresh_token is not None}, expires_in={self.expires_in!r})"

    @classmethod
    def from_oauth(cls, data: Dict[str, Any]) -> "RefreshedToken":
        access_token = data.get("access_token")
        if not access_token:
            raise RemoteRejected("No access_token in refresh response")
        expires_in = data.get("expires_in")
        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            expires_in=int(expires_in) if expires_in is not None else None,
        )

class RefreshMode(str, Enum):
    REFRESH_TOKEN = "refresh_token"  # exchange the stored refresh token
    ACCESS_TOKEN = "access_token"    # re-extend the long-lived access token itself

# --- media helpers ---

def is_video_url(url: str) -> bool:
    """Guess media type from the URL path extension. No content inspection is done."""
    return urlsplit(url).path.lower().endswith(VIDEO_EXTENSIONS)

def require_media(post: PostPayload, message: str) -> str:
    url = post.first_media
    if not url:
        raise MissingMedia(message)
    return url

def use_chunked_upload(size: int, threshold: Optional[int] = None) -> bool:
    threshold = settings.chunked_upload_threshold if threshold is None else threshold
    return size >= threshold

def plan_chunks(total: int, chunk_size: Optional[int] = None) -> List[Tuple[int, int]]:
    """Half-open byte ranges covering ``total`` bytes, none larger than ``chunk_size``."""
    chunk_size = settings.upload_chunk_size if chunk_size is None else chunk_size
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [(start, min(start + chunk_size, total)) for start in range(0, total, chunk_size)]

def hashtags(text: str) -> List[str]:
    return [w.lstrip("#").strip(".,!?;:") for w in text.split() if w.startswith("#") and len(w) > 1]

# --- http helpers ---

def http_client() -> httpx.Client:
    return httpx.Client(timeout=httpx.Timeout(settings.http_timeout, connect=5))

def log_request_id(resp: httpx.Response, platform: str) -> None:
    for header in REQUEST_ID_HEADERS:
        req_id = resp.headers.get(header)
        if req_id:
            logger.debug("platform_request_id", platform=platform, header=header, request_id=req_id)
            return

def remote_error_message(resp: httpx.Response) -> str:
    """Pull the human-readable error out of a platform error body."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return str(body.get("error_description") or err)
        for key in ("message", "detail", "title", "error_description"):
            if body.get(key):
                return str(body[key])
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict) and errors[0].get("message"):
            return str(errors[0]["message"])
    text = resp.text.strip()
    return text[:500] if text else f"HTTP {resp.status_code}"

def platform_request(client: httpx.Client, method: str, url: str, *, platform: str, **kwargs) -> httpx.Response:
    """Single attempt; transport errors become NetworkFailure and 4xx/5xx become RemoteRejected."""
    try:
        resp = client.request(method, url, **kwargs)
    except httpx.RequestError as e:
        raise NetworkFailure(f"{platform} request failed: {e}") from e
    log_request_id(resp, platform)
    if resp.status_code >= 400:
        message = remote_error_message(resp)
        logger.warning("platform_request_rejected", platform=platform, status_code=resp.status_code, path=urlsplit(url).path)
        raise RemoteRejected(message, status_code=resp.status_code)
    return resp

def poll_status(
    fetch: Callable[[], Optional[str]],
    *,
    success: str,
    pending: Iterable[str],
    label: str,
    attempts: Optional[int] = None,
    interval: Optional[float] = None,
) -> str:
    """Wait, then check, up to ``attempts`` times.

    Returns on ``success``; a status outside ``pending`` is terminal and raises
    RemoteRejected; running out of attempts raises ProcessingTimedOut.
    """
    attempts = settings.publish_poll_attempts if attempts is None else attempts
    interval = settings.publish_poll_interval if interval is None else interval
    pending = set(pending)
    status: Optional[str] = None
    for _ in range(attempts):
        if interval:
            time.sleep(interval)
        status = fetch()
        if status == success:
            return status
        if status not in pending:
            raise RemoteRejected(f"{label} failed with status: {status}")
    raise ProcessingTimedOut(f"{label} still processing after {attempts} checks (last status: {status})")

class Capability(ABC):
    platform: Platform
    refresh_mode: Optional[RefreshMode] = None

    def __init__(self, client_factory: Optional[Callable[[], httpx.Client]] = None):
        self._client_factory = client_factory or http_client

    def client(self) -> httpx.Client:
        return self._client_factory()

    def request(self, client: httpx.Client, method: str, url: str, **kwargs) -> httpx.Response:
        return platform_request(client, method, url, platform=self.platform.value, **kwargs)

    def download(self, client: httpx.Client, url: str) -> bytes:
        return self.request(client, "GET", url, follow_redirects=True).content

    @abstractmethod
    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        ...

    @abstractmethod
    def refresh(self, credential: Credential) -> RefreshedToken:
        ...

