# multipost/services/platforms/youtube.py
from multipost.config import settings
from multipost.db.models import Platform
from multipost.errors import MissingMedia, RemoteRejected
from multipost.services.platforms.base import (
    AccountIdentity, Capability, Credential, PostPayload, PublishResult, RefreshMode, RefreshedToken,
    hashtags, is_video_url, plan_chunks, require_media, use_chunked_upload,
)

TOKEN_URL = "https://oauth2.googleapis.com/token"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"

def _title(post: PostPayload) -> str:
    if post.metadata.get("title"):
        return str(post.metadata["title"])[:100]
    first_line = post.content.strip().splitlines()[0] if post.content.strip() else ""
    return (first_line or "Untitled")[:100]

class YouTubeCapability(Capability):
    """Resumable upload: one PUT below the chunk threshold, Content-Range chunks at or above it."""

    platform = Platform.YOUTUBE
    refresh_mode = RefreshMode.REFRESH_TOKEN

    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        video_url = require_media(post, "YouTube requires a video")
        if not is_video_url(video_url):
            raise MissingMedia("YouTube requires a video")
        auth = {"Authorization": f"Bearer {credential.access_token}"}

        with self.client() as c:
            video = self.download(c, video_url)
            total = len(video)
            r = self.request(
                c, "POST", UPLOAD_URL,
                params={"uploadType": "resumable", "part": "snippet,status"},
                headers={
                    **auth,
                    "Content-Type": "application/json",
                    "X-Upload-Content-Type": "video/*",
                    "X-Upload-Content-Length": str(total),
                },
                json={
                    "snippet": {"title": _title(post), "description": post.content, "tags": hashtags(post.content)},
                    "status": {"privacyStatus": post.metadata.get("privacy_status", "public")},
                },
            )
            session_url = r.headers.get("location")
            if not session_url:
                raise RemoteRejected("YouTube did not return an upload session")

            if not use_chunked_upload(total):
                r = self.request(c, "PUT", session_url, headers={**auth, "Content-Type": "video/*"}, content=video)
            else:
                for start, end in plan_chunks(total):
                    r = self.request(
                        c, "PUT", session_url,
                        headers={**auth, "Content-Type": "video/*", "Content-Range": f"bytes {start}-{end - 1}/{total}"},
                        content=video[start:end],
                    )
                    # 308 Resume Incomplete until the final chunk lands
                    if end < total and r.status_code != 308:
                        raise RemoteRejected(f"YouTube upload interrupted at byte {start} (HTTP {r.status_code})")

            video_id = r.json().get("id") if r.status_code in (200, 201) else None
        if not video_id:
            raise RemoteRejected("YouTube upload finished without a video id")
        return PublishResult(platform_post_id=video_id)

    def refresh(self, credential: Credential) -> RefreshedToken:
        with self.client() as c:
            r = self.request(
                c, "POST", TOKEN_URL,
                data={
                    "client_id": settings.youtube_client_id,
                    "client_secret": settings.youtube_client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": credential.refresh_token,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        return RefreshedToken.from_oauth(r.json())
