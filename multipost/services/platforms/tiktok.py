# multipost/services/platforms/tiktok.py
from multipost.config import settings
from multipost.db.models import Platform
from multipost.errors import RemoteRejected
from multipost.services.platforms.base import (
    AccountIdentity, Capability, Credential, PostPayload, PublishResult, RefreshMode, RefreshedToken,
    poll_status, require_media,
)

TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
INIT_URL = "https://open.tiktokapis.com/v2/post/publish/video/init/"
STATUS_URL = "https://open.tiktokapis.com/v2/post/publish/status/fetch/"

PENDING = ("PROCESSING_UPLOAD", "PROCESSING_DOWNLOAD")
COMPLETE = "PUBLISH_COMPLETE"

def _check(body: dict, what: str) -> dict:
    # TikTok wraps every answer in {"data": ..., "error": {"code": "ok"}}
    err = body.get("error") or {}
    if err.get("code", "ok") != "ok":
        raise RemoteRejected(f"TikTok {what} failed: {err.get('message') or err.get('code')}")
    return body.get("data") or {}

class TikTokCapability(Capability):
    platform = Platform.TIKTOK
    refresh_mode = RefreshMode.REFRESH_TOKEN

    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        video_url = require_media(post, "TikTok requires a video")
        headers = {"Authorization": f"Bearer {credential.access_token}", "Content-Type": "application/json"}
        payload = {
            "post_info": {
                "title": post.content[:150],
                "privacy_level": post.metadata.get("privacy_level", "PUBLIC_TO_EVERYONE"),
                "disable_duet": False,
                "disable_comment": False,
                "disable_stitch": False,
            },
            # TikTok pulls the file itself from our storage URL
            "source_info": {"source": "PULL_FROM_URL", "video_url": video_url},
        }
        with self.client() as c:
            r = self.request(c, "POST", INIT_URL, headers=headers, json=payload)
            publish_id = _check(r.json(), "upload").get("publish_id")
            if not publish_id:
                raise RemoteRejected("TikTok upload failed: no publish_id returned")

            def fetch_status():
                s = self.request(c, "POST", STATUS_URL, headers=headers, json={"publish_id": publish_id})
                data = _check(s.json(), "status check")
                if data.get("status") == "FAILED" and data.get("fail_reason"):
                    raise RemoteRejected(f"TikTok publish failed: {data['fail_reason']}")
                return data.get("status")

            poll_status(fetch_status, success=COMPLETE, pending=PENDING, label="TikTok publish")
        return PublishResult(platform_post_id=publish_id)

    def refresh(self, credential: Credential) -> RefreshedToken:
        with self.client() as c:
            r = self.request(
                c, "POST", TOKEN_URL,
                data={
                    "client_key": settings.tiktok_client_key,
                    "client_secret": settings.tiktok_client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": credential.refresh_token,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        return RefreshedToken.from_oauth(r.json())
