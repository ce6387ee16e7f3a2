# multipost/services/platforms/instagram.py
from multipost.db.models import Platform
from multipost.errors import RemoteRejected
from multipost.services.platforms.base import (
    AccountIdentity, Capability, Credential, PostPayload, PublishResult, RefreshMode, RefreshedToken,
    is_video_url, poll_status, require_media,
)

GRAPH_URL = "https://graph.facebook.com/v18.0"
INSTAGRAM_GRAPH_URL = "https://graph.instagram.com"

class InstagramCapability(Capability):
    """Container create -> wait for FINISHED (video only) -> media_publish."""

    platform = Platform.INSTAGRAM
    refresh_mode = RefreshMode.ACCESS_TOKEN

    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        media_url = require_media(post, "Instagram requires media")
        video = is_video_url(media_url)
        params = {"caption": post.content, "access_token": credential.access_token}
        if video:
            params.update({"media_type": "REELS", "video_url": media_url})
        else:
            params["image_url"] = media_url

        with self.client() as c:
            r = self.request(c, "POST", f"{GRAPH_URL}/{account.platform_user_id}/media", params=params)
            container_id = r.json().get("id")
            if not container_id:
                raise RemoteRejected("Instagram did not return a media container id")

            if video:
                def fetch_status():
                    s = self.request(
                        c, "GET", f"{GRAPH_URL}/{container_id}",
                        params={"fields": "status_code", "access_token": credential.access_token},
                    )
                    return s.json().get("status_code")

                poll_status(fetch_status, success="FINISHED", pending=("IN_PROGRESS",), label="Media processing")

            r = self.request(
                c, "POST", f"{GRAPH_URL}/{account.platform_user_id}/media_publish",
                params={"creation_id": container_id, "access_token": credential.access_token},
            )
            media_id = r.json().get("id")
        if not media_id:
            raise RemoteRejected("Instagram did not return a media id")
        return PublishResult(platform_post_id=str(media_id))

    def refresh(self, credential: Credential) -> RefreshedToken:
        with self.client() as c:
            r = self.request(
                c, "GET", f"{INSTAGRAM_GRAPH_URL}/refresh_access_token",
                params={"grant_type": "ig_refresh_token", "access_token": credential.access_token},
            )
        return RefreshedToken.from_oauth(r.json())
