# multipost/services/platforms/threads.py
from multipost.db.models import Platform
from multipost.errors import RemoteRejected
from multipost.services.platforms.base import (
    AccountIdentity, Capability, Credential, PostPayload, PublishResult, RefreshMode, RefreshedToken,
    is_video_url, poll_status,
)

GRAPH_URL = "https://graph.threads.net/v1.0"
MAX_TEXT = 500

class ThreadsCapability(Capability):
    platform = Platform.THREADS
    refresh_mode = RefreshMode.ACCESS_TOKEN

    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        user = account.platform_user_id
        media_url = post.first_media
        video = bool(media_url) and is_video_url(media_url)
        params = {"text": post.content[:MAX_TEXT], "access_token": credential.access_token}
        if not media_url:
            params["media_type"] = "TEXT"
        elif video:
            params.update({"media_type": "VIDEO", "video_url": media_url})
        else:
            params.update({"media_type": "IMAGE", "image_url": media_url})

        with self.client() as c:
            r = self.request(c, "POST", f"{GRAPH_URL}/{user}/threads", params=params)
            container_id = r.json().get("id")
            if not container_id:
                raise RemoteRejected("Threads did not return a media container id")

            if video:
                def fetch_status():
                    s = self.request(
                        c, "GET", f"{GRAPH_URL}/{container_id}",
                        params={"fields": "status", "access_token": credential.access_token},
                    )
                    return s.json().get("status")

                poll_status(fetch_status, success="FINISHED", pending=("IN_PROGRESS",), label="Threads media processing")

            r = self.request(
                c, "POST", f"{GRAPH_URL}/{user}/threads_publish",
                params={"creation_id": container_id, "access_token": credential.access_token},
            )
            thread_id = r.json().get("id")
        if not thread_id:
            raise RemoteRejected("Threads did not return a thread id")
        return PublishResult(platform_post_id=str(thread_id))

    def refresh(self, credential: Credential) -> RefreshedToken:
        with self.client() as c:
            r = self.request(
                c, "GET", f"{GRAPH_URL}/refresh_access_token",
                params={"grant_type": "th_refresh_token", "access_token": credential.access_token},
            )
        return RefreshedToken.from_oauth(r.json())
