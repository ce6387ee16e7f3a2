# multipost/services/platforms/twitter.py
import base64
from typing import List

import httpx

from multipost.config import settings
from multipost.db.models import Platform
from multipost.errors import RemoteRejected
from multipost.services.platforms.base import (
    AccountIdentity, Capability, Credential, PostPayload, PublishResult, RefreshMode, RefreshedToken,
    is_video_url, plan_chunks, use_chunked_upload,
)

TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
TWEETS_URL = "https://api.twitter.com/2/tweets"
UPLOAD_URL = "https://upload.twitter.com/1.1/media/upload.json"

def _basic_auth() -> str:
    raw = f"{settings.twitter_client_id}:{settings.twitter_client_secret}".encode()
    return "Basic " + base64.b64encode(raw).decode()

class TwitterCapability(Capability):
    platform = Platform.TWITTER
    refresh_mode = RefreshMode.REFRESH_TOKEN

    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        auth = {"Authorization": f"Bearer {credential.access_token}"}
        body: dict = {"text": post.content}
        with self.client() as c:
            if post.first_media:
                body["media"] = {"media_ids": [self.upload_media(c, auth, post.first_media)]}
            r = self.request(c, "POST", TWEETS_URL, headers={**auth, "Content-Type": "application/json"}, json=body)
            tweet_id = (r.json().get("data") or {}).get("id")
        if not tweet_id:
            raise RemoteRejected("Twitter did not return a tweet id")
        return PublishResult(platform_post_id=tweet_id)

    def upload_media(self, c: httpx.Client, auth: dict, media_url: str) -> str:
        media = self.download(c, media_url)
        form_headers = {**auth, "Content-Type": "application/x-www-form-urlencoded"}
        if not use_chunked_upload(len(media)):
            r = self.request(c, "POST", UPLOAD_URL, headers=form_headers,
                             data={"media_data": base64.b64encode(media).decode()})
            return self._media_id(r)
        return self._chunked_upload(c, form_headers, media, "video/mp4" if is_video_url(media_url) else "image/jpeg")

    def _chunked_upload(self, c: httpx.Client, headers: dict, media: bytes, media_type: str) -> str:
        r = self.request(c, "POST", UPLOAD_URL, headers=headers, data={
            "command": "INIT", "total_bytes": str(len(media)), "media_type": media_type,
        })
        media_id = self._media_id(r)
        segments: List[tuple] = plan_chunks(len(media))
        for index, (start, end) in enumerate(segments):
            self.request(c, "POST", UPLOAD_URL, headers=headers, data={
                "command": "APPEND",
                "media_id": media_id,
                "segment_index": str(index),
                "media_data": base64.b64encode(media[start:end]).decode(),
            })
        self.request(c, "POST", UPLOAD_URL, headers=headers, data={"command": "FINALIZE", "media_id": media_id})
        return media_id

    @staticmethod
    def _media_id(r: httpx.Response) -> str:
        media_id = r.json().get("media_id_string")
        if not media_id:
            raise RemoteRejected("Twitter media upload returned no media id")
        return media_id

    def refresh(self, credential: Credential) -> RefreshedToken:
        with self.client() as c:
            r = self.request(
                c, "POST", TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": credential.refresh_token,
                    "client_id": settings.twitter_client_id,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded", "Authorization": _basic_auth()},
            )
        return RefreshedToken.from_oauth(r.json())
