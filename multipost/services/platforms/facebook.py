# multipost/services/platforms/facebook.py
from multipost.config import settings
from multipost.db.models import Platform
from multipost.errors import RemoteRejected
from multipost.services.platforms.base import (
    AccountIdentity, Capability, Credential, PostPayload, PublishResult, RefreshMode, RefreshedToken,
    is_video_url,
)

GRAPH_URL = "https://graph.facebook.com/v18.0"
TOKEN_URL = f"{GRAPH_URL}/oauth/access_token"

class FacebookCapability(Capability):
    # the stored access token is the page token and platform_user_id the page id
    platform = Platform.FACEBOOK
    refresh_mode = RefreshMode.ACCESS_TOKEN

    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        page = account.platform_user_id
        media_url = post.first_media
        if not media_url:
            edge, params = "feed", {"message": post.content}
        elif is_video_url(media_url):
            edge, params = "videos", {"file_url": media_url, "description": post.content}
        else:
            edge, params = "photos", {"url": media_url, "message": post.content}
        params["access_token"] = credential.access_token

        with self.client() as c:
            r = self.request(c, "POST", f"{GRAPH_URL}/{page}/{edge}", params=params)
        body = r.json()
        # photos answer with both the photo id and the feed story id; the story is the post
        post_id = body.get("post_id") or body.get("id")
        if not post_id:
            raise RemoteRejected("Facebook did not return a post id")
        return PublishResult(platform_post_id=str(post_id))

    def refresh(self, credential: Credential) -> RefreshedToken:
        with self.client() as c:
            r = self.request(
                c, "GET", TOKEN_URL,
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": settings.facebook_app_id,
                    "client_secret": settings.facebook_app_secret,
                    "fb_exchange_token": credential.access_token,
                },
            )
        return RefreshedToken.from_oauth(r.json())
