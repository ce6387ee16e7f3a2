# multipost/services/platforms/linkedin.py
import httpx

from multipost.config import settings
from multipost.db.models import Platform
from multipost.errors import RemoteRejected
from multipost.services.platforms.base import (
    AccountIdentity, Capability, Credential, PostPayload, PublishResult, RefreshMode, RefreshedToken,
    is_video_url,
)

TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
UGC_URL = "https://api.linkedin.com/v2/ugcPosts"
REGISTER_URL = "https://api.linkedin.com/v2/assets?action=registerUpload"

IMAGE_RECIPE = "urn:li:digitalmediaRecipe:feedshare-image"
VIDEO_RECIPE = "urn:li:digitalmediaRecipe:feedshare-video"

def _share_payload(author_urn: str, text: str, category: str = "NONE", asset_urn: str | None = None) -> dict:
    content = {"shareCommentary": {"text": text}, "shareMediaCategory": category}
    if asset_urn:
        content["media"] = [{"status": "READY", "media": asset_urn}]
    return {
        "author": author_urn,
        "lifecycleState": "PUBLISHED",
        "specificContent": {"com.linkedin.ugc.ShareContent": content},
        "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
    }

class LinkedInCapability(Capability):
    platform = Platform.LINKEDIN
    refresh_mode = RefreshMode.REFRESH_TOKEN

    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        author_urn = f"urn:li:person:{account.platform_user_id}"
        headers = {
            "Authorization": f"Bearer {credential.access_token}",
            "Content-Type": "application/json",
            "X-Restli-Protocol-Version": "2.0.0",
        }
        with self.client() as c:
            if post.first_media:
                video = is_video_url(post.first_media)
                asset_urn = self._upload_asset(c, credential, author_urn, post.first_media, video)
                payload = _share_payload(author_urn, post.content, "VIDEO" if video else "IMAGE", asset_urn)
            else:
                payload = _share_payload(author_urn, post.content)
            r = self.request(c, "POST", UGC_URL, headers=headers, json=payload)

        post_urn = r.headers.get("x-restli-id") or _json_id(r)
        if not post_urn:
            raise RemoteRejected("LinkedIn did not return a post id")
        return PublishResult(platform_post_id=post_urn)

    def _upload_asset(self, c: httpx.Client, credential: Credential, author_urn: str, media_url: str, video: bool) -> str:
        reg = self.request(
            c, "POST", REGISTER_URL,
            headers={"Authorization": f"Bearer {credential.access_token}", "Content-Type": "application/json"},
            json={
                "registerUploadRequest": {
                    "owner": author_urn,
                    "recipes": [VIDEO_RECIPE if video else IMAGE_RECIPE],
                    "serviceRelationships": [{
                        "relationshipType": "OWNER",
                        "identifier": "urn:li:userGeneratedContent",
                    }],
                }
            },
        ).json()
        try:
            value = reg["value"]
            upload_url = value["uploadMechanism"]["com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"]["uploadUrl"]
            asset_urn = value["asset"]
        except (KeyError, TypeError):
            raise RemoteRejected("LinkedIn upload registration returned no upload URL")

        media = self.download(c, media_url)
        self.request(
            c, "PUT", upload_url,
            headers={
                "Authorization": f"Bearer {credential.access_token}",
                "Content-Type": "application/octet-stream",
            },
            content=media,
        )
        return asset_urn

    def refresh(self, credential: Credential) -> RefreshedToken:
        with self.client() as c:
            r = self.request(
                c, "POST", TOKEN_URL,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": credential.refresh_token,
                    "client_id": settings.linkedin_client_id,
                    "client_secret": settings.linkedin_client_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        return RefreshedToken.from_oauth(r.json())

def _json_id(r: httpx.Response) -> str | None:
    try:
        return r.json().get("id")
    except ValueError:
        return None
