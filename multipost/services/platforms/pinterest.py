# multipost/services/platforms/pinterest.py
import base64

from multipost.config import settings
from multipost.db.models import Platform
from multipost.errors import MissingDestination, MissingMedia, RemoteRejected
from multipost.services.platforms.base import (
    AccountIdentity, Capability, Credential, PostPayload, PublishResult, RefreshMode, RefreshedToken,
    is_video_url, require_media,
)

API_URL = "https://api.pinterest.com/v5"
TOKEN_URL = f"{API_URL}/oauth/token"

def _basic_auth() -> str:
    raw = f"{settings.pinterest_app_id}:{settings.pinterest_app_secret}".encode()
    return "Basic " + base64.b64encode(raw).decode()

class PinterestCapability(Capability):
    """Pins are image-only here and must name a board via target metadata ``board_id``."""

    platform = Platform.PINTEREST
    refresh_mode = RefreshMode.REFRESH_TOKEN

    def publish(self, credential: Credential, account: AccountIdentity, post: PostPayload) -> PublishResult:
        board_id = post.metadata.get("board_id")
        if not board_id:
            raise MissingDestination("Pinterest requires a board to be selected")
        image_url = require_media(post, "Pinterest requires an image")
        if is_video_url(image_url):
            raise MissingMedia("Pinterest requires an image")

        pin = {
            "board_id": board_id,
            "title": str(post.metadata.get("title") or post.content)[:100],
            "description": post.content[:500],
            "media_source": {"source_type": "image_url", "url": image_url},
        }
        if post.metadata.get("link"):
            pin["link"] = post.metadata["link"]

        with self.client() as c:
            r = self.request(
                c, "POST", f"{API_URL}/pins",
                headers={"Authorization": f"Bearer {credential.access_token}", "Content-Type": "application/json"},
                json=pin,
            )
        pin_id = r.json().get("id")
        if not pin_id:
            raise RemoteRejected("Pinterest did not return a pin id")
        return PublishResult(platform_post_id=str(pin_id))

    def refresh(self, credential: Credential) -> RefreshedToken:
        with self.client() as c:
            r = self.request(
                c, "POST", TOKEN_URL,
                data={"grant_type": "refresh_token", "refresh_token": credential.refresh_token},
                headers={"Content-Type": "application/x-www-form-urlencoded", "Authorization": _basic_auth()},
            )
        return RefreshedToken.from_oauth(r.json())
