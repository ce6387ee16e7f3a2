# multipost/services/registry.py
from functools import lru_cache
from typing import Dict, Iterable, Optional

from multipost.errors import UnsupportedPlatform
from multipost.services.platforms.base import Capability
from multipost.services.platforms.facebook import FacebookCapability
from multipost.services.platforms.instagram import InstagramCapability
from multipost.services.platforms.linkedin import LinkedInCapability
from multipost.services.platforms.pinterest import PinterestCapability
from multipost.services.platforms.threads import ThreadsCapability
from multipost.services.platforms.tiktok import TikTokCapability
from multipost.services.platforms.twitter import TwitterCapability
from multipost.services.platforms.youtube import YouTubeCapability

class CapabilityRegistry:
    """Platform identifier -> Capability. Adding a platform is one entry here."""

    def __init__(self, capabilities: Iterable[Capability] = ()):
        self._by_platform: Dict[str, Capability] = {}
        for cap in capabilities:
            self.register(cap)

    def register(self, capability: Capability) -> None:
        self._by_platform[capability.platform.value] = capability

    def get(self, platform: str) -> Optional[Capability]:
        return self._by_platform.get(platform)

    def resolve(self, platform: str) -> Capability:
        cap = self.get(platform)
        if cap is None:
            raise UnsupportedPlatform(platform)
        return cap

    def platforms(self) -> list[str]:
        return sorted(self._by_platform)

    def __contains__(self, platform: str) -> bool:
        return platform in self._by_platform

def build_default_registry() -> CapabilityRegistry:
    return CapabilityRegistry([
        TikTokCapability(),
        InstagramCapability(),
        YouTubeCapability(),
        TwitterCapability(),
        FacebookCapability(),
        LinkedInCapability(),
        ThreadsCapability(),
        PinterestCapability(),
    ])

@lru_cache()
def get_registry() -> CapabilityRegistry:
    return build_default_registry()
