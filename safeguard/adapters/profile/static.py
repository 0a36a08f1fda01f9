"""
Static profile store for SafeGuard.

The user profile and emergency contacts come from the add-on
configuration rather than from a document database.
"""

from typing import List
from safeguard.core.models import Contact, Profile
from safeguard.settings import ProfileConfig

class StaticProfileStore:
    """설정 기반 프로필 저장소"""

    def __init__(self, profile: Profile):
        self.profile = profile

    @classmethod
    def from_config(cls, cfg: ProfileConfig) -> "StaticProfileStore":
        contacts = [Contact(**c.model_dump()) for c in cfg.emergency_contacts]
        return cls(Profile(user_id=cfg.user_id, name=cfg.name, emergency_contacts=contacts))

    async def get_emergency_contacts(self) -> List[Contact]:
        return list(self.profile.emergency_contacts)

    async def get_current_user_profile(self) -> Profile:
        return self.profile
