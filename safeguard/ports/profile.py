"""
Profile store port interface.
"""

from typing import List, Protocol
from safeguard.core.models import Contact, Profile

class ProfileStorePort(Protocol):
    """사용자 프로필 저장소 포트"""

    async def get_emergency_contacts(self) -> List[Contact]:
        """긴급 연락처 목록을 반환합니다."""
        ...

    async def get_current_user_profile(self) -> Profile:
        """현재 사용자 프로필을 반환합니다."""
        ...
