"""
Services 모듈 테스트

이 모듈은 구역 스냅샷 캐시와 현재 위치 폴백 포트를 테스트합니다.
"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock
from safeguard.services.zone_cache import ZoneCache, StaticZoneProvider
from safeguard.services.location import FallbackLocationSource
from safeguard.adapters.profile.static import StaticProfileStore
from safeguard.settings import ProfileConfig, ContactConfig
from fakes import T0, FakeLocationSource, point, square


class Clock:
    def __init__(self):
        self.now = T0

    def __call__(self):
        return self.now


def source(zones=None, error=None):
    mock = AsyncMock()
    if error is not None:
        mock.fetch_zones.side_effect = error
    else:
        mock.fetch_zones.return_value = zones
    return mock


class TestZoneCache:
    """구역 스냅샷 캐시 테스트"""

    @pytest.mark.asyncio
    async def test_primary_refresh_saves_snapshot(self, sample_zones):
        primary = source(sample_zones)
        fallback = source([])
        cache = ZoneCache(primary, fallback)

        assert await cache.refresh() is True
        assert cache.current() == tuple(sample_zones)
        assert cache.source == "primary"
        fallback.save_zones.assert_awaited_once_with(sample_zones)
        fallback.fetch_zones.assert_not_called()

    @pytest.mark.asyncio
    async def test_fallback_when_primary_fails(self, sample_zones):
        cache = ZoneCache(source(error=OSError("offline")), source(sample_zones[:1]))
        assert await cache.refresh() is True
        assert cache.source == "fallback"
        assert [z.id for z in cache.current()] == ["z1"]

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_snapshot(self, sample_zones):
        """갱신이 모두 실패하면 기존 스냅샷을 유지"""
        primary = source(sample_zones)
        fallback = source(error=FileNotFoundError("missing"))
        cache = ZoneCache(primary, fallback)
        await cache.refresh()

        primary.fetch_zones.side_effect = OSError("offline")
        assert await cache.refresh() is False
        assert cache.current() == tuple(sample_zones)

    @pytest.mark.asyncio
    async def test_snapshot_save_failure_is_not_fatal(self, sample_zones):
        fallback = source([])
        fallback.save_zones.side_effect = OSError("read-only")
        cache = ZoneCache(source(sample_zones), fallback)
        assert await cache.refresh() is True

    @pytest.mark.asyncio
    async def test_no_sources(self):
        cache = ZoneCache()
        assert await cache.refresh() is False
        assert cache.current() == ()

    def test_readers_keep_their_snapshot(self, sample_zones):
        """교체 전 읽은 스냅샷은 변하지 않음"""
        cache = ZoneCache()
        cache.replace(sample_zones)
        before = cache.current()
        cache.replace([square("new", "safe", 0, 0, 1)])
        assert [z.id for z in before] == ["z1", "c1", "r1"]
        assert [z.id for z in cache.current()] == ["new"]

    def test_is_stale(self, sample_zones):
        clock = Clock()
        cache = ZoneCache(max_age_sec=60, clock=clock)
        assert cache.is_stale
        cache.replace(sample_zones)
        assert not cache.is_stale
        clock.now = T0 + timedelta(seconds=61)
        assert cache.is_stale

    def test_nearby(self, sample_zones):
        cache = ZoneCache()
        cache.replace(sample_zones)
        assert [z.id for z in cache.nearby(point(3.5, 3.5), 1_000)] == ["r1"]

    def test_static_provider(self, sample_zones):
        assert StaticZoneProvider(sample_zones).current() == tuple(sample_zones)


class TestFallbackLocationSource:
    """현재 위치 폴백 테스트"""

    @pytest.mark.asyncio
    async def test_first_known_location_wins(self):
        broken = AsyncMock()
        broken.get_current_location.side_effect = RuntimeError("boom")
        sources = FallbackLocationSource([broken, FakeLocationSource(None)])
        sources.add(FakeLocationSource(point(1, 1)))
        sources.add(FakeLocationSource(point(2, 2)))

        location = await sources.get_current_location()
        assert location.latitude == 1

    @pytest.mark.asyncio
    async def test_unknown(self):
        assert await FallbackLocationSource().get_current_location() is None


class TestStaticProfileStore:
    """설정 기반 프로필 저장소 테스트"""

    @pytest.mark.asyncio
    async def test_from_config(self):
        cfg = ProfileConfig(user_id="u9", name="Kim", emergency_contacts=[
            ContactConfig(id="1", name="Lee", phone_number="+82", is_primary=True),
        ])
        store = StaticProfileStore.from_config(cfg)

        profile = await store.get_current_user_profile()
        assert (profile.user_id, profile.name) == ("u9", "Kim")
        contacts = await store.get_emergency_contacts()
        assert contacts[0].is_primary is True

        contacts.clear()
        assert len(await store.get_emergency_contacts()) == 1
