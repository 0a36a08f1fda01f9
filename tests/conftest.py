"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import pytest
import asyncio
import os
import tempfile
from safeguard.settings import Settings
from safeguard.core.models import Contact
from safeguard.common.scheduler import ManualScheduler
from safeguard.adapters.storage.memory import InMemoryTaskStore
from safeguard.services.zone_cache import StaticZoneProvider
from fakes import T0, square


@pytest.fixture
def temp_db_path():
    """임시 데이터베이스 파일 경로"""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        temp_path = f.name
    yield temp_path
    # 테스트 후 파일 정리
    if os.path.exists(temp_path):
        os.unlink(temp_path)


@pytest.fixture
def sample_settings():
    """테스트용 설정"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    settings.observability.http_port = 8080
    return settings


@pytest.fixture
def scheduler():
    """수동 스케줄러 (T0에서 시작)"""
    return ManualScheduler(start=T0)


@pytest.fixture
def memory_store():
    """메모리 작업 저장소"""
    return InMemoryTaskStore()


@pytest.fixture
def sample_zones():
    """safe 구역 z1 안에 caution 구역 c1, 그 안에 restricted 구역 r1"""
    return [
        square("z1", "safe", 0.0, 0.0, 10.0),
        square("c1", "caution", 2.0, 2.0, 4.0),
        square("r1", "restricted", 3.0, 3.0, 1.0),
    ]


@pytest.fixture
def zone_provider(sample_zones):
    """고정 구역 제공자"""
    return StaticZoneProvider(sample_zones)


@pytest.fixture
def contacts():
    """긴급 연락처 (두 번째가 주 연락처)"""
    return [
        Contact(id="c2", name="Sam", phone_number="+100", relationship="friend"),
        Contact(id="c1", name="Jo", phone_number="+200", relationship="parent", is_primary=True),
    ]


# pytest 설정
def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line(
        "markers", "slow: 느린 테스트 마커"
    )
    config.addinivalue_line(
        "markers", "integration: 통합 테스트 마커"
    )


def pytest_collection_modifyitems(config, items):
    """테스트 아이템 수정"""
    for item in items:
        # 비동기 테스트에 asyncio 마커 추가
        if asyncio.iscoroutinefunction(getattr(item, "function", None)):
            item.add_marker(pytest.mark.asyncio)
