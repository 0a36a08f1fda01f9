"""
Retry utilities for SafeGuard.

This module provides retry and backoff utilities
for reliable operation over intermittent connectivity.
"""

import asyncio
import random
from typing import Callable, Awaitable, TypeVar

T = TypeVar('T')

def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    지수 백오프 지연 시간을 계산합니다.

    Args:
        attempt: 현재 시도 횟수 (1부터 시작)
        base: 기본 지연 시간 (초)
        max_delay: 최대 지연 시간 (초)

    Returns:
        지연 시간 (초): base, 2*base, 4*base ... 최대 max_delay
    """
    # 큰 attempt 값에서 2 ** n 이 불필요하게 커지지 않도록 지수를 제한
    exponent = min(max(0, attempt - 1), 32)
    return min(max_delay, base * (2 ** exponent))

async def exponential_backoff(attempt: int, base: float, max_delay: float) -> None:
    """
    지수 백오프 지연을 수행합니다.

    Args:
        attempt: 현재 시도 횟수 (1부터 시작)
        base: 기본 지연 시간 (초)
        max_delay: 최대 지연 시간 (초)
    """
    await asyncio.sleep(backoff_delay(attempt, base, max_delay))

async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    jitter: bool = True
) -> T:
    """
    지수 백오프와 함께 함수를 재시도합니다.

    Args:
        func: 재시도할 비동기 함수
        max_retries: 최대 재시도 횟수
        base_delay: 기본 지연 시간 (초)
        max_delay: 최대 지연 시간 (초)
        jitter: 지터 적용 여부

    Returns:
        함수 실행 결과

    Raises:
        마지막 시도에서 발생한 예외
    """
    last_exception = None

    for attempt in range(1, max_retries + 2):  # 최초 1회 + max_retries
        try:
            return await func()
        except Exception as e:
            last_exception = e

            if attempt > max_retries:
                break

            delay = backoff_delay(attempt, base_delay, max_delay)

            # 지터 적용
            if jitter:
                delay = delay * (0.5 + random.random() * 0.5)

            await asyncio.sleep(delay)

    raise last_exception
