# search_engine_lib/rate_limit.py
import asyncio
import time
from typing import Awaitable, Callable, Optional

from .core.logger import logger


class RateLimiter:
    """
    保证两次请求之间的最小间隔。

    间隔从上一次请求 *结束* （无论成功还是失败）开始计算。持有者在
    `async with limiter:` 块内发起请求，锁保证同一时刻只有一个请求在进行。
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "rate_limiter",
    ):
        if interval < 0:
            raise ValueError("interval 不能为负数")
        self.interval = interval
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_completed: Optional[float] = None

    @property
    def last_completed(self) -> Optional[float]:
        return self._last_completed

    def wait_time(self) -> float:
        """距离下一次允许请求还需等待的秒数。"""
        if self._last_completed is None:
            return 0.0
        elapsed = self._clock() - self._last_completed
        return max(0.0, self.interval - elapsed)

    async def acquire(self) -> None:
        await self._lock.acquire()
        try:
            wait = self.wait_time()
            if wait > 0:
                logger.debug(f"[{self.name}] 触发速率限制，等待 {wait:.3f} 秒")
                await self._sleep(wait)
        except BaseException:
            self._lock.release()
            raise

    def release(self) -> None:
        self._last_completed = self._clock()
        self._lock.release()

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    def reset(self) -> None:
        self._last_completed = None
