"""固定窗口限流器。

每个上游 Provider 在进程启动时创建一个 RateLimiter 实例，并以引用的形式
交给编排层，不使用模块级全局状态。

算法是固定窗口计数（不是滑动窗口，也不是令牌桶）：

    window_key = floor(now_ms / window_duration_ms)

在两个窗口交界处最多可能放行 2 × max 个请求。这里的目的是保护付费 API
配额，不是精确的 SLA 控制，调用方不应假设精确限流。
"""

import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from card_chat.infrastructure.logging.logger import logger


@dataclass
class RateWindow:
    """单个时间桶的计数。reset_time 为该桶结束时刻（epoch 秒）。"""

    window_key: int
    count: int
    reset_time: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    reset_time: Optional[float] = None

    @property
    def reset_at(self) -> Optional[datetime]:
        if self.reset_time is None:
            return None
        return datetime.fromtimestamp(self.reset_time, tz=timezone.utc)


class RateLimiter:
    """线程安全的固定窗口计数器。

    Args:
        name: 用于日志的名字（通常是 provider 名）。
        window_duration_ms: 窗口长度（毫秒）。
        max_requests_per_window: 每个窗口允许的最大请求数。
        clock: 返回当前 epoch 秒数的函数，测试时可注入假时钟。
    """

    def __init__(
        self,
        name: str,
        window_duration_ms: int,
        max_requests_per_window: int,
        clock: Callable[[], float] = time.time,
    ):
        if window_duration_ms <= 0:
            raise ValueError("window_duration_ms must be positive")
        if max_requests_per_window < 0:
            raise ValueError("max_requests_per_window must not be negative")
        self.name = name
        self.window_duration_ms = window_duration_ms
        self.max_requests_per_window = max_requests_per_window
        self._clock = clock
        self._windows: Dict[int, RateWindow] = {}
        self._lock = threading.Lock()

    def try_acquire(self) -> RateDecision:
        now_ms = self._clock() * 1000
        key = math.floor(now_ms / self.window_duration_ms)
        # 查找与自增必须在同一把锁内完成，避免两个请求同时抢到最后一个名额
        with self._lock:
            self._prune(key)
            window = self._windows.get(key)
            if window is None:
                window = RateWindow(
                    window_key=key,
                    count=0,
                    reset_time=(key + 1) * self.window_duration_ms / 1000,
                )
                self._windows[key] = window
            if window.count >= self.max_requests_per_window:
                decision = RateDecision(allowed=False, reset_time=window.reset_time)
            else:
                window.count += 1
                decision = RateDecision(allowed=True)

        if not decision.allowed:
            logger.warning(
                "rate_limit.denied",
                extra={"extra": {
                    "limiter": self.name,
                    "window_key": key,
                    "reset_time": decision.reset_at,
                }},
            )
        return decision

    def _prune(self, current_key: int) -> None:
        for key in [k for k in self._windows if k < current_key]:
            del self._windows[key]

    def active_windows(self) -> int:
        with self._lock:
            return len(self._windows)
