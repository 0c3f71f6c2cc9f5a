import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Tuple, Type, TypeVar

from settings import RateLimitSettings, load_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SlidingWindowLimiter:
    """Token bucket pacing serial calls against the Admin API budget."""

    def __init__(
        self,
        rate_per_sec: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.rate = rate_per_sec
        self.capacity = burst
        self.tokens = float(burst)
        self.lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep
        self.last = clock()

    @contextmanager
    def __call__(self) -> Iterator[None]:
        with self.lock:
            now = self._clock()
            elapsed = now - self.last
            self.last = now
            self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
            if self.tokens < 1:
                needed = 1 - self.tokens
                self._sleep(needed / self.rate)
                self.tokens = 1
                self.last = self._clock()
            self.tokens -= 1
        yield


_limiters: Dict[str, SlidingWindowLimiter] = {}


def get_limiter(name: str, cfg: RateLimitSettings = None) -> SlidingWindowLimiter:
    cfg = cfg or load_settings().rate_limits
    key = f"{name}:{cfg.rate_per_sec}:{cfg.burst}"
    if key not in _limiters:
        _limiters[key] = SlidingWindowLimiter(cfg.rate_per_sec, cfg.burst)
    return _limiters[key]


def backoff_delay(attempt: int, base: float = 1.0) -> float:
    """Exponential delay after a failed attempt (0-based): 1, 2, 4, ..."""
    return base * (2 ** attempt)


def linear_delay(attempt: int, step: float) -> float:
    """Linear delay after a failed attempt (1-based): step, 2*step, ..."""
    return step * attempt


def retry_linear(
    fn: Callable[[], T],
    attempts: int,
    step: float,
    retry_on: Tuple[Type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    """Run fn up to `attempts` times, sleeping step*n between failures."""
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            if attempt >= attempts:
                raise
            delay = linear_delay(attempt, step)
            logger.warning("%s failed (attempt %d/%d): %s; retrying in %.1fs",
                           label, attempt, attempts, exc, delay)
            sleep(delay)
    raise ValueError("attempts must be >= 1")
