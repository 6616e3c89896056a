"""Per-adapter request pacing and 429 recovery."""

import random
import threading
import time
from typing import Callable, Optional

from tunetransfer.errors import RateLimited
from tunetransfer.utils.logger import get_logger


logger = get_logger("tunetransfer.rate_governor")


class RateGovernor:
    """
    Throttle and retry wrapper applied to every call an adapter makes.

    Before each call the governor waits until ``min_interval`` seconds have
    passed since the previous call. When the wrapped call raises
    ``RateLimited`` it backs off (Retry-After hint or ``default_retry_after``,
    doubled per attempt, plus jitter) and retries up to ``max_retries`` times.
    Every 429 also widens ``min_interval`` for the rest of the run. The
    interval is never narrowed again.
    """

    DEFAULT_RETRY_AFTER = 5.0
    MAX_RETRIES = 3
    WIDEN_FACTOR = 1.5
    MIN_WIDEN_STEP = 0.1
    MAX_INTERVAL = 30.0
    JITTER = 0.5

    def __init__(
        self,
        name: str,
        min_interval: float = 0.5,
        max_retries: int = MAX_RETRIES,
        default_retry_after: float = DEFAULT_RETRY_AFTER,
        max_interval: float = MAX_INTERVAL,
        jitter: float = JITTER,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random
    ):
        """
        Initialize the governor.

        Args:
            name: Label used in log lines (usually the provider name)
            min_interval: Baseline seconds between two calls
            max_retries: Retries after the first attempt on HTTP 429
            default_retry_after: Back-off base when the server sends no hint
            max_interval: Upper bound for the widened interval
            jitter: Maximum random seconds added to each back-off
            sleep, clock, rng: Injectable time sources for tests
        """
        self.name = name
        self.max_retries = max_retries
        self.default_retry_after = default_retry_after
        self.max_interval = max_interval
        self.jitter = jitter
        self.rate_limit_hits = 0

        self._min_interval = min_interval
        self._last_request_at: Optional[float] = None
        self._lock = threading.Lock()
        self._sleep = sleep
        self._clock = clock
        self._rng = rng

    @property
    def min_interval(self) -> float:
        return self._min_interval

    def wait_turn(self) -> None:
        """Block until the minimum interval since the last call has elapsed."""
        with self._lock:
            now = self._clock()
            if self._last_request_at is not None:
                remaining = self._min_interval - (now - self._last_request_at)
                if remaining > 0:
                    self._sleep(remaining)
                    now = self._clock()
            self._last_request_at = now

    def call(self, func: Callable, *args, **kwargs):
        """
        Run ``func`` under pacing and 429 retry.

        Raises:
            RateLimited: If the retry budget is exhausted
            Any other exception from ``func`` unchanged
        """
        attempt = 0
        while True:
            self.wait_turn()
            try:
                return func(*args, **kwargs)
            except RateLimited as e:
                self.rate_limit_hits += 1
                self._widen()

                if attempt >= self.max_retries:
                    logger.error(
                        f"{self.name}: rate limit persisted after {self.max_retries} retries"
                    )
                    raise

                delay = self.backoff_delay(e.retry_after, attempt)
                logger.warning(
                    f"{self.name}: HTTP 429, retrying in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{self.max_retries}, "
                    f"interval now {self._min_interval:.2f}s)"
                )
                self._sleep(delay)
                attempt += 1

    def backoff_delay(self, retry_after: Optional[float], attempt: int) -> float:
        """Exponential back-off from the Retry-After hint, with jitter."""
        base = retry_after if retry_after is not None and retry_after > 0 else self.default_retry_after
        return base * (2 ** attempt) + self._rng() * self.jitter

    def _widen(self) -> None:
        with self._lock:
            widened = max(self._min_interval * self.WIDEN_FACTOR, self._min_interval + self.MIN_WIDEN_STEP)
            self._min_interval = max(self._min_interval, min(widened, self.max_interval))
