import threading
import time
from collections import OrderedDict, deque
from collections.abc import Callable


class LoginRateLimiter:
    """
    Sliding-window limiter over failed sign-in attempts.

    Keeps the timestamps of the last `max_attempts` failures in a
    fixed-capacity ring buffer. Once the buffer is full and its oldest
    entry is still inside the window, further attempts are blocked until
    that entry ages out.

    Safe to share between threadpool workers. Advisory only: it lives in
    this process' memory and resets on restart. Real throttling belongs
    to the identity provider.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._attempts: deque[float] = deque(maxlen=max_attempts)

    def _recent(self, now: float) -> list[float]:
        with self._lock:
            return [t for t in self._attempts if now - t < self.window_seconds]

    def record(self) -> None:
        """Record one failed attempt."""
        now = self._clock()
        with self._lock:
            self._attempts.append(now)

    def reset(self) -> None:
        """Forget all attempts (call after a successful sign-in)."""
        with self._lock:
            self._attempts.clear()

    def is_blocked(self) -> bool:
        return len(self._recent(self._clock())) >= self.max_attempts

    def is_idle(self) -> bool:
        """No attempt inside the window; the limiter holds no state worth keeping."""
        return not self._recent(self._clock())

    def remaining_cooldown(self) -> float:
        """Seconds until the next attempt is allowed (0 when not blocked)."""
        now = self._clock()
        recent = self._recent(now)
        if len(recent) < self.max_attempts:
            return 0.0
        return max(0.0, recent[0] + self.window_seconds - now)

    def remaining_attempts(self) -> int:
        return max(0, self.max_attempts - len(self._recent(self._clock())))


class LoginThrottle:
    """
    One LoginRateLimiter per (normalized) email.

    At most `max_tracked` emails are kept. When the map is full, limiters
    with no attempt left in their window are dropped first, then the
    least recently used ones.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
        max_tracked: int = 10_000,
    ):
        if max_tracked < 1:
            raise ValueError("max_tracked must be >= 1")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.max_tracked = max_tracked
        self._clock = clock
        self._lock = threading.Lock()
        self._limiters: OrderedDict[str, LoginRateLimiter] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._limiters)

    def for_email(self, email: str) -> LoginRateLimiter:
        key = email.strip().lower()
        with self._lock:
            limiter = self._limiters.get(key)
            if limiter is not None:
                self._limiters.move_to_end(key)
                return limiter

            if len(self._limiters) >= self.max_tracked:
                self._evict()
            limiter = LoginRateLimiter(self.max_attempts, self.window_seconds, self._clock)
            self._limiters[key] = limiter
            return limiter

    def _evict(self) -> None:
        # Caller holds self._lock.
        for key in [k for k, limiter in self._limiters.items() if limiter.is_idle()]:
            del self._limiters[key]
        while len(self._limiters) >= self.max_tracked:
            self._limiters.popitem(last=False)
