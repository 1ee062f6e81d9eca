from typing import Callable, Optional

YELLOW_AT_SEC = 10
RED_AT_SEC = 5


def timer_color(seconds_remaining: int) -> str:
    if seconds_remaining > YELLOW_AT_SEC:
        return 'green'
    if seconds_remaining > RED_AT_SEC:
        return 'yellow'
    return 'red'


def round_duration(round_number: int, min_sec: int = 10, base_sec: int = 5, per_round_sec: int = 2) -> int:
    """Seconds allowed for the input window of ``round_number``."""
    return max(min_sec, base_sec + round_number * per_round_sec)


class RoundTimer:
    """Countdown for one input window.

    The scheduling substrate calls ``tick()`` once per elapsed second.
    ``on_expire`` fires exactly once, when the count reaches zero, unless
    the timer was cancelled first. After expiry or cancel every call is a
    no-op.
    """

    def __init__(self, on_expire: Optional[Callable[[], None]] = None):
        self.on_expire = on_expire
        self.total_seconds = 0
        self.seconds_remaining = 0
        self.running = False
        self.expired = False
        self.cancelled = False

    @property
    def timer_color(self) -> str:
        return timer_color(self.seconds_remaining)

    @property
    def is_pulsing(self) -> bool:
        return self.timer_color == 'red'

    def start(self, total_seconds: int) -> None:
        if total_seconds <= 0:
            raise ValueError('total_seconds must be positive')
        self.total_seconds = int(total_seconds)
        self.seconds_remaining = int(total_seconds)
        self.running = True
        self.expired = False
        self.cancelled = False

    def tick(self) -> bool:
        """Advance one second. Returns False if the timer was not running."""
        if not self.running:
            return False
        self.seconds_remaining = max(0, self.seconds_remaining - 1)
        if self.seconds_remaining == 0:
            self.running = False
            self.expired = True
            if self.on_expire is not None:
                self.on_expire()
        return True

    def cancel(self) -> None:
        if self.running:
            self.running = False
            self.cancelled = True

    def to_dict(self) -> dict:
        return {
            'secondsRemaining': self.seconds_remaining,
            'totalSeconds': self.total_seconds,
            'timerColor': self.timer_color,
            'isPulsing': self.is_pulsing,
        }
