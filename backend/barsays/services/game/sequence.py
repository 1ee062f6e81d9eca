import secrets
from typing import Callable, List, Optional, Sequence

RED = 'red'
BLUE = 'blue'
YELLOW = 'yellow'
GREEN = 'green'

COLORS = (RED, BLUE, YELLOW, GREEN)


def parse_color(value) -> Optional[str]:
    """Normalise a client-supplied color, or None if it is not one of ours."""
    if not isinstance(value, str):
        return None
    color = value.strip().lower()
    return color if color in COLORS else None


class SequenceGenerator:
    """Extends the round sequence by one server-chosen color.

    ``choose`` picks one element from a sequence; it defaults to a
    ``secrets.SystemRandom`` so clients cannot predict the next color.
    """

    def __init__(self, choose: Optional[Callable[[Sequence[str]], str]] = None):
        self._choose = choose or secrets.SystemRandom().choice

    def next(self, previous: Sequence[str]) -> List[str]:
        return list(previous) + [self._choose(COLORS)]
