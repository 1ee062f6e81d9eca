import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .errors import StateConflictError, ValidationError
from .timer import RoundTimer

log = logging.getLogger(__name__)

SHOWING = 'showing'
INPUT = 'input'
RESOLVING = 'resolving'
DONE = 'done'

CORRECT = 'correct'
INCORRECT = 'incorrect'
TIMEOUT = 'timeout'
DISCONNECTED = 'disconnected'

# Reasons a round was decided
ALL_SUBMITTED = 'all_submitted'
TIMER_EXPIRED = 'timeout'
ABORTED = 'aborted'


@dataclass
class Submission:
    colors: List[str] = field(default_factory=list)
    outcome: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None


@dataclass(frozen=True)
class PressResult:
    player_id: str
    index: int
    color: str
    correct: bool
    complete: bool


@dataclass(frozen=True)
class RoundResult:
    round: int
    outcomes: Dict[str, str]
    scores: Dict[str, int]
    reason: str

    def to_dict(self) -> dict:
        return {
            'round': self.round,
            'outcomesByPlayer': dict(self.outcomes),
            'scoresByPlayer': dict(self.scores),
            'reason': self.reason,
        }


class RoundEngine:
    """Runs exactly one round: showing -> input -> resolving -> done.

    Each participant's submission is validated against the sequence one
    press at a time, touching only that participant's state. The round is
    decided once, by whichever of "everyone is terminal" or "timer expired"
    is observed first; the other is ignored.
    """

    def __init__(
        self,
        round_number: int,
        sequence: List[str],
        participants: Iterable[str],
        starting_scores: Optional[Dict[str, int]] = None,
        reward: int = 10,
        timer: Optional[RoundTimer] = None,
    ):
        self.round_number = round_number
        self.sequence = list(sequence)
        self.submissions: Dict[str, Submission] = {pid: Submission() for pid in participants}
        self.starting_scores = dict(starting_scores or {})
        self.reward = reward
        self.timer = timer or RoundTimer()
        self.timer.on_expire = self._on_timer_expired
        self.phase = SHOWING
        self.decision: Optional[str] = None
        self.result: Optional[RoundResult] = None

    @property
    def participants(self) -> List[str]:
        return list(self.submissions)

    @property
    def is_done(self) -> bool:
        return self.phase == DONE

    def submitted_players(self) -> List[str]:
        return [pid for pid, sub in self.submissions.items() if sub.is_terminal]

    def open_input(self, total_seconds: int) -> None:
        """Reveal complete: start the timer and accept presses."""
        if self.phase != SHOWING:
            raise StateConflictError('Sequence is not being shown')
        self.phase = INPUT
        self.timer.start(total_seconds)

    def press(self, player_id: str, color: str) -> PressResult:
        sub = self._open_submission(player_id)
        index = len(sub.colors)
        if index >= len(self.sequence):
            raise ValidationError('Sequence already complete, submit it')
        sub.colors.append(color)
        correct = self.sequence[index] == color
        if not correct:
            sub.outcome = INCORRECT
        return PressResult(
            player_id=player_id,
            index=index,
            color=color,
            correct=correct,
            complete=correct and len(sub.colors) == len(self.sequence),
        )

    def submit(self, player_id: str) -> None:
        sub = self._open_submission(player_id)
        if len(sub.colors) != len(self.sequence):
            raise ValidationError(
                f'Sequence incomplete ({len(sub.colors)}/{len(self.sequence)} colors)'
            )
        sub.outcome = CORRECT

    def drop(self, player_id: str) -> bool:
        """A participant disconnected. They no longer block resolution."""
        if self.decision is not None:
            return False
        sub = self.submissions.get(player_id)
        if sub is None or sub.outcome == INCORRECT:
            return False
        sub.outcome = DISCONNECTED
        return True

    def resolve_if_complete(self) -> Optional[RoundResult]:
        if self.decision is None and all(s.is_terminal for s in self.submissions.values()):
            return self._resolve(ALL_SUBMITTED)
        return None

    def tick(self) -> Optional[RoundResult]:
        """One elapsed second. Returns the result if this tick expired the round."""
        if self.phase != INPUT:
            raise StateConflictError('Input window is not open')
        self.timer.tick()
        return self.result if self.decision == TIMER_EXPIRED else None

    def expire(self) -> Optional[RoundResult]:
        return self._resolve(TIMER_EXPIRED)

    def abort(self) -> bool:
        """Finish the round as though it never happened."""
        if not self._decide(ABORTED):
            return False
        self.timer.cancel()
        self.phase = DONE
        log.info(f"[round-abort] round={self.round_number}")
        return True

    def _on_timer_expired(self) -> None:
        self._resolve(TIMER_EXPIRED)

    def _open_submission(self, player_id: str) -> Submission:
        if self.phase != INPUT or self.decision is not None:
            raise StateConflictError('Not accepting input right now')
        sub = self.submissions.get(player_id)
        if sub is None:
            raise StateConflictError('Not playing this round')
        if sub.is_terminal:
            raise StateConflictError('Already finished this round')
        return sub

    def _decide(self, reason: str) -> bool:
        if self.decision is not None:
            return False
        self.decision = reason
        return True

    def _resolve(self, reason: str) -> Optional[RoundResult]:
        if not self._decide(reason):
            return None
        self.phase = RESOLVING
        self.timer.cancel()

        outcomes: Dict[str, str] = {}
        scores: Dict[str, int] = {}
        for pid, sub in self.submissions.items():
            outcome = sub.outcome or TIMEOUT
            outcomes[pid] = outcome
            score = self.starting_scores.get(pid, 0)
            if outcome == CORRECT:
                score += self.reward
            scores[pid] = score

        self.result = RoundResult(round=self.round_number, outcomes=outcomes, scores=scores, reason=reason)
        self.phase = DONE
        log.info(f"[round-resolve] round={self.round_number} reason={reason} outcomes={outcomes}")
        return self.result
