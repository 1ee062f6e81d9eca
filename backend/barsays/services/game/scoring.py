import math
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .registry import Player


def round_reward(round_number: int, base: int = 10, step: int = 0) -> int:
    """Points for a correct round: ``base + step * (round - 1)``.

    Non-negative and non-decreasing in round number for any
    non-negative ``base`` and ``step``.
    """
    return max(0, base + max(0, step) * (round_number - 1))


def _survival(player: Player) -> float:
    if not player.is_eliminated:
        return math.inf
    return player.eliminated_in_round or 0


def rank_players(players: Iterable[Player]) -> List[Player]:
    """Score descending; ties go to whoever was eliminated later, then join order."""
    return sorted(players, key=lambda p: (-p.score, -_survival(p), p.join_index))


def _score_entry(player: Player) -> dict:
    return {
        'playerId': player.id,
        'name': player.display_name,
        'avatar': player.avatar_id,
        'score': player.score,
        'isEliminated': player.is_eliminated,
    }


@dataclass(frozen=True)
class GameResult:
    winner: Optional[dict]
    final_scores: List[dict]
    rounds_played: int

    def to_dict(self) -> dict:
        return {
            'winner': dict(self.winner) if self.winner else None,
            'finalScores': [dict(s) for s in self.final_scores],
            'roundsPlayed': self.rounds_played,
        }


def build_game_result(players: Iterable[Player], rounds_played: int, winner: Optional[Player]) -> GameResult:
    ranked = rank_players(players)
    return GameResult(
        winner=_score_entry(winner) if winner is not None else None,
        final_scores=[_score_entry(p) for p in ranked],
        rounds_played=rounds_played,
    )
