from dataclasses import dataclass
from typing import Any, Mapping

from .scoring import round_reward
from .timer import round_duration


@dataclass(frozen=True)
class GameSettings:
    """Tunable game policy, read once from the Flask config."""

    max_players: int = 8
    countdown_from: int = 3
    timer_min_sec: int = 10
    timer_base_sec: int = 5
    timer_per_round_sec: int = 2
    round_reward_base: int = 10
    round_reward_step: int = 0
    reveal_base_ms: int = 600
    reveal_ms_per_color: int = 700
    round_intermission_sec: float = 2.0
    last_player_continues: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'GameSettings':
        defaults = cls()
        return cls(
            max_players=int(config.get('MAX_PLAYERS', defaults.max_players)),
            countdown_from=int(config.get('COUNTDOWN_FROM', defaults.countdown_from)),
            timer_min_sec=int(config.get('TIMER_MIN_SEC', defaults.timer_min_sec)),
            timer_base_sec=int(config.get('TIMER_BASE_SEC', defaults.timer_base_sec)),
            timer_per_round_sec=int(config.get('TIMER_PER_ROUND_SEC', defaults.timer_per_round_sec)),
            round_reward_base=int(config.get('ROUND_REWARD_BASE', defaults.round_reward_base)),
            round_reward_step=int(config.get('ROUND_REWARD_STEP', defaults.round_reward_step)),
            reveal_base_ms=int(config.get('REVEAL_BASE_MS', defaults.reveal_base_ms)),
            reveal_ms_per_color=int(config.get('REVEAL_MS_PER_COLOR', defaults.reveal_ms_per_color)),
            round_intermission_sec=float(config.get('ROUND_INTERMISSION_SEC', defaults.round_intermission_sec)),
            last_player_continues=bool(config.get('LAST_PLAYER_CONTINUES', defaults.last_player_continues)),
        )

    def round_seconds(self, round_number: int) -> int:
        return round_duration(round_number, self.timer_min_sec, self.timer_base_sec, self.timer_per_round_sec)

    def reward(self, round_number: int) -> int:
        return round_reward(round_number, self.round_reward_base, self.round_reward_step)

    def reveal_ms(self, sequence_length: int) -> int:
        return self.reveal_base_ms + self.reveal_ms_per_color * sequence_length
