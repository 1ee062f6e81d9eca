import logging
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from .errors import PermissionDeniedError, StateConflictError, ValidationError
from .registry import Player, PlayerIdentity, PlayerRegistry
from .round_engine import CORRECT, DISCONNECTED, INPUT, SHOWING, RoundEngine, RoundResult
from .scoring import GameResult, build_game_result
from .sequence import SequenceGenerator, parse_color
from .settings import GameSettings

log = logging.getLogger(__name__)

WAITING = 'waiting'
COUNTDOWN = 'countdown'
ACTIVE = 'active'
GAME_OVER = 'game_over'

# Clock events the scheduler delivers back to the session
CLOCK_COUNTDOWN = 'countdown'
CLOCK_REVEAL = 'reveal'
CLOCK_TIMER = 'timer'
CLOCK_NEXT_ROUND = 'next_round'

MIN_NAME_LEN = 3
MAX_NAME_LEN = 12
MAX_AVATAR_LEN = 16


@dataclass(frozen=True)
class Outbound:
    """One message for the transport. ``to`` is a player id, or None for the whole room."""
    event: str
    payload: dict
    to: Optional[str] = None


@dataclass(frozen=True)
class ClockRequest:
    kind: str
    delay: float
    epoch: int


def validate_profile(display_name, avatar_id) -> Tuple[str, str]:
    """Cleaned (display name, avatar id) as chosen on the join screen."""
    name = display_name.strip() if isinstance(display_name, str) else ''
    if not MIN_NAME_LEN <= len(name) <= MAX_NAME_LEN:
        raise ValidationError(f'Display name must be {MIN_NAME_LEN}-{MAX_NAME_LEN} characters')
    avatar = str(avatar_id).strip() if avatar_id is not None else ''
    if not avatar:
        raise ValidationError('avatarId is required')
    if len(avatar) > MAX_AVATAR_LEN:
        raise ValidationError(f'avatarId must be at most {MAX_AVATAR_LEN} characters')
    return name, avatar


def validate_identity(player_id, display_name, avatar_id) -> PlayerIdentity:
    if not isinstance(player_id, str) or not player_id.strip():
        raise ValidationError('playerId is required')
    name, avatar = validate_profile(display_name, avatar_id)
    return PlayerIdentity(player_id=player_id.strip(), display_name=name, avatar_id=avatar)


class GameSession:
    """Authoritative state machine for one room.

    waiting -> countdown -> active (round loop) -> game_over, and back to
    waiting on restart. Every mutation queues Outbound messages and clock
    requests; the owner drains them after each step. Clock events carry
    the epoch they were requested in, and anything from an older epoch is
    rejected as stale.
    """

    def __init__(self, code: str, settings: Optional[GameSettings] = None,
                 generator: Optional[SequenceGenerator] = None):
        self.code = code
        self.settings = settings or GameSettings()
        self.generator = generator or SequenceGenerator()
        self.registry = PlayerRegistry(max_players=self.settings.max_players)
        self.status = WAITING
        self.round_number = 0
        self.sequence: List[str] = []
        self.engine: Optional[RoundEngine] = None
        self.solo = False
        # Players seated when the game started; nobody else enters the round loop
        self._roster: Set[str] = set()
        self.countdown_value: Optional[int] = None
        self.result: Optional[GameResult] = None
        self.epoch = 0
        self._left: Set[str] = set()
        self._outbox: List[Outbound] = []
        self._clock: List[ClockRequest] = []

    # ---- outbound ----

    def drain(self) -> Tuple[List[Outbound], List[ClockRequest]]:
        messages, self._outbox = self._outbox, []
        requests, self._clock = self._clock, []
        return messages, requests

    def _emit(self, event: str, payload: dict, to: Optional[str] = None) -> None:
        self._outbox.append(Outbound(event=event, payload=payload, to=to))

    def _schedule(self, kind: str, delay: float) -> None:
        self._clock.append(ClockRequest(kind=kind, delay=delay, epoch=self.epoch))

    def _broadcast_state(self) -> None:
        self._emit('room_state_update', self.snapshot())

    @property
    def is_empty(self) -> bool:
        return not self.registry.connected_players

    def snapshot(self) -> dict:
        engine = self.engine
        return {
            'gameCode': self.code,
            'status': self.status,
            'isSolo': self.solo,
            'players': self.registry.to_list(),
            'round': self.round_number,
            'sequence': list(self.sequence),
            'phase': engine.phase if engine else None,
            'countdown': self.countdown_value,
            'timer': engine.timer.to_dict() if engine and engine.phase == INPUT else None,
            'submittedPlayers': engine.submitted_players() if engine else [],
            'result': self.result.to_dict() if self.result else None,
        }

    # ---- intents ----

    def join(self, identity: PlayerIdentity) -> Player:
        if identity.player_id not in self.registry and self.status != WAITING:
            raise ValidationError('Game already in progress')
        player = self.registry.add_player(identity)
        self._left.discard(player.id)
        log.info(f"[join] room={self.code} player={player.id} host={player.is_host}")
        self._emit('room_state', self.snapshot(), to=player.id)
        self._emit('player_joined', player.to_dict())
        self._broadcast_state()
        return player

    def start(self, player_id: str) -> None:
        player = self._require_member(player_id)
        if self.status != WAITING:
            raise StateConflictError('Game already started')
        connected = self.registry.connected_players
        if not player.is_host and len(connected) != 1:
            raise PermissionDeniedError('Only the host can start the game')

        self.registry.reset_all()
        self.solo = len(connected) == 1
        self._roster = {p.id for p in connected}
        self.round_number = 0
        self.sequence = []
        self.engine = None
        self.result = None
        self.status = COUNTDOWN
        self.countdown_value = self.settings.countdown_from
        self.epoch += 1
        log.info(f"[start] room={self.code} players={len(connected)} solo={self.solo}")
        self._emit('countdown', {'count': self.countdown_value})
        self._broadcast_state()
        self._schedule(CLOCK_COUNTDOWN, 1.0)

    def submit_color(self, player_id: str, color) -> None:
        parsed = parse_color(color)
        if parsed is None:
            raise ValidationError(f'Unknown color: {color!r}')
        engine = self._require_round()
        press = engine.press(player_id, parsed)
        self._emit('color_accepted', {
            'round': self.round_number,
            'index': press.index,
            'color': press.color,
            'correct': press.correct,
            'complete': press.complete,
        }, to=player_id)
        if not press.correct:
            self._emit('player_submitted', {'playerId': player_id, 'round': self.round_number})
            self._resolve_if_complete()

    def submit_sequence(self, player_id: str) -> None:
        engine = self._require_round()
        engine.submit(player_id)
        self._emit('player_submitted', {'playerId': player_id, 'round': self.round_number})
        self._resolve_if_complete()

    def restart(self, player_id: str) -> None:
        player = self._require_member(player_id)
        if not player.is_host:
            raise PermissionDeniedError('Only the host can restart the game')
        if self.status == WAITING:
            raise StateConflictError('Game has not started')

        if self.engine is not None and not self.engine.is_done:
            self.engine.abort()
        for pid in self._left:
            self.registry.purge(pid)
        self._left.clear()
        self.registry.reset_all()
        self.status = WAITING
        self.round_number = 0
        self.sequence = []
        self.engine = None
        self.solo = False
        self._roster = set()
        self.countdown_value = None
        self.result = None
        self.epoch += 1
        log.info(f"[restart] room={self.code} by={player_id}")
        self._emit('game_restarted', {'gameCode': self.code})
        self._broadcast_state()

    def leave(self, player_id: str) -> None:
        """Explicit leave. The seat is freed once the room is back in waiting."""
        if player_id not in self.registry:
            raise StateConflictError('Not in this room')
        if self.status == WAITING:
            self.registry.purge(player_id)
            log.info(f"[leave] room={self.code} player={player_id}")
            self._emit('player_left', {'playerId': player_id})
            self._broadcast_state()
            return
        self._left.add(player_id)
        self.disconnect(player_id)

    def disconnect(self, player_id: str) -> None:
        player = self.registry.remove_player(player_id)
        if player is None:
            raise StateConflictError('Not connected')
        log.info(f"[disconnect] room={self.code} player={player_id} status={self.status}")
        self._emit('player_left', {'playerId': player_id})
        if self.engine is not None and self.engine.drop(player_id):
            self._resolve_if_complete()
        elif self._between_rounds() and not self.solo and player_id in self._roster:
            self._eliminate_absent(player)
        self._broadcast_state()

    # ---- clock events ----

    def on_clock(self, kind: str, epoch: int) -> None:
        if epoch != self.epoch:
            raise StateConflictError(f'Stale {kind} clock event')
        if kind == CLOCK_COUNTDOWN:
            self._countdown_tick()
        elif kind == CLOCK_REVEAL:
            self.reveal_complete()
        elif kind == CLOCK_TIMER:
            self._timer_tick()
        elif kind == CLOCK_NEXT_ROUND:
            self._next_round()
        else:
            raise ValidationError(f'Unknown clock event {kind}')

    def reveal_complete(self) -> None:
        """The sequence has been shown; open the input window."""
        engine = self.engine
        if self.status != ACTIVE or engine is None or engine.phase != SHOWING:
            raise StateConflictError('No sequence is being shown')
        seconds = self.settings.round_seconds(self.round_number)
        engine.open_input(seconds)
        self.epoch += 1
        log.info(f"[timer-set] room={self.code} round={self.round_number} duration={seconds}s")
        self._emit('input_phase', {'round': self.round_number, **engine.timer.to_dict()})
        self._schedule(CLOCK_TIMER, 1.0)

    def _countdown_tick(self) -> None:
        if self.status != COUNTDOWN:
            raise StateConflictError('Not counting down')
        self.countdown_value -= 1
        self._emit('countdown', {'count': self.countdown_value})
        if self.countdown_value > 0:
            self._schedule(CLOCK_COUNTDOWN, 1.0)
            return
        self.status = ACTIVE
        self.countdown_value = None
        self._broadcast_state()
        self._start_round()

    def _timer_tick(self) -> None:
        engine = self.engine
        if self.status != ACTIVE or engine is None or engine.phase != INPUT:
            raise StateConflictError('Input window is not open')
        result = engine.tick()
        self._emit('timer_tick', {'round': self.round_number, **engine.timer.to_dict()})
        if result is not None:
            self._apply_result(result)
        else:
            self._schedule(CLOCK_TIMER, 1.0)

    def _next_round(self) -> None:
        if self.status != ACTIVE or (self.engine is not None and not self.engine.is_done):
            raise StateConflictError('Round still in progress')
        self._start_round()

    # ---- round loop ----

    def _require_member(self, player_id: str) -> Player:
        if player_id not in self.registry:
            raise PermissionDeniedError('You are not in this room')
        return self.registry.get(player_id)

    def _require_round(self) -> RoundEngine:
        if self.status != ACTIVE or self.engine is None:
            raise StateConflictError('No round in progress')
        return self.engine

    def _contenders(self) -> List[Player]:
        return [p for p in self.registry.active_players() if p.id in self._roster]

    def _between_rounds(self) -> bool:
        if self.status == COUNTDOWN:
            return True
        return self.status == ACTIVE and (self.engine is None or self.engine.is_done)

    def _eliminate_absent(self, player: Player) -> None:
        """A disconnect outside a round counts as failing the next one."""
        if player.is_eliminated:
            return
        self.registry.eliminate(player.id, self.round_number)
        log.info(f"[eliminate] room={self.code} player={player.id} round={self.round_number} reason=disconnect")
        remaining = self._contenders()
        if len(remaining) == 1 and not self.settings.last_player_continues:
            self._finish(remaining[0])

    def _start_round(self) -> None:
        participants = [p.id for p in self._contenders()]
        if not participants:
            self._finish(winner=None)
            return
        self.round_number += 1
        self.sequence = self.generator.next(self.sequence)
        self.engine = RoundEngine(
            round_number=self.round_number,
            sequence=self.sequence,
            participants=participants,
            starting_scores={pid: self.registry.get(pid).score for pid in participants},
            reward=self.settings.reward(self.round_number),
        )
        self.epoch += 1
        reveal_ms = self.settings.reveal_ms(len(self.sequence))
        log.info(f"[round-start] room={self.code} round={self.round_number} participants={len(participants)}")
        self._emit('round_started', {
            'round': self.round_number,
            'sequence': list(self.sequence),
            'participants': participants,
            'revealMs': reveal_ms,
        })
        self._schedule(CLOCK_REVEAL, reveal_ms / 1000.0)

    def _resolve_if_complete(self) -> None:
        result = self.engine.resolve_if_complete() if self.engine is not None else None
        if result is not None:
            self._apply_result(result)

    def _apply_result(self, result: RoundResult) -> None:
        self.epoch += 1
        reward = self.engine.reward
        eliminated = []
        for pid, outcome in result.outcomes.items():
            if pid not in self.registry:
                continue
            if outcome == CORRECT:
                self.registry.add_score(pid, reward)
            elif not self.solo:
                self.registry.eliminate(pid, result.round)
                eliminated.append(pid)

        self._emit('round_result', {
            **result.to_dict(),
            'eliminated': eliminated,
            'players': self.registry.to_list(),
        })

        finished, winner = self._game_over_check(result)
        if finished:
            self._finish(winner)
            return
        self._broadcast_state()
        if self.settings.round_intermission_sec > 0:
            self._schedule(CLOCK_NEXT_ROUND, self.settings.round_intermission_sec)
        else:
            self._start_round()

    def _game_over_check(self, result: RoundResult) -> Tuple[bool, Optional[Player]]:
        if self.solo:
            pid = next(iter(self._roster))
            if result.outcomes.get(pid) == CORRECT:
                return False, None
            return True, self.registry.get(pid) if pid in self.registry else None

        active = self._contenders()
        if not active:
            # Everyone still standing went out together; a lone contender wins.
            contenders = [pid for pid, o in result.outcomes.items() if o != DISCONNECTED]
            if len(contenders) == 1 and contenders[0] in self.registry:
                return True, self.registry.get(contenders[0])
            return True, None
        if len(active) == 1 and not self.settings.last_player_continues:
            return True, active[0]
        return False, None

    def _finish(self, winner: Optional[Player]) -> None:
        self.status = GAME_OVER
        self.epoch += 1
        self.result = build_game_result(self.registry.players, self.round_number, winner)
        log.info(f"[game-over] room={self.code} rounds={self.round_number} winner={winner.id if winner else None}")
        self._emit('game_over', self.result.to_dict())
        self._broadcast_state()
