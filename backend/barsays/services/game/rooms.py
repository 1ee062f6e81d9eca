import logging
import random
import string
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .errors import GameError, NotFoundError, StateConflictError
from .registry import PlayerIdentity
from .sequence import SequenceGenerator
from .session import ClockRequest, GameSession, Outbound
from .settings import GameSettings

log = logging.getLogger(__name__)

CODE_LENGTH = 6
CLOCK_TEARDOWN = 'teardown'

Publisher = Callable[[str, dict, str], None]
Scheduler = Callable[[str, ClockRequest], None]


def room_channel(code: str) -> str:
    return f"game:{code}"


def generate_game_code(is_taken: Callable[[str], bool], length: int = CODE_LENGTH) -> str:
    """Generate a unique, short game code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not is_taken(code):
            return code


def normalize_code(code) -> str:
    return code.strip().upper() if isinstance(code, str) else ''


class RoomActor:
    """One room's session plus the lock that serialises every step on it."""

    def __init__(self, session: GameSession):
        self.session = session
        self.lock = threading.RLock()
        self.connections: Dict[str, str] = {}  # player id -> sid
        self.teardown_epoch = 0


class RoomManager:
    """Live rooms keyed by code.

    Every intent and clock event for a room runs under that room's lock,
    and the messages it produced are published before the lock is
    released, so each room sees a single ordered stream of transitions.
    """

    def __init__(self):
        self.configure()

    def configure(
        self,
        settings: Optional[GameSettings] = None,
        publish: Optional[Publisher] = None,
        schedule: Optional[Scheduler] = None,
        immediate_teardown: bool = False,
        empty_grace_sec: float = 30.0,
        generator_factory: Callable[[], SequenceGenerator] = SequenceGenerator,
    ) -> None:
        self.settings = settings or GameSettings()
        self._publish = publish or (lambda event, payload, to: None)
        self._schedule = schedule or (lambda code, request: None)
        self.immediate_teardown = immediate_teardown
        self.empty_grace_sec = empty_grace_sec
        self.generator_factory = generator_factory
        self._rooms: Dict[str, RoomActor] = {}
        self._sids: Dict[str, Tuple[str, str]] = {}
        self._lock = threading.Lock()

    # ---- lookup ----

    def __contains__(self, code: str) -> bool:
        return normalize_code(code) in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def get(self, code: str) -> RoomActor:
        actor = self._rooms.get(normalize_code(code))
        if actor is None:
            raise NotFoundError('Game not found')
        return actor

    def context_for(self, sid: str) -> Optional[Tuple[str, str]]:
        """(code, player id) bound to a connection, if any."""
        return self._sids.get(sid)

    def create_room(self) -> str:
        with self._lock:
            code = generate_game_code(lambda c: c in self._rooms)
            actor = RoomActor(GameSession(code, settings=self.settings, generator=self.generator_factory()))
            actor.teardown_epoch += 1
            self._rooms[code] = actor
        log.info(f"[room-create] room={code}")
        # Rooms nobody ever joins are collected after the grace period
        self._schedule(code, ClockRequest(kind=CLOCK_TEARDOWN, delay=self.empty_grace_sec, epoch=actor.teardown_epoch))
        return code

    # ---- stepping ----

    def dispatch(self, code: str, step: Callable[[GameSession], object]):
        actor = self.get(code)
        with actor.lock:
            try:
                return step(actor.session)
            finally:
                self._flush(code, actor)

    def _flush(self, code: str, actor: RoomActor) -> None:
        messages, requests = actor.session.drain()
        for message in messages:
            self._deliver(code, actor, message)
        for request in requests:
            self._schedule(code, request)

    def _deliver(self, code: str, actor: RoomActor, message: Outbound) -> None:
        if message.to is None:
            self._publish(message.event, message.payload, room_channel(code))
            return
        sid = actor.connections.get(message.to)
        if sid is not None:
            self._publish(message.event, message.payload, sid)

    # ---- connections ----

    def attach(self, sid: str, code: str, identity: PlayerIdentity) -> None:
        """Bind a connection to a player and join (or resume) them in the room."""
        actor = self.get(code)
        code = actor.session.code

        def _join(session: GameSession):
            previous = actor.connections.get(identity.player_id)
            actor.connections[identity.player_id] = sid
            try:
                return session.join(identity)
            except GameError:
                if previous is None:
                    actor.connections.pop(identity.player_id, None)
                else:
                    actor.connections[identity.player_id] = previous
                raise

        self.dispatch(code, _join)
        with self._lock:
            self._sids[sid] = (code, identity.player_id)
        actor.teardown_epoch += 1

    def detach(self, sid: str) -> None:
        """Connection dropped: mark the player disconnected."""
        with self._lock:
            ctx = self._sids.pop(sid, None)
        if not ctx:
            return
        code, player_id = ctx
        actor = self._rooms.get(code)
        if actor is None:
            return
        with actor.lock:
            if actor.connections.get(player_id) != sid:
                # A newer connection already took over this player
                return
            actor.connections.pop(player_id, None)
            self._quietly(code, lambda s: s.disconnect(player_id))
        self._maybe_teardown(code, actor)

    def leave(self, sid: str) -> Optional[str]:
        with self._lock:
            ctx = self._sids.pop(sid, None)
        if not ctx:
            raise StateConflictError('Not in a game')
        code, player_id = ctx
        actor = self.get(code)
        with actor.lock:
            actor.connections.pop(player_id, None)
            self._quietly(code, lambda s: s.leave(player_id))
        self._maybe_teardown(code, actor)
        return code

    def _quietly(self, code: str, step: Callable[[GameSession], object]) -> None:
        try:
            self.dispatch(code, step)
        except StateConflictError as exc:
            log.debug(f"[stale] room={code} {exc.message}")

    # ---- clock ----

    def clock(self, code: str, request: ClockRequest) -> None:
        if request.kind == CLOCK_TEARDOWN:
            self._teardown(code, request.epoch)
            return
        if code not in self._rooms:
            log.debug(f"[timer-abort] room={code} kind={request.kind} room gone")
            return
        try:
            self.dispatch(code, lambda s: s.on_clock(request.kind, request.epoch))
        except StateConflictError:
            log.debug(f"[timer-abort] room={code} kind={request.kind} epoch={request.epoch} stale")

    def _maybe_teardown(self, code: str, actor: RoomActor) -> None:
        if not actor.session.is_empty:
            return
        actor.teardown_epoch += 1
        if self.immediate_teardown:
            self._teardown(code, actor.teardown_epoch)
            return
        self._schedule(code, ClockRequest(kind=CLOCK_TEARDOWN, delay=self.empty_grace_sec, epoch=actor.teardown_epoch))

    def _teardown(self, code: str, epoch: int) -> None:
        with self._lock:
            actor = self._rooms.get(code)
            if actor is None or actor.teardown_epoch != epoch or not actor.session.is_empty:
                return
            with actor.lock:
                if actor.session.engine is not None and not actor.session.engine.is_done:
                    actor.session.engine.abort()
            del self._rooms[code]
            for sid in [s for s, ctx in self._sids.items() if ctx[0] == code]:
                del self._sids[sid]
        log.info(f"[room-teardown] room={code}")

    def live_codes(self) -> List[str]:
        return list(self._rooms)
