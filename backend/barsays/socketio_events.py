import functools

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from barsays import socketio, db
from barsays.models import PlayerSession
from barsays.services.game import rooms
from barsays.services.game.errors import GameError, NotFoundError, PermissionDeniedError, ValidationError
from barsays.services.game.rooms import normalize_code, room_channel

NAMESPACE = '/ws'


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _guarded(handler):
    """Report game errors to the requesting connection only; never crash the room."""
    @functools.wraps(handler)
    def wrapper(data=None):
        try:
            return handler(data if isinstance(data, dict) else {})
        except GameError as exc:
            if exc.silent:
                current_app.logger.debug(f"[stale] sid={_get_sid()} {handler.__name__}: {exc.message}")
                return
            current_app.logger.info(f"[rejected] sid={_get_sid()} {handler.__name__}: {exc.message}")
            emit('error', {'message': exc.message})
        except Exception:
            current_app.logger.exception(f"[handler-fail] sid={_get_sid()} {handler.__name__}")
            emit('error', {'message': 'Something went wrong'})
    return wrapper


def _requester(data: dict):
    """(code, player id) for this connection, checked against the payload."""
    ctx = rooms.context_for(_get_sid())
    if not ctx:
        raise ValidationError('Join a game first')
    code, player_id = ctx
    claimed_code = normalize_code(data.get('gameCode'))
    claimed_player = data.get('playerId')
    if (claimed_code and claimed_code != code) or (claimed_player and claimed_player != player_id):
        raise PermissionDeniedError('Session does not match this connection')
    return code, player_id


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    rooms.detach(_get_sid())


@_guarded
def handle_join_room_socket(data):
    code = normalize_code(data.get('gameCode'))
    player_id = data.get('playerId')
    if not code or not player_id:
        raise ValidationError('gameCode and playerId are required')

    player_session = db.session.get(PlayerSession, player_id)
    if player_session is None or player_session.game_code != code:
        raise NotFoundError('Unknown player session for this game')

    sid = _get_sid()
    previous = rooms.context_for(sid)
    if previous and previous != (code, player_id):
        rooms.detach(sid)
        leave_room(room_channel(previous[0]))

    room = room_channel(code)
    join_room(room)
    try:
        rooms.attach(sid, code, player_session.identity())
    except GameError:
        leave_room(room)
        raise

    player_session.touch()
    db.session.commit()


@_guarded
def handle_start_game(data):
    code, player_id = _requester(data)
    rooms.dispatch(code, lambda session: session.start(player_id))


@_guarded
def handle_submit_color(data):
    code, player_id = _requester(data)
    color = data.get('color')
    rooms.dispatch(code, lambda session: session.submit_color(player_id, color))


@_guarded
def handle_submit_sequence(data):
    code, player_id = _requester(data)
    rooms.dispatch(code, lambda session: session.submit_sequence(player_id))


@_guarded
def handle_restart_game(data):
    code, player_id = _requester(data)
    rooms.dispatch(code, lambda session: session.restart(player_id))


@_guarded
def handle_leave_game(data):
    code = rooms.leave(_get_sid())
    room = room_channel(code)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('join_room_socket', handle_join_room_socket, namespace=NAMESPACE)
    socketio.on_event('start_game', handle_start_game, namespace=NAMESPACE)
    socketio.on_event('submit_color', handle_submit_color, namespace=NAMESPACE)
    socketio.on_event('submit_sequence', handle_submit_sequence, namespace=NAMESPACE)
    socketio.on_event('restart_game', handle_restart_game, namespace=NAMESPACE)
    socketio.on_event('leave_game', handle_leave_game, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
