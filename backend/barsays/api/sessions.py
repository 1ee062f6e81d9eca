from flask import Blueprint, jsonify, request, current_app
from barsays import db
from barsays.models import PlayerSession, new_player_id
from barsays.services.game import rooms
from barsays.services.game.errors import CapacityError, GameError, NotFoundError, RoomFullError
from barsays.services.game.rooms import normalize_code
from barsays.services.game.session import WAITING, validate_profile


sessions = Blueprint('sessions', __name__)


@sessions.errorhandler(GameError)
def handle_game_error(exc: GameError):
    return jsonify({'error': exc.message}), exc.status_code


def _issue_session(data: dict, game_code: str, is_creator: bool) -> PlayerSession:
    player_id = new_player_id()
    display_name, avatar_id = validate_profile(data.get('displayName'), data.get('avatarId'))
    player_session = PlayerSession(
        id=player_id,
        display_name=display_name,
        avatar_id=avatar_id,
        game_code=game_code,
        is_creator=is_creator,
    )
    db.session.add(player_session)
    db.session.commit()
    return player_session


@sessions.route('/sessions', methods=['POST'])
def create_session():
    """
    Issues a player identity and opens a new room; the caller will host it.
    """
    data = request.get_json(silent=True) or {}
    # Validate before allocating a room code
    validate_profile(data.get('displayName'), data.get('avatarId'))
    code = rooms.create_room()
    player_session = _issue_session(data, code, is_creator=True)
    current_app.logger.info(f"[session-create] room={code} player={player_session.id}")
    return jsonify({'session': player_session.to_dict(is_host=True)}), 201


@sessions.route('/sessions/join', methods=['POST'])
def join_session():
    """
    Issues a player identity for an existing room still in its waiting room.
    """
    data = request.get_json(silent=True) or {}
    code = normalize_code(data.get('gameCode'))
    if not code:
        return jsonify({'error': 'Game code is required'}), 400
    validate_profile(data.get('displayName'), data.get('avatarId'))

    def _check_open(session):
        if session.status != WAITING:
            raise CapacityError('This game has already started')
        if len(session.registry) >= session.registry.max_players:
            raise RoomFullError(f'Room is full (max {session.registry.max_players} players)')

    rooms.dispatch(code, _check_open)
    player_session = _issue_session(data, code, is_creator=False)
    current_app.logger.info(f"[session-join] room={code} player={player_session.id}")
    return jsonify({'session': player_session.to_dict(is_host=False)}), 201


@sessions.route('/sessions/<string:player_id>', methods=['GET'])
def get_session(player_id):
    """
    Returns a previously issued identity so a reloaded client can reconnect.
    """
    player_session = db.session.get(PlayerSession, player_id)
    if player_session is None:
        raise NotFoundError('Session not found')
    if player_session.game_code not in rooms:
        return jsonify({'error': 'Game has ended'}), 410

    def _is_host(session):
        # Not seated yet: the creator is about to become host
        if player_session.id not in session.registry:
            return None
        return session.registry.get(player_session.id).is_host

    is_host = rooms.dispatch(player_session.game_code, _is_host)
    return jsonify({'session': player_session.to_dict(is_host=is_host)})


@sessions.route('/games/<string:game_code>/state', methods=['GET'])
def get_game_state(game_code):
    payload = rooms.dispatch(game_code, lambda session: session.snapshot())
    settings = rooms.settings
    # Include policy durations so clients can render countdowns
    payload['durations'] = {
        'countdown': settings.countdown_from,
        'roundSeconds': settings.round_seconds(max(1, payload['round'])),
        'revealMs': settings.reveal_ms(max(1, len(payload['sequence']))),
        'intermission': settings.round_intermission_sec,
    }
    return jsonify(payload)
