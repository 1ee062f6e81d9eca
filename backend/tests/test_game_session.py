import pytest

from barsays.services.game.errors import PermissionDeniedError, StateConflictError, ValidationError
from barsays.services.game.registry import Player
from barsays.services.game.round_engine import INPUT, SHOWING
from barsays.services.game.scoring import rank_players, round_reward
from barsays.services.game.session import (
    ACTIVE, CLOCK_TIMER, COUNTDOWN, GAME_OVER, WAITING, validate_identity, validate_profile,
)
from conftest import identity


def _events(session):
    messages, _ = session.drain()
    return [m.event for m in messages], messages


def _start(session, host='a'):
    session.start(host)
    assert session.status == COUNTDOWN
    for _ in range(session.settings.countdown_from):
        session.on_clock('countdown', session.epoch)
    assert session.status == ACTIVE


def _reveal(session):
    session.on_clock('reveal', session.epoch)
    assert session.engine.phase == INPUT


def _play_correct(session, player_id):
    for color in session.sequence:
        session.submit_color(player_id, color)
    session.submit_sequence(player_id)


def _expire(session):
    while session.engine.phase == INPUT:
        session.on_clock(CLOCK_TIMER, session.epoch)


def test_three_players_all_correct_round_one(make_session):
    session = make_session('green', 'yellow')
    for pid in 'abc':
        session.join(identity(pid))
    _start(session)
    assert session.round_number == 1
    assert session.sequence == ['green']
    events, messages = _events(session)
    assert events.count('countdown') == 4  # 3, 2, 1, 0
    started = [m for m in messages if m.event == 'round_started'][0]
    assert started.payload['sequence'] == ['green'] and started.payload['round'] == 1

    _reveal(session)
    for pid in 'abc':
        session.submit_color(pid, 'green')
        session.submit_sequence(pid)

    reward = round_reward(1)
    assert session.round_number == 2
    assert session.sequence == ['green', 'yellow']
    assert session.engine.phase == SHOWING
    assert all(not p.is_eliminated and p.score == reward for p in session.registry.players)
    events, messages = _events(session)
    result = [m for m in messages if m.event == 'round_result'][0].payload
    assert result['eliminated'] == []
    assert result['outcomesByPlayer'] == {'a': 'correct', 'b': 'correct', 'c': 'correct'}
    assert events.index('round_result') < events.index('round_started')


def test_sequence_grows_by_one_and_preserves_prefix(make_session):
    session = make_session('red', 'blue', 'green', 'yellow', 'red')
    session.join(identity('a'))
    _start(session)
    previous = []
    for n in range(1, 6):
        assert len(session.sequence) == n
        assert session.sequence[:-1] == previous
        previous = list(session.sequence)
        _reveal(session)
        _play_correct(session, 'a')


def test_solo_failure_ends_game_without_elimination(make_session):
    session = make_session('green', 'red', 'blue')
    session.join(identity('solo'))
    _start(session, host='solo')
    assert session.solo
    for _ in range(2):
        _reveal(session)
        _play_correct(session, 'solo')
    assert session.round_number == 3
    _reveal(session)
    session.submit_color('solo', 'yellow')  # expected green

    assert session.status == GAME_OVER
    player = session.registry.get('solo')
    assert not player.is_eliminated
    result = session.result.to_dict()
    assert result['roundsPlayed'] == 3
    assert result['winner']['playerId'] == 'solo'
    assert result['winner']['score'] == 2 * round_reward(1)


def test_solo_timeout_ends_game(make_session):
    session = make_session('green')
    session.join(identity('solo'))
    _start(session, host='solo')
    _reveal(session)
    _expire(session)
    assert session.status == GAME_OVER
    assert session.result.rounds_played == 1
    assert session.registry.get('solo').score == 0


def test_timeout_eliminates_and_lone_survivor_plays_on(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    _start(session)
    for _ in range(3):
        _reveal(session)
        _play_correct(session, 'a')
        _play_correct(session, 'b')
    assert session.round_number == 4

    _reveal(session)
    assert session.engine.timer.total_seconds == session.settings.round_seconds(4)
    _play_correct(session, 'a')
    _expire(session)

    a, b = session.registry.get('a'), session.registry.get('b')
    assert b.is_eliminated and b.eliminated_in_round == 4
    assert a.score == 4 * round_reward(1)
    assert b.score == 3 * round_reward(1)
    assert session.status == ACTIVE
    assert session.round_number == 5
    assert session.engine.participants == ['a']

    _reveal(session)
    session.submit_color('a', 'red')
    assert session.status == GAME_OVER
    result = session.result.to_dict()
    assert result['winner']['playerId'] == 'a'
    assert result['roundsPlayed'] == 5
    assert [s['playerId'] for s in result['finalScores']] == ['a', 'b']


def test_game_ends_at_one_player_when_survivor_mode_off(make_session):
    session = make_session('green', last_player_continues=False)
    session.join(identity('a'))
    session.join(identity('b'))
    _start(session)
    _reveal(session)
    _play_correct(session, 'a')
    session.submit_color('b', 'blue')
    assert session.status == GAME_OVER
    assert session.result.winner['playerId'] == 'a'
    assert session.result.rounds_played == 1


def test_shared_timeout_has_no_winner(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    _start(session)
    _reveal(session)
    _expire(session)
    assert session.status == GAME_OVER
    assert session.result.winner is None
    assert all(p.is_eliminated for p in session.registry.players)


def test_all_correct_before_expiry_eliminates_nobody(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    _start(session)
    _reveal(session)
    old_epoch = session.epoch
    _play_correct(session, 'a')
    _play_correct(session, 'b')
    assert not any(p.is_eliminated for p in session.registry.players)
    # The timer tick that was already in flight is stale now
    with pytest.raises(StateConflictError):
        session.on_clock(CLOCK_TIMER, old_epoch)


def test_submissions_after_resolution_are_stale(make_session):
    session = make_session('green', round_intermission_sec=2)
    session.join(identity('a'))
    session.join(identity('b'))
    _start(session)
    _reveal(session)
    _play_correct(session, 'a')
    _play_correct(session, 'b')
    scores = [p.score for p in session.registry.players]
    with pytest.raises(StateConflictError):
        session.submit_color('a', 'green')
    with pytest.raises(StateConflictError):
        session.submit_sequence('b')
    assert [p.score for p in session.registry.players] == scores
    # Intermission hands over to the next round
    _, requests = session.drain()
    assert requests[-1].kind == 'next_round'
    session.on_clock('next_round', requests[-1].epoch)
    assert session.round_number == 2


def test_score_never_decreases_within_a_game(make_session):
    session = make_session('green', round_reward_step=5)
    session.join(identity('a'))
    session.join(identity('b'))
    _start(session)
    history = []
    for _ in range(4):
        _reveal(session)
        _play_correct(session, 'a')
        _play_correct(session, 'b')
        history.append(session.registry.get('a').score)
    assert history == sorted(history)
    assert history[-1] == sum(round_reward(n, step=5) for n in range(1, 5))


def test_only_host_can_start_unless_alone(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    with pytest.raises(PermissionDeniedError):
        session.start('b')
    with pytest.raises(PermissionDeniedError):
        session.start('stranger')
    session.disconnect('a')
    # b is now host and alone
    session.start('b')
    assert session.status == COUNTDOWN
    assert session.solo
    with pytest.raises(StateConflictError):
        session.start('b')


def test_join_validation_and_in_progress_rejection(make_session):
    with pytest.raises(ValidationError):
        validate_identity('x', 'ab', '1')
    with pytest.raises(ValidationError):
        validate_identity('x', 'a' * 13, '1')
    with pytest.raises(ValidationError):
        validate_identity('', 'Alice', '1')
    assert validate_identity('x', '  Alice ', 3).display_name == 'Alice'

    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    _start(session)
    with pytest.raises(ValidationError):
        session.join(identity('late'))


def test_reconnect_mid_game_resumes_player(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    session.join(identity('c'))
    _start(session)
    _reveal(session)
    _play_correct(session, 'a')
    session.disconnect('b')
    _play_correct(session, 'c')
    # b's drop counted as a loss for this round
    assert session.registry.get('b').is_eliminated
    session.join(identity('b'))
    assert session.registry.get('b').is_connected
    assert session.round_number == 2
    assert session.engine.participants == ['a', 'c']


def test_host_disconnect_transfers_host(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    session.drain()
    session.disconnect('a')
    assert session.registry.host.id == 'b'
    events, _ = _events(session)
    assert events == ['player_left', 'room_state_update']


def test_invalid_color_is_a_validation_error(make_session):
    session = make_session('green')
    session.join(identity('a'))
    _start(session)
    _reveal(session)
    with pytest.raises(ValidationError):
        session.submit_color('a', 'purple')


def test_restart_after_game_over_resets_scores_and_keeps_membership(make_session):
    session = make_session('green')
    for pid in 'abc':
        session.join(identity(pid))
    _start(session)
    _reveal(session)
    _play_correct(session, 'a')
    session.submit_color('b', 'red')
    session.submit_color('c', 'red')
    _reveal(session)
    session.submit_color('a', 'red')
    assert session.status == GAME_OVER

    with pytest.raises(PermissionDeniedError):
        session.restart('b')
    session.restart('a')
    assert session.status == WAITING
    assert session.code == 'ABCDEF'
    assert [(p.id, p.score, p.is_eliminated) for p in session.registry.players] == [
        ('a', 0, False), ('b', 0, False), ('c', 0, False)
    ]
    assert session.round_number == 0 and session.sequence == []
    events, _ = _events(session)
    assert 'game_restarted' in events
    with pytest.raises(StateConflictError):
        session.restart('a')


def test_restart_mid_round_discards_round(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    _start(session)
    _reveal(session)
    session.submit_color('b', 'red')
    tick_epoch = session.epoch
    session.restart('a')
    assert session.status == WAITING
    assert not any(p.is_eliminated for p in session.registry.players)
    with pytest.raises(StateConflictError):
        session.on_clock(CLOCK_TIMER, tick_epoch)


def test_leave_in_waiting_frees_seat_and_leave_mid_game_purges_on_restart(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    session.join(identity('c'))
    session.leave('c')
    assert 'c' not in session.registry
    _start(session)
    session.leave('b')
    assert 'b' in session.registry
    assert not session.registry.get('b').is_connected
    _reveal(session)
    session.submit_color('a', 'blue')
    assert session.status == GAME_OVER
    session.restart('a')
    assert [p.id for p in session.registry.players] == ['a']


def test_countdown_abandoned_by_everyone_finishes_without_winner(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.start('a')
    session.disconnect('a')
    for _ in range(3):
        session.on_clock('countdown', session.epoch)
    assert session.status == GAME_OVER
    assert session.result.winner is None
    assert session.result.rounds_played == 0


def test_snapshot_is_a_copy(make_session):
    session = make_session('green')
    session.join(identity('a'))
    snap = session.snapshot()
    snap['players'][0]['score'] = 999
    snap['sequence'].append('red')
    assert session.registry.get('a').score == 0
    assert session.sequence == []


def test_rank_players_breaks_ties_by_elimination_then_join_order():
    early = Player(id='early', display_name='Early', avatar_id='1', join_index=0,
                   is_eliminated=True, eliminated_in_round=1, score=10)
    late = Player(id='late', display_name='Late', avatar_id='1', join_index=1,
                  is_eliminated=True, eliminated_in_round=3, score=10)
    survivor = Player(id='survivor', display_name='Surv', avatar_id='1', join_index=2, score=10)
    second_joiner = Player(id='second', display_name='Second', avatar_id='1', join_index=3, score=10)
    top = Player(id='top', display_name='Top', avatar_id='1', join_index=4, score=50,
                 is_eliminated=True, eliminated_in_round=2)
    ranked = rank_players([early, second_joiner, late, top, survivor])
    assert [p.id for p in ranked] == ['top', 'survivor', 'second', 'late', 'early']


def test_player_absent_at_start_stays_out_of_a_solo_game(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    session.disconnect('b')
    _start(session)
    assert session.solo
    _reveal(session)
    # b comes back mid-game; known identities may resume
    session.join(identity('b'))
    _play_correct(session, 'a')
    assert session.round_number == 2
    assert session.engine.participants == ['a']
    _reveal(session)
    with pytest.raises(StateConflictError):
        session.submit_color('b', 'red')

    session.submit_color('a', 'red')
    assert session.status == GAME_OVER
    assert session.result.winner['playerId'] == 'a'
    assert session.result.rounds_played == 2
    assert not session.registry.get('a').is_eliminated


def test_disconnect_during_intermission_eliminates(make_session):
    session = make_session('green', round_intermission_sec=2)
    for pid in 'abc':
        session.join(identity(pid))
    _start(session)
    _reveal(session)
    for pid in 'abc':
        _play_correct(session, pid)

    session.disconnect('b')
    b = session.registry.get('b')
    assert b.is_eliminated and b.eliminated_in_round == 1
    session.on_clock('next_round', session.epoch)
    assert session.engine.participants == ['a', 'c']

    session.join(identity('b'))
    assert session.registry.get('b').is_eliminated
    _reveal(session)
    session.submit_color('a', 'red')
    session.submit_color('c', 'red')
    assert session.status == GAME_OVER
    assert session.result.winner is None


def test_disconnect_during_countdown_eliminates(make_session):
    session = make_session('green')
    session.join(identity('a'))
    session.join(identity('b'))
    session.start('a')
    session.disconnect('b')
    assert session.registry.get('b').eliminated_in_round == 0
    for _ in range(3):
        session.on_clock('countdown', session.epoch)
    assert session.engine.participants == ['a']


def test_disconnect_between_rounds_can_end_the_game(make_session):
    session = make_session('green', last_player_continues=False)
    session.join(identity('a'))
    session.join(identity('b'))
    session.start('a')
    session.disconnect('b')
    assert session.status == GAME_OVER
    assert session.result.winner['playerId'] == 'a'
    assert session.result.rounds_played == 0


def test_validate_profile_limits():
    assert validate_profile(' Alice ', 7) == ('Alice', '7')
    assert validate_profile('Bob', 'a' * 16) == ('Bob', 'a' * 16)
    with pytest.raises(ValidationError):
        validate_profile('Bob', 'a' * 17)
    with pytest.raises(ValidationError):
        validate_profile('Bob', '  ')
