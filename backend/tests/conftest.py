import os
import sys
import pytest

# Ensure the backend root (containing the `barsays` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from barsays import create_app, db, socketio
from barsays.services.game import rooms
from barsays.services.game.registry import PlayerIdentity
from barsays.services.game.sequence import SequenceGenerator
from barsays.services.game.session import GameSession
from barsays.services.game.settings import GameSettings


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ROUND_INTERMISSION_SEC = 0


class ScriptedColors:
    """Chooser that hands out a fixed list of colors, then repeats the last."""

    def __init__(self, *colors):
        self.colors = list(colors) or ['green']
        self.calls = 0

    def __call__(self, options):
        color = self.colors[min(self.calls, len(self.colors) - 1)]
        self.calls += 1
        assert color in options
        return color


def identity(player_id, name=None, avatar='1'):
    return PlayerIdentity(player_id=player_id, display_name=name or f'Player{player_id}', avatar_id=avatar)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import barsays.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def scripted_rooms(flask_app):
    """Room manager whose sequences are all green unless a test says otherwise."""
    colors = ScriptedColors('green')
    rooms.generator_factory = lambda: SequenceGenerator(colors)
    return rooms


@pytest.fixture()
def make_session():
    def _make(*colors, **overrides):
        settings = GameSettings(**{'round_intermission_sec': 0, **overrides})
        return GameSession('ABCDEF', settings=settings, generator=SequenceGenerator(ScriptedColors(*colors)))
    return _make
