import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///barsays.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Room capacity
    MAX_PLAYERS = int(os.environ.get('MAX_PLAYERS', '8'))
    # Pre-game 3-2-1 countdown
    COUNTDOWN_FROM = int(os.environ.get('COUNTDOWN_FROM', '3'))
    # Input window: max(TIMER_MIN_SEC, TIMER_BASE_SEC + round * TIMER_PER_ROUND_SEC)
    TIMER_MIN_SEC = int(os.environ.get('TIMER_MIN_SEC', '10'))
    TIMER_BASE_SEC = int(os.environ.get('TIMER_BASE_SEC', '5'))
    TIMER_PER_ROUND_SEC = int(os.environ.get('TIMER_PER_ROUND_SEC', '2'))
    # Points for a correct round: base + step * (round - 1)
    ROUND_REWARD_BASE = int(os.environ.get('ROUND_REWARD_BASE', '10'))
    ROUND_REWARD_STEP = int(os.environ.get('ROUND_REWARD_STEP', '0'))
    # Sequence reveal window (ms)
    REVEAL_BASE_MS = int(os.environ.get('REVEAL_BASE_MS', '600'))
    REVEAL_MS_PER_COLOR = int(os.environ.get('REVEAL_MS_PER_COLOR', '700'))
    # Pause between round result and next round (seconds). 0 starts immediately.
    ROUND_INTERMISSION_SEC = float(os.environ.get('ROUND_INTERMISSION_SEC', '2'))
    # Grace period before an empty room is torn down (seconds)
    ROOM_EMPTY_GRACE_SEC = float(os.environ.get('ROOM_EMPTY_GRACE_SEC', '30'))
    # Last player standing keeps playing for score until they fail
    LAST_PLAYER_CONTINUES = os.environ.get('LAST_PLAYER_CONTINUES', 'true').lower() == 'true'
    # Optional: log every timer tick
    TIMER_HEARTBEAT_LOG = os.environ.get('TIMER_HEARTBEAT_LOG', 'false').lower() == 'true'
