import time
import uuid

from barsays import db
from barsays.services.game.registry import PlayerIdentity
from barsays.services.game.session import MAX_AVATAR_LEN, MAX_NAME_LEN


def new_player_id() -> str:
    return uuid.uuid4().hex


class PlayerSession(db.Model):
    """An issued player identity: stable id, name and avatar for one game code.

    The live game state is held in memory by the room; this row is what lets
    a new connection presenting the same player id resume that player.
    """
    __tablename__ = 'player_session'
    id = db.Column(db.String(32), primary_key=True, default=new_player_id)
    display_name = db.Column(db.String(MAX_NAME_LEN), nullable=False)
    avatar_id = db.Column(db.String(MAX_AVATAR_LEN), nullable=False)
    game_code = db.Column(db.String(6), nullable=False, index=True)
    is_creator = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    last_seen_at = db.Column(db.Float, nullable=True)

    def identity(self) -> PlayerIdentity:
        return PlayerIdentity(player_id=self.id, display_name=self.display_name, avatar_id=self.avatar_id)

    def touch(self) -> None:
        self.last_seen_at = time.time()

    def to_dict(self, is_host=None):
        return {
            'playerId': self.id,
            'gameCode': self.game_code,
            'displayName': self.display_name,
            'avatarId': self.avatar_id,
            'isHost': self.is_creator if is_host is None else is_host,
        }
