from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import DuplicateJoinError, NotFoundError, RoomFullError

CONNECTED = 'connected'
DISCONNECTED = 'disconnected'


@dataclass(frozen=True)
class PlayerIdentity:
    player_id: str
    display_name: str
    avatar_id: str


@dataclass
class Player:
    id: str
    display_name: str
    avatar_id: str
    join_index: int
    is_host: bool = False
    is_eliminated: bool = False
    eliminated_in_round: Optional[int] = None
    score: int = 0
    connection_status: str = CONNECTED

    @property
    def is_connected(self) -> bool:
        return self.connection_status == CONNECTED

    @property
    def is_active(self) -> bool:
        return self.is_connected and not self.is_eliminated

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'displayName': self.display_name,
            'avatar': self.avatar_id,
            'isHost': self.is_host,
            'isEliminated': self.is_eliminated,
            'score': self.score,
            'connectionStatus': self.connection_status,
        }


@dataclass
class PlayerRegistry:
    """Membership and per-player game attributes for one room."""

    max_players: int = 8
    _players: Dict[str, Player] = field(default_factory=dict, init=False, repr=False)
    _next_index: int = field(default=0, init=False, repr=False)

    def __len__(self) -> int:
        return len(self._players)

    def __contains__(self, player_id: str) -> bool:
        return player_id in self._players

    @property
    def players(self) -> List[Player]:
        return sorted(self._players.values(), key=lambda p: p.join_index)

    @property
    def connected_players(self) -> List[Player]:
        return [p for p in self.players if p.is_connected]

    @property
    def host(self) -> Optional[Player]:
        for p in self._players.values():
            if p.is_host:
                return p
        return None

    def get(self, player_id: str) -> Player:
        player = self._players.get(player_id)
        if player is None:
            raise NotFoundError(f'Player {player_id} is not in this room')
        return player

    def add_player(self, identity: PlayerIdentity) -> Player:
        """Add a new player or resume a disconnected one with the same id."""
        existing = self._players.get(identity.player_id)
        if existing is not None:
            if existing.is_connected:
                raise DuplicateJoinError(f'{existing.display_name} is already in this room')
            existing.connection_status = CONNECTED
            self._ensure_host()
            return existing

        if len(self._players) >= self.max_players:
            raise RoomFullError(f'Room is full (max {self.max_players} players)')

        player = Player(
            id=identity.player_id,
            display_name=identity.display_name,
            avatar_id=identity.avatar_id,
            join_index=self._next_index,
        )
        self._next_index += 1
        self._players[player.id] = player
        self._ensure_host()
        return player

    def remove_player(self, player_id: str) -> Optional[Player]:
        """Mark a player disconnected. Their record, score and seat are kept."""
        player = self._players.get(player_id)
        if player is None or not player.is_connected:
            return None
        player.connection_status = DISCONNECTED
        if player.is_host:
            player.is_host = False
            self._ensure_host()
        return player

    def purge(self, player_id: str) -> Optional[Player]:
        """Drop a player's record entirely (explicit leave)."""
        player = self._players.pop(player_id, None)
        if player is not None and player.is_host:
            player.is_host = False
            self._ensure_host()
        return player

    def eliminate(self, player_id: str, round_number: Optional[int] = None) -> None:
        player = self.get(player_id)
        if not player.is_eliminated:
            player.is_eliminated = True
            player.eliminated_in_round = round_number

    def add_score(self, player_id: str, delta: int) -> int:
        if delta < 0:
            raise ValueError('score delta must be non-negative')
        player = self.get(player_id)
        player.score += delta
        return player.score

    def reset_all(self) -> None:
        for p in self._players.values():
            p.score = 0
            p.is_eliminated = False
            p.eliminated_in_round = None

    def active_players(self) -> List[Player]:
        return [p for p in self.players if p.is_active]

    def _ensure_host(self) -> None:
        """Keep exactly one connected host while anyone is connected."""
        current = self.host
        if current is not None and current.is_connected:
            return
        if current is not None:
            current.is_host = False
        connected = self.connected_players
        if connected:
            connected[0].is_host = True

    def to_list(self) -> List[dict]:
        return [p.to_dict() for p in self.players]
