from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .content import ContentRef
from .evaluator import Outcome, ToleranceMode


class RoomStatus(str, Enum):
    WAITING = 'waiting'
    PLAYING = 'playing'
    FINISHED = 'finished'


class ConnectionState(str, Enum):
    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'
    LEFT = 'left'


class RoundStatus(str, Enum):
    ACTIVE = 'active'
    RESOLVED = 'resolved'


# Forward-only lifecycle; waiting -> finished only happens on cancel.
ALLOWED_TRANSITIONS = {
    RoomStatus.WAITING: {RoomStatus.PLAYING, RoomStatus.FINISHED},
    RoomStatus.PLAYING: {RoomStatus.FINISHED},
    RoomStatus.FINISHED: set(),
}


@dataclass
class RoomSettings:
    min_players: int = 2
    max_players: int = 8
    round_duration_seconds: int = 30
    allow_chat: bool = True
    show_leaderboard: bool = True
    rounds: int = 5
    tolerance: ToleranceMode = ToleranceMode.NORMAL

    @classmethod
    def field_names(cls) -> Set[str]:
        return {f.name for f in fields(cls)}

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['tolerance'] = ToleranceMode(self.tolerance).value
        return d


@dataclass
class PlayerState:
    id: str
    display_name: str
    joined_at: float
    connection_state: ConnectionState = ConnectionState.CONNECTED

    @property
    def connected(self) -> bool:
        return self.connection_state == ConnectionState.CONNECTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'joined_at': self.joined_at,
            'connection_state': self.connection_state.value,
        }


@dataclass
class GuessRecord:
    id: str
    player_id: str
    round_index: int
    raw_text: str
    submitted_at: float
    outcome: Outcome
    score_awarded: int

    def to_dict(self, hide_exact_text: bool = False) -> Dict[str, Any]:
        hidden = hide_exact_text and self.outcome == Outcome.EXACT
        return {
            'id': self.id,
            'player_id': self.player_id,
            'round_index': self.round_index,
            'raw_text': None if hidden else self.raw_text,
            'submitted_at': self.submitted_at,
            'outcome': self.outcome.value,
            'score_awarded': self.score_awarded,
        }


@dataclass
class RoundState:
    round_index: int
    content: ContentRef
    started_at: float
    deadline_at: float
    status: RoundStatus = RoundStatus.ACTIVE
    answered: Set[str] = field(default_factory=set)
    guesses: List[GuessRecord] = field(default_factory=list)
    resolved_at: Optional[float] = None
    resolution: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.status == RoundStatus.ACTIVE

    def to_dict(self, reveal: bool = False) -> Dict[str, Any]:
        payload = {
            'round_index': self.round_index,
            'content': self.content.public_dict(),
            'started_at': self.started_at,
            'deadline_at': self.deadline_at,
            'status': self.status.value,
            'answered': sorted(self.answered),
            'resolved_at': self.resolved_at,
            'resolution': self.resolution,
        }
        if reveal or not self.active:
            payload['answers'] = list(self.content.answers)
        return payload


@dataclass
class RoomState:
    id: str
    name: str
    settings: RoomSettings
    content_sequence: List[ContentRef]
    created_at: float
    status: RoomStatus = RoomStatus.WAITING
    current_round_index: int = -1
    host_id: Optional[str] = None
    players: Dict[str, PlayerState] = field(default_factory=dict)
    rounds: List[RoundState] = field(default_factory=list)
    chat: List[Dict[str, Any]] = field(default_factory=list)
    empty_since: Optional[float] = None
    finished_at: Optional[float] = None
    canceled: bool = False

    @property
    def active_players(self) -> List[PlayerState]:
        return [p for p in self.players.values() if p.connected]

    @property
    def active_count(self) -> int:
        return len(self.active_players)

    @property
    def current_round(self) -> Optional[RoundState]:
        if 0 <= self.current_round_index < len(self.rounds):
            return self.rounds[self.current_round_index]
        return None
