from guessroom import db
from guessroom.services.rooms.ledger import LedgerEntry
import json


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(128), nullable=False, default='')
    status = db.Column(db.String(16), default='waiting', index=True)  # waiting, playing, finished
    settings = db.Column(db.Text, nullable=True)  # JSON-encoded room settings
    current_round_index = db.Column(db.Integer, default=-1)
    content_sequence = db.Column(db.Text, nullable=True)  # JSON-encoded list of content refs
    host_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.Float, nullable=True)
    finished_at = db.Column(db.Float, nullable=True)
    canceled = db.Column(db.Boolean, default=False, nullable=False)
    players = db.relationship('Player', back_populates='room', cascade='all, delete-orphan')
    rounds = db.relationship('Round', back_populates='room', cascade='all, delete-orphan', order_by='Round.round_index')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status,
            'settings': json.loads(self.settings) if self.settings else None,
            'current_round_index': self.current_round_index,
            'content_sequence': json.loads(self.content_sequence) if self.content_sequence else [],
            'host_id': self.host_id,
            'created_at': self.created_at,
            'finished_at': self.finished_at,
            'canceled': self.canceled,
            'players': [p.to_dict() for p in self.players],
            'rounds': [r.to_dict() for r in self.rounds],
        }


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('room_id', 'player_id', name='uq_player_room_player'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(32), db.ForeignKey('room.id'), nullable=False, index=True)
    player_id = db.Column(db.String(64), nullable=False)
    display_name = db.Column(db.String(64), nullable=False, default='')
    connection_state = db.Column(db.String(16), nullable=False, default='connected')
    joined_at = db.Column(db.Float, nullable=True)
    room = db.relationship('Room', back_populates='players')

    def to_dict(self):
        return {
            'id': self.player_id,
            'display_name': self.display_name,
            'connection_state': self.connection_state,
            'joined_at': self.joined_at,
        }


class Round(db.Model):
    __tablename__ = 'room_round'
    __table_args__ = (db.UniqueConstraint('room_id', 'round_index', name='uq_round_room_index'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(32), db.ForeignKey('room.id'), nullable=False, index=True)
    round_index = db.Column(db.Integer, nullable=False)
    content_id = db.Column(db.String(64), nullable=False)
    started_at = db.Column(db.Float, nullable=True)
    deadline_at = db.Column(db.Float, nullable=True)
    status = db.Column(db.String(16), nullable=False, default='active')
    resolved_at = db.Column(db.Float, nullable=True)
    resolution = db.Column(db.String(16), nullable=True)  # all_answered, timer, canceled
    room = db.relationship('Room', back_populates='rounds')

    def to_dict(self):
        return {
            'round_index': self.round_index,
            'content_id': self.content_id,
            'started_at': self.started_at,
            'deadline_at': self.deadline_at,
            'status': self.status,
            'resolved_at': self.resolved_at,
            'resolution': self.resolution,
        }


class Guess(db.Model):
    __tablename__ = 'guess'
    id = db.Column(db.String(32), primary_key=True)
    room_id = db.Column(db.String(32), db.ForeignKey('room.id'), nullable=False, index=True)
    player_id = db.Column(db.String(64), nullable=False)
    round_index = db.Column(db.Integer, nullable=False)
    raw_text = db.Column(db.Text, nullable=False, default='')
    submitted_at = db.Column(db.Float, nullable=False)
    outcome = db.Column(db.String(16), nullable=False)  # exact, close, incorrect
    score_awarded = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'round_index': self.round_index,
            'raw_text': self.raw_text,
            'submitted_at': self.submitted_at,
            'outcome': self.outcome,
            'score_awarded': self.score_awarded,
        }


class ScoreEntry(db.Model):
    """One append-only ledger line; rows are inserted, never updated."""
    __tablename__ = 'score_entry'
    __table_args__ = (db.UniqueConstraint('room_id', 'seq', name='uq_score_entry_room_seq'),)
    id = db.Column(db.Integer, primary_key=True)
    seq = db.Column(db.Integer, nullable=False)
    room_id = db.Column(db.String(32), db.ForeignKey('room.id'), nullable=False, index=True)
    player_id = db.Column(db.String(64), nullable=False)
    round_index = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(16), nullable=False)  # guess, unanswered
    outcome = db.Column(db.String(16), nullable=True)
    score = db.Column(db.Integer, nullable=False, default=0)
    recorded_at = db.Column(db.Float, nullable=False)

    @classmethod
    def from_entry(cls, entry: LedgerEntry) -> 'ScoreEntry':
        return cls(
            seq=entry.seq,
            room_id=entry.room_id,
            player_id=entry.player_id,
            round_index=entry.round_index,
            kind=entry.kind,
            outcome=entry.outcome,
            score=entry.score,
            recorded_at=entry.recorded_at,
        )

    def to_entry(self) -> LedgerEntry:
        return LedgerEntry(
            seq=self.seq,
            room_id=self.room_id,
            player_id=self.player_id,
            round_index=self.round_index,
            kind=self.kind,
            outcome=self.outcome,
            score=self.score,
            recorded_at=self.recorded_at,
        )
