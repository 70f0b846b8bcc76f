from __future__ import annotations

import json
import logging
from typing import Iterable, List, Protocol

from sqlalchemy.exc import SQLAlchemyError

from .ledger import LedgerEntry
from .state import RoomState


logger = logging.getLogger(__name__)


class RoomStore(Protocol):
    def save_room(self, room: RoomState) -> None:
        ...

    def append_entries(self, entries: Iterable[LedgerEntry]) -> None:
        ...

    def load_entries(self, room_id: str) -> List[LedgerEntry]:
        ...


class NullRoomStore:
    """Keeps nothing; rooms live only in memory."""

    def save_room(self, room: RoomState) -> None:
        return None

    def append_entries(self, entries: Iterable[LedgerEntry]) -> None:
        return None

    def load_entries(self, room_id: str) -> List[LedgerEntry]:
        return []


class SqlRoomStore:
    """Writes rooms, rosters, rounds, guesses and ledger entries via Flask-SQLAlchemy.

    Runs its own app context so it can be called from timer workers.
    Failures are logged and rolled back; the in-memory room stays the source
    of truth.
    """

    def __init__(self, app):
        self.app = app

    def save_room(self, room: RoomState) -> None:
        from guessroom import db
        from guessroom.models import Guess, Player, Room, Round

        with self.app.app_context():
            try:
                row = db.session.get(Room, room.id)
                if row is None:
                    row = Room(id=room.id)
                    db.session.add(row)
                row.name = room.name
                row.status = room.status.value
                row.settings = json.dumps(room.settings.to_dict())
                row.current_round_index = room.current_round_index
                row.content_sequence = json.dumps([c.to_dict() for c in room.content_sequence])
                row.host_id = room.host_id
                row.created_at = room.created_at
                row.finished_at = room.finished_at
                row.canceled = room.canceled

                players = {p.player_id: p for p in row.players}
                for p in room.players.values():
                    prow = players.get(p.id)
                    if prow is None:
                        prow = Player(room_id=room.id, player_id=p.id, joined_at=p.joined_at)
                        row.players.append(prow)
                    prow.display_name = p.display_name
                    prow.connection_state = p.connection_state.value

                rounds = {r.round_index: r for r in row.rounds}
                for r in room.rounds:
                    rrow = rounds.get(r.round_index)
                    if rrow is None:
                        rrow = Round(room_id=room.id, round_index=r.round_index, content_id=r.content.id)
                        row.rounds.append(rrow)
                    rrow.started_at = r.started_at
                    rrow.deadline_at = r.deadline_at
                    rrow.status = r.status.value
                    rrow.resolved_at = r.resolved_at
                    rrow.resolution = r.resolution

                stored = {gid for (gid,) in db.session.query(Guess.id).filter_by(room_id=room.id)}
                for r in room.rounds:
                    for g in r.guesses:
                        if g.id in stored:
                            continue
                        db.session.add(Guess(
                            id=g.id,
                            room_id=room.id,
                            player_id=g.player_id,
                            round_index=g.round_index,
                            raw_text=g.raw_text,
                            submitted_at=g.submitted_at,
                            outcome=g.outcome.value,
                            score_awarded=g.score_awarded,
                        ))
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception(f"[store] failed to save room={room.id}")

    def append_entries(self, entries: Iterable[LedgerEntry]) -> None:
        from guessroom import db
        from guessroom.models import ScoreEntry

        entries = list(entries)
        if not entries:
            return
        with self.app.app_context():
            try:
                for e in entries:
                    db.session.add(ScoreEntry.from_entry(e))
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception(f"[store] failed to append {len(entries)} ledger entries")

    def load_entries(self, room_id: str) -> List[LedgerEntry]:
        from guessroom.models import ScoreEntry

        with self.app.app_context():
            rows = ScoreEntry.query.filter_by(room_id=room_id).order_by(ScoreEntry.seq).all()
            return [r.to_entry() for r in rows]
