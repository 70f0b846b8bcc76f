from __future__ import annotations

import itertools
import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional


GUESS = 'guess'
UNANSWERED = 'unanswered'


@dataclass(frozen=True)
class LedgerEntry:
    seq: int
    room_id: str
    player_id: str
    round_index: int
    kind: str
    outcome: Optional[str]
    score: int
    recorded_at: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LeaderboardRow:
    player_id: str
    total: int
    reached_at: float

    def to_dict(self) -> Dict[str, Any]:
        reached_at = None if self.reached_at == float('inf') else self.reached_at
        return {'player_id': self.player_id, 'total': self.total, 'reached_at': reached_at}


class ScoreLedger:
    """Append-only score log shared by all rooms.

    Entries are never edited; leaderboards are folded from scratch on every
    call so they can be recomputed at any time, e.g. for a resyncing client.
    """

    def __init__(self, entries: Iterable[LedgerEntry] = ()):
        self._lock = threading.Lock()
        self._by_room: Dict[str, List[LedgerEntry]] = {}
        last = 0
        for e in sorted(entries, key=lambda e: e.seq):
            self._by_room.setdefault(e.room_id, []).append(e)
            last = e.seq
        start = last + 1
        self._seq = itertools.count(start)

    @classmethod
    def replay(cls, entries: Iterable[LedgerEntry]) -> 'ScoreLedger':
        return cls(entries)

    def record(
        self,
        room_id: str,
        player_id: str,
        round_index: int,
        kind: str,
        outcome: Optional[str],
        score: int,
        recorded_at: float,
    ) -> LedgerEntry:
        with self._lock:
            entry = LedgerEntry(
                seq=next(self._seq),
                room_id=room_id,
                player_id=player_id,
                round_index=round_index,
                kind=kind,
                outcome=outcome,
                score=int(score),
                recorded_at=recorded_at,
            )
            self._by_room.setdefault(room_id, []).append(entry)
            return entry

    def entries(self, room_id: str) -> List[LedgerEntry]:
        with self._lock:
            return list(self._by_room.get(room_id, ()))

    def forget(self, room_id: str) -> int:
        """Release a removed room's entries; they must already be persisted."""
        with self._lock:
            return len(self._by_room.pop(room_id, ()))

    def round_scores(self, room_id: str, round_index: int) -> Dict[str, int]:
        scores: Dict[str, int] = {}
        for e in self.entries(room_id):
            if e.round_index == round_index:
                scores[e.player_id] = scores.get(e.player_id, 0) + e.score
        return scores

    def leaderboard(
        self,
        room_id: str,
        include: Iterable[str] = (),
        exclude: Iterable[str] = (),
    ) -> List[LeaderboardRow]:
        """Rank players by total, earliest to reach that total first.

        ``include`` seeds players without entries yet at zero, ranked after
        everyone who has a zero entry. ``exclude`` drops players entirely,
        entries or not.
        """
        excluded = set(exclude)
        totals: Dict[str, int] = {}
        reached: Dict[str, float] = {}
        for e in self.entries(room_id):
            if e.player_id in excluded:
                continue
            if e.player_id not in totals:
                totals[e.player_id] = 0
                reached[e.player_id] = e.recorded_at
            if e.score:
                totals[e.player_id] += e.score
                reached[e.player_id] = e.recorded_at
        for pid in include:
            if pid not in totals and pid not in excluded:
                totals[pid] = 0
                reached[pid] = float('inf')
        rows = [LeaderboardRow(pid, totals[pid], reached[pid]) for pid in totals]
        rows.sort(key=lambda r: (-r.total, r.reached_at, r.player_id))
        return rows
