from __future__ import annotations

import logging
import time
import uuid
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .content import ContentProvider
from .errors import (
    ChatDisabled,
    InvalidSettings,
    InvariantViolation,
    NotEnoughPlayers,
    NotHost,
    PlayerNotInRoom,
    RoomFinished,
    RoomFull,
    RoundNotActive,
    StaleRound,
)
from .evaluator import Outcome, ToleranceMode, evaluate
from .ledger import GUESS, UNANSWERED, LedgerEntry, ScoreLedger
from .scoring import ScoringRules
from .state import (
    ALLOWED_TRANSITIONS,
    ConnectionState,
    GuessRecord,
    PlayerState,
    RoomSettings,
    RoomState,
    RoomStatus,
    RoundState,
    RoundStatus,
)
from .timer import RoundTimer, TimerHandle


logger = logging.getLogger(__name__)

MIN_ROUND_DURATION_SEC = 5
MAX_ROUND_DURATION_SEC = 600
MAX_GUESS_LENGTH = 200


def coerce_settings(base: RoomSettings, changes: Dict[str, Any]) -> RoomSettings:
    unknown = set(changes) - RoomSettings.field_names()
    if unknown:
        raise InvalidSettings(f"Unknown settings: {', '.join(sorted(unknown))}")
    coerced: Dict[str, Any] = {}
    try:
        for key, value in changes.items():
            if key in ('allow_chat', 'show_leaderboard'):
                coerced[key] = bool(value)
            elif key == 'tolerance':
                coerced[key] = ToleranceMode(value)
            else:
                coerced[key] = int(value)
    except (TypeError, ValueError):
        raise InvalidSettings(f"Invalid value for setting '{key}'")
    return replace(base, **coerced)


def validate_settings(settings: RoomSettings, active_count: int = 0) -> None:
    if settings.min_players < 1:
        raise InvalidSettings('min_players must be at least 1')
    if settings.max_players < 2:
        raise InvalidSettings('max_players must be at least 2')
    if settings.max_players < settings.min_players:
        raise InvalidSettings('max_players cannot be lower than min_players')
    if settings.max_players < active_count:
        raise InvalidSettings(f'{active_count} players are already connected')
    if not MIN_ROUND_DURATION_SEC <= settings.round_duration_seconds <= MAX_ROUND_DURATION_SEC:
        raise InvalidSettings(
            f'round_duration_seconds must be within {MIN_ROUND_DURATION_SEC}..{MAX_ROUND_DURATION_SEC}'
        )
    if settings.rounds < 1:
        raise InvalidSettings('rounds must be at least 1')


class RoomStateMachine:
    """Lifecycle of a single room: roster, rounds, guesses and resolution.

    Not thread-safe on its own; ``RoomManager`` serializes every call per
    room. State-changing calls queue events which the manager drains and
    publishes, together with the ledger entries appended during the call.
    """

    def __init__(
        self,
        room: RoomState,
        ledger: ScoreLedger,
        timer: RoundTimer,
        content_provider: Optional[ContentProvider] = None,
        scoring: Optional[ScoringRules] = None,
        clock: Callable[[], float] = time.time,
        close_threshold: Optional[float] = None,
        chat_limit: int = 200,
        recent_guesses_limit: int = 10,
    ):
        self.room = room
        self._ledger = ledger
        self._timer = timer
        self._content_provider = content_provider
        self._scoring = scoring or ScoringRules()
        self._clock = clock
        self._close_threshold = close_threshold
        self._chat_limit = chat_limit
        self._recent_guesses_limit = recent_guesses_limit
        self._timer_handle: Optional[TimerHandle] = None
        self._outbox: List[Tuple[str, Dict[str, Any]]] = []
        self._new_entries: List[LedgerEntry] = []

    @property
    def id(self) -> str:
        return self.room.id

    def drain(self) -> Tuple[List[Tuple[str, Dict[str, Any]]], List[LedgerEntry]]:
        events, entries = self._outbox, self._new_entries
        self._outbox, self._new_entries = [], []
        return events, entries

    def _emit(self, event_type: str, **payload: Any) -> None:
        self._outbox.append((event_type, payload))

    def _transition(self, status: RoomStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[self.room.status]:
            raise InvariantViolation(self.room.id, f"illegal transition {self.room.status.value} -> {status.value}")
        logger.info(f"[room-status] room={self.room.id} {self.room.status.value} -> {status.value}")
        self.room.status = status

    def _player(self, player_id: str) -> PlayerState:
        player = self.room.players.get(player_id)
        if player is None:
            raise PlayerNotInRoom(f"Player {player_id} is not in this room", player_id=player_id)
        return player

    def require_host(self, requested_by: Optional[str]) -> None:
        if requested_by != self.room.host_id:
            raise NotHost('Only the host may do that', host_id=self.room.host_id)

    # ---- roster ----

    def join(self, player_id: str, display_name: Optional[str] = None) -> PlayerState:
        room = self.room
        if room.status == RoomStatus.FINISHED:
            raise RoomFinished('This room has finished')
        name = (display_name or '').strip()
        player = room.players.get(player_id)
        if player is not None and player.connected:
            if name and name != player.display_name:
                player.display_name = name
                self._emit('player_joined', player=player.to_dict(), rejoined=True, active_count=room.active_count)
            return player
        if room.active_count >= room.settings.max_players:
            raise RoomFull(f'Room is full ({room.settings.max_players} players)')

        rejoined = player is not None
        if player is None:
            player = PlayerState(id=player_id, display_name=name or player_id, joined_at=self._clock())
            room.players[player_id] = player
        else:
            player.connection_state = ConnectionState.CONNECTED
            if name:
                player.display_name = name
        room.empty_since = None
        logger.info(f"[join] room={room.id} player={player_id} rejoined={rejoined} active={room.active_count}")
        self._emit('player_joined', player=player.to_dict(), rejoined=rejoined, active_count=room.active_count)

        host = room.players.get(room.host_id) if room.host_id else None
        if host is None or not host.connected:
            self._set_host(player_id)
        return player

    def leave(self, player_id: str) -> PlayerState:
        player = self._player(player_id)
        if not player.connected:
            return player
        player.connection_state = ConnectionState.DISCONNECTED
        logger.info(f"[leave] room={self.room.id} player={player_id} active={self.room.active_count}")
        self._emit('player_left', player=player.to_dict(), active_count=self.room.active_count)
        self._after_departure(player_id)
        return player

    def kick(self, requested_by: str, player_id: str) -> PlayerState:
        self.require_host(requested_by)
        player = self._player(player_id)
        if player.connection_state == ConnectionState.LEFT:
            return player
        player.connection_state = ConnectionState.LEFT
        logger.info(f"[kick] room={self.room.id} player={player_id} by={requested_by}")
        self._emit('player_kicked', player=player.to_dict(), active_count=self.room.active_count)
        self._after_departure(player_id)
        return player

    def transfer_host(self, requested_by: str, player_id: str) -> None:
        self.require_host(requested_by)
        target = self._player(player_id)
        if not target.connected:
            raise PlayerNotInRoom(f"Player {player_id} is not connected", player_id=player_id)
        self._set_host(player_id)

    def _after_departure(self, player_id: str) -> None:
        room = self.room
        if room.host_id == player_id:
            successors = sorted(room.active_players, key=lambda p: p.joined_at)
            if successors:
                self._set_host(successors[0].id)
        if room.active_count == 0 and room.empty_since is None:
            room.empty_since = self._clock()
        self._check_resolution()

    def _set_host(self, player_id: str) -> None:
        if self.room.host_id == player_id:
            return
        self.room.host_id = player_id
        self._emit('host_changed', host_id=player_id)

    # ---- settings / chat ----

    def update_settings(self, requested_by: str, changes: Dict[str, Any]) -> RoomSettings:
        self.require_host(requested_by)
        if self.room.status != RoomStatus.WAITING:
            raise InvalidSettings('Settings are locked once the game has started')
        settings = coerce_settings(self.room.settings, changes)
        validate_settings(settings, active_count=self.room.active_count)
        refresh = settings.rounds != self.room.settings.rounds
        self.room.settings = settings
        if refresh and self._content_provider is not None:
            self.room.content_sequence = list(self._content_provider.get_content_sequence(settings))
        self._emit('settings_updated', settings=settings.to_dict(), total_rounds=len(self.room.content_sequence))
        return settings

    def post_chat(self, player_id: str, text: str) -> Optional[Dict[str, Any]]:
        if not self.room.settings.allow_chat:
            raise ChatDisabled('Chat is disabled in this room')
        player = self._player(player_id)
        if not player.connected:
            raise PlayerNotInRoom(f"Player {player_id} is not connected", player_id=player_id)
        text = (text or '').strip()
        if not text:
            return None
        message = {
            'id': uuid.uuid4().hex,
            'player_id': player_id,
            'display_name': player.display_name,
            'text': text[:500],
            'sent_at': self._clock(),
        }
        self.room.chat.append(message)
        if len(self.room.chat) > self._chat_limit:
            self.room.chat = self.room.chat[-self._chat_limit:]
        self._emit('chat_message', message=message)
        return message

    # ---- game flow ----

    def start_game(self, requested_by: Optional[str] = None) -> None:
        room = self.room
        if room.status == RoomStatus.FINISHED:
            raise RoomFinished('This room has finished')
        if room.status == RoomStatus.PLAYING:
            return
        if requested_by is not None:
            self.require_host(requested_by)
        if room.active_count < room.settings.min_players:
            raise NotEnoughPlayers(
                f'At least {room.settings.min_players} players are required to start',
                active_count=room.active_count,
            )
        if not room.content_sequence:
            raise InvalidSettings('No content available for this room')
        self._transition(RoomStatus.PLAYING)
        self._emit('game_started', total_rounds=len(room.content_sequence))
        self._begin_round(0)

    def _begin_round(self, index: int) -> None:
        room = self.room
        now = self._clock()
        duration = room.settings.round_duration_seconds
        rnd = RoundState(
            round_index=index,
            content=room.content_sequence[index],
            started_at=now,
            deadline_at=now + duration,
        )
        room.rounds.append(rnd)
        room.current_round_index = index
        self._timer_handle = self._timer.start(room.id, index, duration)
        logger.info(f"[round-start] room={room.id} round={index} content={rnd.content.id}")
        self._emit('round_started', round=rnd.to_dict(), server_time=now)

    def submit_guess(self, player_id: str, round_index: Any, text: str) -> GuessRecord:
        room = self.room
        player = self._player(player_id)
        if not player.connected:
            raise PlayerNotInRoom(f"Player {player_id} is not connected", player_id=player_id)
        if room.status == RoomStatus.FINISHED:
            raise RoomFinished('This room has finished')
        if room.status == RoomStatus.WAITING:
            raise RoundNotActive('The game has not started yet')
        try:
            round_index = int(round_index)
        except (TypeError, ValueError):
            raise StaleRound('Unknown round', current_round_index=room.current_round_index)
        if round_index != room.current_round_index:
            raise StaleRound(
                f'Round {round_index} is not the current round',
                current_round_index=room.current_round_index,
            )
        rnd = room.current_round
        if rnd is None or not rnd.active:
            raise RoundNotActive(f'Round {round_index} is already resolved')

        now = self._clock()
        text = (text or '')[:MAX_GUESS_LENGTH]
        outcome = evaluate(text, rnd.content.answers, room.settings.tolerance, self._close_threshold)
        late = now >= rnd.deadline_at
        score = 0
        if not late and player_id not in rnd.answered:
            score = self._scoring.points_for(outcome, now - rnd.started_at, room.settings.round_duration_seconds)
            if outcome in (Outcome.EXACT, Outcome.CLOSE):
                rnd.answered.add(player_id)

        guess = GuessRecord(
            id=uuid.uuid4().hex,
            player_id=player_id,
            round_index=round_index,
            raw_text=text,
            submitted_at=now,
            outcome=outcome,
            score_awarded=score,
        )
        rnd.guesses.append(guess)
        self._new_entries.append(
            self._ledger.record(room.id, player_id, round_index, GUESS, outcome.value, score, now)
        )
        logger.info(
            f"[guess] room={room.id} round={round_index} player={player_id} outcome={outcome.value} score={score} late={late}"
        )
        self._emit('guess_resolved', guess=guess.to_dict(hide_exact_text=True), answered=sorted(rnd.answered))
        self._check_resolution()
        return guess

    def expire(self, round_index: int) -> bool:
        """Timer expiry for ``round_index``; False when the expiry is stale."""
        rnd = self.room.current_round
        if (
            self.room.status != RoomStatus.PLAYING
            or rnd is None
            or rnd.round_index != round_index
            or not rnd.active
        ):
            logger.info(f"[timer-drop] room={self.room.id} round={round_index} already resolved")
            return False
        self._resolve_round('timer')
        return True

    def _check_resolution(self) -> None:
        if self.room.status != RoomStatus.PLAYING:
            return
        rnd = self.room.current_round
        if rnd is None or not rnd.active:
            return
        connected = {p.id for p in self.room.active_players}
        if connected and connected <= rnd.answered:
            self._resolve_round('all_answered')
        elif self._clock() >= rnd.deadline_at:
            self._resolve_round('timer')

    def _resolve_round(self, reason: str) -> None:
        room = self.room
        rnd = room.current_round
        now = self._clock()
        rnd.status = RoundStatus.RESOLVED
        rnd.resolved_at = now
        rnd.resolution = reason
        self._timer.cancel(self._timer_handle)
        self._timer_handle = None

        for player in room.players.values():
            if player.connection_state == ConnectionState.LEFT or player.id in rnd.answered:
                continue
            self._new_entries.append(
                self._ledger.record(room.id, player.id, rnd.round_index, UNANSWERED, None, 0, now)
            )

        logger.info(f"[round-resolve] room={room.id} round={rnd.round_index} reason={reason}")
        payload = {
            'round_index': rnd.round_index,
            'reason': reason,
            'answers': list(rnd.content.answers),
            'scores': self._ledger.round_scores(room.id, rnd.round_index),
        }
        if room.settings.show_leaderboard:
            payload['leaderboard'] = self.leaderboard()
        self._emit('round_resolved', **payload)

        next_index = rnd.round_index + 1
        if next_index < len(room.content_sequence):
            self._begin_round(next_index)
        else:
            self._finish()

    def _finish(self) -> None:
        self._transition(RoomStatus.FINISHED)
        self.room.finished_at = self._clock()
        self._emit('game_finished', leaderboard=self.leaderboard())

    def cancel(self, reason: str = 'canceled') -> None:
        room = self.room
        if room.canceled:
            return
        self._timer.cancel_room(room.id)
        self._timer_handle = None
        now = self._clock()
        rnd = room.current_round
        if rnd is not None and rnd.active:
            rnd.status = RoundStatus.RESOLVED
            rnd.resolved_at = now
            rnd.resolution = 'canceled'
        if room.status != RoomStatus.FINISHED:
            self._transition(RoomStatus.FINISHED)
            room.finished_at = now
        room.canceled = True
        logger.info(f"[room-cancel] room={room.id} reason={reason}")
        self._emit('room_canceled', reason=reason, leaderboard=self.leaderboard())

    # ---- views ----

    def leaderboard(self) -> List[Dict[str, Any]]:
        players = self.room.players
        kicked = {pid for pid, p in players.items() if p.connection_state == ConnectionState.LEFT}
        include = [pid for pid in players if pid not in kicked]
        rows = []
        for row in self._ledger.leaderboard(self.room.id, include=include, exclude=kicked):
            d = row.to_dict()
            player = players.get(row.player_id)
            d['display_name'] = player.display_name if player else row.player_id
            rows.append(d)
        return rows

    def visible_leaderboard(self) -> Optional[List[Dict[str, Any]]]:
        """The leaderboard, or None while the room hides it until the game ends."""
        if self.room.settings.show_leaderboard or self.room.status == RoomStatus.FINISHED:
            return self.leaderboard()
        return None

    def recent_guesses(self) -> List[Dict[str, Any]]:
        guesses = [(g, r.active) for r in self.room.rounds for g in r.guesses]
        tail = guesses[-self._recent_guesses_limit:] if self._recent_guesses_limit else []
        return [g.to_dict(hide_exact_text=active) for g, active in tail]

    def snapshot(self, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        room = self.room
        rnd = room.current_round
        payload = {
            'id': room.id,
            'name': room.name,
            'status': room.status.value,
            'settings': room.settings.to_dict(),
            'host_id': room.host_id,
            'created_at': room.created_at,
            'finished_at': room.finished_at,
            'canceled': room.canceled,
            'empty_since': room.empty_since,
            'current_round_index': room.current_round_index,
            'total_rounds': len(room.content_sequence),
            'players': [p.to_dict() for p in sorted(room.players.values(), key=lambda p: p.joined_at)],
            'active_count': room.active_count,
            'round': rnd.to_dict() if rnd else None,
            'recent_guesses': self.recent_guesses(),
            'server_time': self._clock(),
        }
        if room.settings.allow_chat:
            payload['chat'] = list(room.chat)
        board = self.visible_leaderboard()
        if board is not None:
            payload['leaderboard'] = board
        if viewer_id and viewer_id in room.players:
            payload['you'] = room.players[viewer_id].to_dict()
            payload['you']['is_host'] = viewer_id == room.host_id
            payload['you']['answered'] = bool(rnd and viewer_id in rnd.answered)
        return payload

    def check_invariants(self) -> None:
        room = self.room
        active = [r for r in room.rounds if r.active]
        if len(active) > 1:
            raise InvariantViolation(room.id, f"{len(active)} rounds active at once")
        if [r.round_index for r in room.rounds] != list(range(len(room.rounds))):
            raise InvariantViolation(room.id, 'round indices out of order')
        if room.status == RoomStatus.PLAYING:
            if len(active) != 1 or room.current_round_index != len(room.rounds) - 1 or not room.current_round.active:
                raise InvariantViolation(room.id, 'playing room without a single current active round')
        elif active:
            raise InvariantViolation(room.id, f"active round in a {room.status.value} room")
        if room.active_count > room.settings.max_players:
            raise InvariantViolation(room.id, 'active players exceed max_players')
