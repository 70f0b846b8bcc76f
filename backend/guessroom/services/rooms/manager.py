from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .content import ContentProvider, StaticContentProvider
from .errors import InvariantViolation, RoomNotFound
from .ledger import ScoreLedger
from .machine import RoomStateMachine, coerce_settings, validate_settings
from .presence import Listener, PresenceHub, Subscription
from .scoring import ScoringRules
from .state import PlayerState, RoomSettings, RoomState, RoomStatus
from .store import NullRoomStore, RoomStore
from .timer import RoundTimer, TimerHandle


logger = logging.getLogger(__name__)


class RoomManager:
    """Registry of live rooms and the single writer for each of them.

    Every operation on a room, including timer expiry, runs under that room's
    lock; events produced by the operation are published before the lock is
    released so subscribers see them in application order.
    """

    def __init__(
        self,
        content_provider: Optional[ContentProvider] = None,
        ledger: Optional[ScoreLedger] = None,
        hub: Optional[PresenceHub] = None,
        store: Optional[RoomStore] = None,
        spawn: Optional[Callable[..., object]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        default_settings: Optional[RoomSettings] = None,
        scoring: Optional[ScoringRules] = None,
        close_threshold: Optional[float] = None,
        heartbeat_sec: float = 0,
        chat_limit: int = 200,
        recent_guesses_limit: int = 10,
    ):
        self.content_provider = content_provider or StaticContentProvider()
        self.ledger = ledger or ScoreLedger()
        self.hub = hub or PresenceHub(clock=clock)
        self.store = store or NullRoomStore()
        self.timer = RoundTimer(
            self._on_timer_expired,
            spawn=spawn,
            sleep=sleep,
            clock=clock,
            heartbeat_sec=heartbeat_sec,
        )
        self.default_settings = default_settings or RoomSettings()
        self._clock = clock
        self._scoring = scoring or ScoringRules()
        self._close_threshold = close_threshold
        self._chat_limit = chat_limit
        self._recent_guesses_limit = recent_guesses_limit
        self._registry_lock = threading.Lock()
        self._rooms: Dict[str, RoomStateMachine] = {}
        self._locks: Dict[str, threading.RLock] = {}

    # ---- registry ----

    def create_room(self, name: str = '', settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        room_settings = coerce_settings(self.default_settings, settings or {})
        validate_settings(room_settings)
        content = list(self.content_provider.get_content_sequence(room_settings))
        with self._registry_lock:
            room_id = uuid.uuid4().hex
            while room_id in self._rooms:
                room_id = uuid.uuid4().hex
            room = RoomState(
                id=room_id,
                name=(name or '').strip() or f'Room {room_id[:6]}',
                settings=room_settings,
                content_sequence=content,
                created_at=self._clock(),
                empty_since=self._clock(),
            )
            machine = RoomStateMachine(
                room,
                self.ledger,
                self.timer,
                content_provider=self.content_provider,
                scoring=self._scoring,
                clock=self._clock,
                close_threshold=self._close_threshold,
                chat_limit=self._chat_limit,
                recent_guesses_limit=self._recent_guesses_limit,
            )
            self._rooms[room_id] = machine
            self._locks[room_id] = threading.RLock()
        logger.info(f"[room-create] room={room_id} rounds={len(content)}")
        self.store.save_room(room)
        return machine.snapshot()

    def get(self, room_id: str) -> RoomStateMachine:
        with self._registry_lock:
            machine = self._rooms.get(room_id)
        if machine is None:
            raise RoomNotFound(f'Room {room_id} not found', room_id=room_id)
        return machine

    def list_rooms(self, include_finished: bool = False) -> List[Dict[str, Any]]:
        with self._registry_lock:
            machines = list(self._rooms.values())
        rows = []
        for m in machines:
            room = m.room
            if room.status == RoomStatus.FINISHED and not include_finished:
                continue
            rows.append({
                'id': room.id,
                'name': room.name,
                'status': room.status.value,
                'active_count': room.active_count,
                'max_players': room.settings.max_players,
                'created_at': room.created_at,
            })
        return sorted(rows, key=lambda r: r['created_at'])

    def cleanup_candidates(self, ttl_sec: float, now: Optional[float] = None) -> List[str]:
        """Rooms an external housekeeper may remove: empty past the TTL, or finished."""
        now = self._clock() if now is None else now
        with self._registry_lock:
            machines = list(self._rooms.values())
        ids = []
        for m in machines:
            room = m.room
            if room.status == RoomStatus.FINISHED:
                ids.append(room.id)
            elif room.empty_since is not None and now - room.empty_since >= ttl_sec:
                ids.append(room.id)
        return ids

    def remove_room(self, room_id: str) -> bool:
        with self._locked(room_id) as machine:
            if not machine.room.canceled and machine.room.status != RoomStatus.FINISHED:
                machine.cancel('removed')
                self._flush(machine)
            self.timer.cancel_room(room_id)
            self.hub.forget(room_id)
            self.ledger.forget(room_id)
        with self._registry_lock:
            self._rooms.pop(room_id, None)
            self._locks.pop(room_id, None)
        logger.info(f"[room-remove] room={room_id}")
        return True

    def sweep(self, ttl_sec: float, now: Optional[float] = None) -> List[str]:
        removed = []
        for room_id in self.cleanup_candidates(ttl_sec, now):
            try:
                self.remove_room(room_id)
            except RoomNotFound:
                continue
            removed.append(room_id)
        return removed

    # ---- serialization point ----

    @contextmanager
    def _locked(self, room_id: str) -> Iterator[RoomStateMachine]:
        machine = self.get(room_id)
        with self._registry_lock:
            lock = self._locks.get(room_id)
        if lock is None:
            raise RoomNotFound(f'Room {room_id} not found', room_id=room_id)
        with lock:
            yield machine

    def _apply(self, room_id: str, op: Callable[[RoomStateMachine], Any]) -> Any:
        with self._locked(room_id) as machine:
            try:
                result = op(machine)
            finally:
                # Rejected operations queue nothing; partial work still goes out.
                self._flush(machine)
            return result

    def _flush(self, machine: RoomStateMachine) -> None:
        events, entries = machine.drain()
        try:
            machine.check_invariants()
        except InvariantViolation as exc:
            # Entries are already in the in-memory ledger; keep the store in step.
            if entries:
                self.store.append_entries(entries)
            self._resync(machine, exc)
            raise
        for event_type, payload in events:
            self.hub.publish(machine.id, event_type, payload)
        if events or entries:
            self.store.save_room(machine.room)
        if entries:
            self.store.append_entries(entries)
        if machine.room.canceled:
            self.hub.close_room(machine.id)

    def _resync(self, machine: RoomStateMachine, exc: InvariantViolation) -> None:
        logger.error(f"[invariant] room={machine.id} {exc.detail}; forcing resync")
        self.timer.cancel_room(machine.id)
        self.hub.publish(machine.id, 'resync', {'reason': exc.detail, 'snapshot': machine.snapshot()})

    def _on_timer_expired(self, handle: TimerHandle) -> None:
        try:
            self._apply(handle.room_id, lambda m: m.expire(handle.round_index))
        except RoomNotFound:
            logger.info(f"[timer-drop] room={handle.room_id} round={handle.round_index} room gone")
        except InvariantViolation:
            # Already logged and resynced by _flush; nothing to propagate to.
            pass

    # ---- operations ----

    def join(self, room_id: str, player_id: str, display_name: Optional[str] = None) -> PlayerState:
        return self._apply(room_id, lambda m: m.join(player_id, display_name))

    def leave(self, room_id: str, player_id: str) -> PlayerState:
        return self._apply(room_id, lambda m: m.leave(player_id))

    def kick(self, room_id: str, requested_by: str, player_id: str) -> PlayerState:
        return self._apply(room_id, lambda m: m.kick(requested_by, player_id))

    def transfer_host(self, room_id: str, requested_by: str, player_id: str) -> None:
        return self._apply(room_id, lambda m: m.transfer_host(requested_by, player_id))

    def update_settings(self, room_id: str, requested_by: str, changes: Dict[str, Any]) -> RoomSettings:
        return self._apply(room_id, lambda m: m.update_settings(requested_by, changes))

    def post_chat(self, room_id: str, player_id: str, text: str):
        return self._apply(room_id, lambda m: m.post_chat(player_id, text))

    def start_game(self, room_id: str, requested_by: Optional[str] = None) -> Dict[str, Any]:
        def op(m: RoomStateMachine) -> Dict[str, Any]:
            m.start_game(requested_by)
            return m.snapshot(requested_by)
        return self._apply(room_id, op)

    def submit_guess(self, room_id: str, player_id: str, round_index: Any, text: str):
        return self._apply(room_id, lambda m: m.submit_guess(player_id, round_index, text))

    def cancel_room(self, room_id: str, reason: str = 'canceled', requested_by: Optional[str] = None) -> None:
        def op(m: RoomStateMachine) -> None:
            if requested_by is not None:
                m.require_host(requested_by)
            m.cancel(reason)
        self._apply(room_id, op)

    def snapshot(self, room_id: str, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        with self._locked(room_id) as machine:
            return dict(machine.snapshot(viewer_id), seq=self.hub.last_seq(room_id))

    def leaderboard(self, room_id: str, visible_only: bool = False) -> Optional[List[Dict[str, Any]]]:
        """Full leaderboard; with ``visible_only``, None while the room hides it."""
        with self._locked(room_id) as machine:
            if visible_only:
                return machine.visible_leaderboard()
            return machine.leaderboard()

    def subscribe(
        self,
        room_id: str,
        viewer_id: Optional[str] = None,
        listener: Optional[Listener] = None,
    ) -> Tuple[Dict[str, Any], Subscription]:
        """Fresh snapshot plus every later event, with nothing missed in between."""
        with self._locked(room_id) as machine:
            return self.hub.subscribe(room_id, machine.snapshot(viewer_id), listener)

    def unsubscribe(self, sub: Subscription) -> None:
        self.hub.unsubscribe(sub)
