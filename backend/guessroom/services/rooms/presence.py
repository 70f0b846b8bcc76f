from __future__ import annotations

import logging
import queue
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple


logger = logging.getLogger(__name__)

SNAPSHOT = 'room_snapshot'
EVENT = 'room_event'

Listener = Callable[[str, Dict[str, Any]], None]


@dataclass(frozen=True)
class RoomEvent:
    room_id: str
    seq: int
    type: str
    payload: Dict[str, Any]
    emitted_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'room_id': self.room_id,
            'seq': self.seq,
            'type': self.type,
            'payload': self.payload,
            'emitted_at': self.emitted_at,
        }


class Subscription:
    """A client's view of one room: a snapshot, then every later event in order."""

    def __init__(self, hub: 'PresenceHub', room_id: str, listener: Optional[Listener] = None):
        self.id = uuid.uuid4().hex
        self.room_id = room_id
        self.last_seq = 0
        self.closed = False
        self._hub = hub
        self._listener = listener
        self._queue: 'queue.Queue[Dict[str, Any]]' = queue.Queue()

    def _deliver(self, name: str, message: Dict[str, Any]) -> None:
        if name == EVENT:
            self.last_seq = message['seq']
        if self._listener is not None:
            self._listener(name, message)
        elif name == EVENT:
            # Pull-mode subscribers only; listeners get events pushed.
            self._queue.put(message)

    def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        try:
            return self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[Dict[str, Any]]:
        events = []
        while True:
            item = self.get()
            if item is None:
                return events
            events.append(item)

    def close(self) -> None:
        self._hub.unsubscribe(self)


class PresenceHub:
    """Per-room totally ordered event log with fan-out to subscribers.

    Callers that mutate room state must publish while still holding that
    room's lock, and must build the snapshot handed to ``subscribe`` under the
    same lock; that is what makes snapshot + events gap- and duplicate-free.
    """

    def __init__(self, log_size: int = 500, clock: Callable[[], float] = time.time):
        self._lock = threading.RLock()
        self._clock = clock
        self._log_size = log_size
        self._subs: Dict[str, Dict[str, Subscription]] = {}
        self._seq: Dict[str, int] = {}
        self._log: Dict[str, Deque[RoomEvent]] = {}
        self._closed: Set[str] = set()

    def last_seq(self, room_id: str) -> int:
        with self._lock:
            return self._seq.get(room_id, 0)

    def subscribe(
        self,
        room_id: str,
        snapshot: Dict[str, Any],
        listener: Optional[Listener] = None,
    ) -> Tuple[Dict[str, Any], Subscription]:
        with self._lock:
            sub = Subscription(self, room_id, listener)
            seq = self._seq.get(room_id, 0)
            snapshot = dict(snapshot, seq=seq)
            sub.last_seq = seq
            if room_id in self._closed:
                sub.closed = True
            else:
                self._subs.setdefault(room_id, {})[sub.id] = sub
            self._send(sub, SNAPSHOT, snapshot)
            logger.debug(f"[subscribe] room={room_id} sub={sub.id} seq={seq}")
            return snapshot, sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            sub.closed = True
            self._subs.get(sub.room_id, {}).pop(sub.id, None)

    def publish(self, room_id: str, type: str, payload: Dict[str, Any]) -> Optional[RoomEvent]:
        with self._lock:
            if room_id in self._closed:
                logger.info(f"[publish-drop] room={room_id} type={type} channel closed")
                return None
            seq = self._seq.get(room_id, 0) + 1
            self._seq[room_id] = seq
            event = RoomEvent(room_id=room_id, seq=seq, type=type, payload=payload, emitted_at=self._clock())
            self._log.setdefault(room_id, deque(maxlen=self._log_size)).append(event)
            message = event.to_dict()
            for sub in list(self._subs.get(room_id, {}).values()):
                self._send(sub, EVENT, message)
            return event

    def close_room(self, room_id: str) -> None:
        with self._lock:
            self._closed.add(room_id)
            for sub in self._subs.pop(room_id, {}).values():
                sub.closed = True

    def forget(self, room_id: str) -> None:
        with self._lock:
            self.close_room(room_id)
            self._closed.discard(room_id)
            self._seq.pop(room_id, None)
            self._log.pop(room_id, None)

    def history(self, room_id: str) -> List[RoomEvent]:
        with self._lock:
            return list(self._log.get(room_id, ()))

    def subscriber_count(self, room_id: str) -> int:
        with self._lock:
            return len(self._subs.get(room_id, {}))

    def _send(self, sub: Subscription, name: str, message: Dict[str, Any]) -> None:
        try:
            sub._deliver(name, message)
        except Exception:
            logger.exception(f"[deliver-fail] room={sub.room_id} sub={sub.id}; detaching subscriber")
            self.unsubscribe(sub)
