import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


@dataclass
class TimerHandle:
    room_id: str
    round_index: int
    duration: float
    deadline: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    canceled: bool = False
    fired: bool = False


class RoundTimer:
    """Server-side countdown per room.

    - One live timer per room; starting another cancels the previous one
    - Each started handle expires at most once, and never after cancel
    - ``spawn`` runs the sleeping worker (``socketio.start_background_task``
      in the app); ``sleep`` and ``clock`` are injectable for tests
    """

    def __init__(
        self,
        on_expire: Callable[[TimerHandle], None],
        spawn: Optional[Callable[..., object]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        heartbeat_sec: float = 0,
    ):
        self._on_expire = on_expire
        self._spawn = spawn or _spawn_thread
        self._sleep = sleep
        self._clock = clock
        self._heartbeat_sec = heartbeat_sec
        self._lock = threading.Lock()
        self._active: Dict[str, TimerHandle] = {}

    def start(self, room_id: str, round_index: int, duration_sec: float) -> TimerHandle:
        handle = TimerHandle(
            room_id=room_id,
            round_index=round_index,
            duration=float(duration_sec),
            deadline=self._clock() + float(duration_sec),
        )
        with self._lock:
            previous = self._active.get(room_id)
            if previous is not None:
                previous.canceled = True
            self._active[room_id] = handle
        logger.info(
            f"[timer-set] room={room_id} round={round_index} duration={handle.duration}s deadline={handle.deadline}"
        )
        self._spawn(self._worker, handle)
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is None:
            return
        with self._lock:
            if handle.fired or handle.canceled:
                return
            handle.canceled = True
            if self._active.get(handle.room_id) is handle:
                del self._active[handle.room_id]
        logger.info(f"[timer-cancel] room={handle.room_id} round={handle.round_index}")

    def cancel_room(self, room_id: str) -> None:
        self.cancel(self.active(room_id))

    def active(self, room_id: str) -> Optional[TimerHandle]:
        with self._lock:
            return self._active.get(room_id)

    def _worker(self, handle: TimerHandle) -> None:
        remaining = handle.deadline - self._clock()
        hb = self._heartbeat_sec
        while remaining > 0 and not handle.canceled:
            step = min(hb, remaining) if hb and hb > 0 else remaining
            self._sleep(step)
            remaining = handle.deadline - self._clock()
            if hb and hb > 0 and remaining > 0:
                logger.info(
                    f"[timer-heartbeat] room={handle.room_id} round={handle.round_index} remaining={remaining:.1f}s"
                )
        self._fire(handle)

    def _fire(self, handle: TimerHandle) -> None:
        with self._lock:
            if handle.canceled or handle.fired:
                logger.info(f"[timer-skip] room={handle.room_id} round={handle.round_index} canceled or already fired")
                return
            handle.fired = True
            if self._active.get(handle.room_id) is handle:
                del self._active[handle.room_id]
        logger.info(f"[timer-fire] room={handle.room_id} round={handle.round_index}")
        self._on_expire(handle)


def _spawn_thread(target, *args):
    worker = threading.Thread(target=target, args=args, daemon=True)
    worker.start()
    return worker
