import logging
import time
from typing import Callable


class ScheduledCall:
    """Handle for a deferred callback. Cancelling twice is harmless."""

    def __init__(self, delay: float, label: str = ''):
        self.delay = delay
        self.label = label
        self.deadline = time.time() + delay
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self):
        return f"<ScheduledCall {self.label} delay={self.delay} cancelled={self.cancelled}>"


class RoundScheduler:
    """Runs cancellable deferred callbacks on Socket.IO background tasks.

    - One background task per scheduled call
    - Sleeps with ``socketio.sleep`` so it cooperates with eventlet/gevent
    - Skips the callback when the call was cancelled in the meantime; the
      callback itself still re-checks room state, since cancelling is only
      a hint to a task that may already be waking up
    """

    def __init__(self, socketio, logger=None, heartbeat_sec: int = 0):
        self._socketio = socketio
        self._logger = logger or logging.getLogger(__name__)
        self._heartbeat_sec = heartbeat_sec

    def schedule(self, delay: float, callback: Callable, *args, label: str = '') -> ScheduledCall:
        call = ScheduledCall(delay, label)
        self._logger.info(f"[timer-set] {label} duration={delay}s deadline={call.deadline:.3f}")
        self._socketio.start_background_task(self._worker, call, callback, args)
        return call

    def _worker(self, call: ScheduledCall, callback: Callable, args) -> None:
        hb = self._heartbeat_sec
        if hb and hb > 0:
            slept = 0
            while slept < call.delay and not call.cancelled:
                step = min(hb, call.delay - slept)
                self._socketio.sleep(step)
                slept += step
                self._logger.info(f"[timer-heartbeat] {call.label} remaining={max(0, call.delay - slept)}s")
        else:
            self._socketio.sleep(call.delay)

        if call.cancelled:
            self._logger.info(f"[timer-abort] {call.label} cancelled")
            return
        call.fired = True
        self._logger.info(f"[timer-fire] {call.label}")
        try:
            callback(*args)
        except Exception:
            self._logger.exception(f"[timer-error] {call.label}")
