"""Trailing-edge debounce for callables run on a timer thread."""
import functools
import threading


class Debounced:
    """
    Wraps func so that a burst of calls within `delay` seconds runs it once,
    with the arguments of the last call. Earlier calls in the burst are dropped.
    """

    def __init__(self, func, delay: float, timer_factory=threading.Timer):
        self.func = func
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._pending = None
        self._running = 0
        functools.update_wrapper(self, func)

    @property
    def pending(self) -> bool:
        """True from the first call until the coalesced call has returned."""
        with self._lock:
            return self._pending is not None or self._running > 0

    def __call__(self, *args, **kwargs) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = (args, kwargs)
            self._timer = self._timer_factory(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _take(self, run=False):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            call, self._pending, self._timer = self._pending, None, None
            if run and call is not None:
                self._running += 1
        return call

    def _run(self, call):
        args, kwargs = call
        try:
            return self.func(*args, **kwargs)
        finally:
            with self._lock:
                self._running -= 1

    def _fire(self):
        call = self._take(run=True)
        if call is not None:
            self._run(call)

    def flush(self):
        """Run the pending call now, if any, and return its result."""
        call = self._take(run=True)
        if call is None:
            return None
        return self._run(call)

    def cancel(self) -> None:
        self._take()


def debounce(delay: float):
    def decorator(func):
        return Debounced(func, delay)
    return decorator
