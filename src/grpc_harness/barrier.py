import logging
import threading
import typing as t


log = logging.getLogger(__name__)


class CompletionBarrier:
    """Invokes ``on_complete`` once ``expected`` signals have been received.

    Only the number of signals matters, not which one arrives last. Signals
    after the count reached zero are ignored, the callback never fires twice.
    """

    def __init__(self, expected: int, on_complete: t.Callable[[], None]) -> None:
        if expected < 1:
            raise ValueError("Expected count must be positive, got {!r}".format(expected))
        self._expected = expected
        self._remaining = expected
        self._on_complete = on_complete
        self._lock = threading.Lock()

    @property
    def expected(self) -> int:
        return self._expected

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def fired(self) -> bool:
        return self._remaining == 0

    def signal(self) -> None:
        with self._lock:
            if self._remaining == 0:
                log.debug("Ignoring signal on exhausted barrier %r", self)
                return
            self._remaining -= 1
            last = self._remaining == 0
        if last:
            self._on_complete()

    def __repr__(self) -> str:
        return "CompletionBarrier(remaining={}/{})".format(
            self._remaining, self._expected
        )


def multi_done(done: t.Callable[[], None], count: int) -> t.Callable[[], None]:
    """Returns a signal function calling ``done`` after ``count`` calls."""
    return CompletionBarrier(count, done).signal
