import signal
from threading import Event
from typing import Any, Dict

EXIT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SigHandler:
    """
    Turns SIGINT/SIGTERM into an exit event for the current job. Installing
    a handler clears any earlier event; `restore` puts back the handlers
    that were active before.
    """

    _exit_event = Event()

    def __init__(self) -> None:
        SigHandler._exit_event.clear()
        self._previous: Dict[int, Any] = {}
        for signum in EXIT_SIGNALS:
            self._previous[signum] = signal.signal(signum, SigHandler._handler)

    def restore(self) -> None:
        for signum, handler in self._previous.items():
            # None: the old handler was not installed from Python
            if handler is not None:
                signal.signal(signum, handler)
        self._previous.clear()

    @staticmethod
    def _handler(signum: int, stack: Any) -> None:
        SigHandler._exit_event.set()

    @staticmethod
    def wait_until_exit(timeout: float = 1.0) -> bool:
        """Sleep up to timeout seconds. Return True immediately if triggered."""
        return SigHandler._exit_event.wait(timeout=timeout)

    @staticmethod
    def set() -> None:
        SigHandler._exit_event.set()

    @staticmethod
    def clear() -> None:
        SigHandler._exit_event.clear()
