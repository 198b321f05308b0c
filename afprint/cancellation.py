"""Turn terminating signals into exceptions so scoped cleanup runs.

The handlers only raise; temporary media and conversion workers are released
by the context managers and finally blocks the exception unwinds through.
Once unwinding is done, reraise() restores the default disposition and sends
the signal again so the exit status still reports it.
"""
import os
import signal
import sys
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from types import FrameType
from typing import NoReturn

TERMINATING_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP") if hasattr(signal, name)
)


class SignalReceived(BaseException):
    def __init__(self, signum: int) -> None:
        super().__init__(f"interrupted by {signal.Signals(signum).name}")
        self.signum = signum


def _raise_signal(signum: int, frame: FrameType | None) -> None:
    raise SignalReceived(signum)


@contextmanager
def signals_as_exceptions(
    signals: Iterable[int] = TERMINATING_SIGNALS,
) -> Generator[None, None, None]:
    """Raise SignalReceived in the main thread while the block runs."""
    previous = {}
    try:
        for signum in signals:
            previous[signum] = signal.signal(signum, _raise_signal)
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def reraise(signum: int) -> NoReturn:
    signal.signal(signum, signal.SIG_DFL)
    os.kill(os.getpid(), signum)
    # Not reached on POSIX.
    sys.exit(128 + signum)
