"""Coordination of worker shutdown and the final protocol status."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


class Stopped(Exception):
    """Raised by a worker when it was asked to stop."""

    def __init__(self, message: str = "stopped") -> None:
        super().__init__(message)


@dataclass
class NodeStatus:
    """Final status of a node."""

    protocol: Any = None


class WorkErrorNotifier:
    """Lets the first failing worker tell all the others to exit.

    The first call to :meth:`fail` records the error and sets
    :attr:`exit_event`. The protocol worker records the final status with
    :meth:`set_exit_status`, which sets :attr:`exit_status_event`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._err: BaseException | None = None
        self._exit_status: NodeStatus | None = None
        self._exit_status_err: BaseException | None = None
        self.exit_event = threading.Event()
        self.exit_status_event = threading.Event()

    @property
    def err(self) -> BaseException | None:
        """The error passed to the first call of :meth:`fail`, if any."""
        with self._lock:
            return self._err

    def fail(self, err: BaseException) -> None:
        """Record ``err`` if no error is recorded yet and signal exit."""
        if err is None:
            raise ValueError("fail requires an error")
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            self.exit_event.set()

    def set_exit_status(
        self, status: NodeStatus | None, err: BaseException | None
    ) -> None:
        """Record the final status and any error met while obtaining it."""
        with self._lock:
            if self.exit_status_event.is_set():
                raise RuntimeError("exit status already set")
            self._exit_status = status
            self._exit_status_err = err
            self.exit_status_event.set()

    def exit_status(self) -> tuple[NodeStatus | None, BaseException | None]:
        """Return the recorded status and error, or ``(None, None)``."""
        with self._lock:
            return self._exit_status, self._exit_status_err