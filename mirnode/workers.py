"""Worker loops that feed event lists through the node's modules.

Each module has an input queue in :class:`WorkChannels`. A worker takes one
event list from its queue, processes it and puts any resulting events on the
shared ``work_item_input`` queue. A worker raises
:class:`~mirnode.notifier.Stopped` once the exit event is set.
"""

from __future__ import annotations

import hashlib
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from mirnode.events import Event
from mirnode.notifier import NodeStatus, Stopped, WorkErrorNotifier
from mirnode.processing import (
    EventProcessingError,
    process_app_events,
    process_client_events,
    process_crypto_events,
    process_hash_events,
    process_protocol_events,
    process_req_store_events,
    process_send_events,
    process_wal_events,
)

_POLL_INTERVAL = 0.05


@dataclass
class Modules:
    """The modules a node is made of."""

    net: Any = None
    wal: Any = None
    request_store: Any = None
    protocol: Any = None
    app: Any = None
    crypto: Any = None
    client_tracker: Any = None
    hasher: Callable[[], Any] = hashlib.sha256


def _new_queue() -> queue.Queue:
    return queue.Queue()


@dataclass
class WorkChannels:
    """One input queue per module and a shared queue for produced events."""

    clients: queue.Queue = field(default_factory=_new_queue)
    protocol: queue.Queue = field(default_factory=_new_queue)
    wal: queue.Queue = field(default_factory=_new_queue)
    hash: queue.Queue = field(default_factory=_new_queue)
    crypto: queue.Queue = field(default_factory=_new_queue)
    net: queue.Queue = field(default_factory=_new_queue)
    app: queue.Queue = field(default_factory=_new_queue)
    req_store: queue.Queue = field(default_factory=_new_queue)
    work_item_input: queue.Queue = field(default_factory=_new_queue)


def _receive(source: queue.Queue, exit_event: threading.Event) -> list[Event]:
    while True:
        try:
            return source.get(timeout=_POLL_INTERVAL)
        except queue.Empty:
            if exit_event.is_set():
                raise Stopped() from None


def _send(
    target: queue.Queue, events: list[Event], exit_event: threading.Event
) -> None:
    while True:
        try:
            target.put(events, timeout=_POLL_INTERVAL)
            return
        except queue.Full:
            if exit_event.is_set():
                raise Stopped() from None


class Workers:
    """Runs the work of each module of one node."""

    def __init__(
        self,
        node_id: int,
        modules: Modules,
        channels: WorkChannels | None = None,
        notifier: WorkErrorNotifier | None = None,
    ) -> None:
        self.node_id = node_id
        self.modules = modules
        self.channels = channels if channels is not None else WorkChannels()
        self.notifier = notifier if notifier is not None else WorkErrorNotifier()

    def do_until_error(self, work: Callable[[threading.Event], None]) -> None:
        """Call ``work`` repeatedly until it raises, then record the error."""
        while True:
            try:
                work(self.notifier.exit_event)
            except Exception as err:
                self.notifier.fail(err)
                return

    def _run(
        self,
        source: queue.Queue,
        process: Callable[[list[Event]], list[Event]],
        message: str | None,
        exit_event: threading.Event,
        forward_empty: bool = False,
    ) -> None:
        events_in = _receive(source, exit_event)
        try:
            events_out = process(events_in)
        except EventProcessingError as err:
            if message is None:
                raise
            raise EventProcessingError(f"{message}: {err}") from err
        if not events_out and not forward_empty:
            return
        _send(self.channels.work_item_input, events_out, exit_event)

    def wal_work(self, exit_event: threading.Event) -> None:
        """Persist one list of WAL events."""
        self._run(
            self.channels.wal,
            lambda evs: process_wal_events(self.modules.wal, evs),
            "could not process WAL events",
            exit_event,
        )

    def client_work(self, exit_event: threading.Event) -> None:
        """Apply one list of events to the client tracker."""
        self._run(
            self.channels.clients,
            lambda evs: process_client_events(self.modules.client_tracker, evs),
            "could not process client events",
            exit_event,
        )

    def hash_work(self, exit_event: threading.Event) -> None:
        """Compute the hashes of one list of hash requests."""
        self._run(
            self.channels.hash,
            lambda evs: process_hash_events(self.modules.hasher, evs),
            "could not process hash events",
            exit_event,
            forward_empty=True,
        )

    def crypto_work(self, exit_event: threading.Event) -> None:
        """Verify the signatures of one list of crypto events."""
        self._run(
            self.channels.crypto,
            lambda evs: process_crypto_events(self.modules.crypto, evs),
            "could not process hash events",
            exit_event,
            forward_empty=True,
        )

    def sending_work(self, exit_event: threading.Event) -> None:
        """Send the messages of one list of send events."""
        self._run(
            self.channels.net,
            lambda evs: process_send_events(self.node_id, self.modules.net, evs),
            "could not process net events",
            exit_event,
        )

    def app_work(self, exit_event: threading.Event) -> None:
        """Apply one list of events to the application."""
        self._run(
            self.channels.app,
            lambda evs: process_app_events(self.modules.app, evs),
            "could not process app events",
            exit_event,
        )

    def req_store_work(self, exit_event: threading.Event) -> None:
        """Apply one list of events to the request store."""
        self._run(
            self.channels.req_store,
            lambda evs: process_req_store_events(self.modules.request_store, evs),
            "could not process reqstore events",
            exit_event,
        )

    def protocol_work(self, exit_event: threading.Event) -> None:
        """Apply one list of events to the protocol state machine.

        On any error the protocol's final status is recorded in the notifier
        before the error propagates.
        """
        try:
            self._run(
                self.channels.protocol,
                lambda evs: process_protocol_events(self.modules.protocol, evs),
                None,
                exit_event,
            )
        except Exception:
            self._record_exit_status()
            raise

    def _record_exit_status(self) -> None:
        try:
            status = self.modules.protocol.status()
        except Exception as err:
            self.notifier.set_exit_status(NodeStatus(protocol=None), err)
        else:
            self.notifier.set_exit_status(NodeStatus(protocol=status), None)