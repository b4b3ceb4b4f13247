"""Buffers of outstanding events, one per destination module."""

from __future__ import annotations

import enum
from collections.abc import Iterable

from mirnode.events import (
    AnnounceDummyBatch,
    AppSnapshot,
    AppSnapshotRequest,
    Deliver,
    Event,
    HashRequest,
    HashResult,
    Init,
    IssEvent,
    MessageReceived,
    PersistDummyBatch,
    Request,
    RequestReady,
    RequestSigVerified,
    SendMessage,
    StoreDummyRequest,
    StoreVerifiedRequest,
    Tick,
    VerifyRequestSig,
    WalAppend,
    WalEntry,
)


class Destination(enum.Enum):
    """The module an event is routed to."""

    WAL = "wal"
    NET = "net"
    HASH = "hash"
    CLIENT = "client"
    APP = "app"
    REQ_STORE = "req_store"
    PROTOCOL = "protocol"
    CRYPTO = "crypto"


_ROUTES: dict[type, Destination] = {
    Init: Destination.PROTOCOL,
    Tick: Destination.PROTOCOL,
    SendMessage: Destination.NET,
    MessageReceived: Destination.PROTOCOL,
    IssEvent: Destination.PROTOCOL,
    RequestReady: Destination.PROTOCOL,
    AppSnapshot: Destination.PROTOCOL,
    Request: Destination.CLIENT,
    RequestSigVerified: Destination.CLIENT,
    StoreVerifiedRequest: Destination.REQ_STORE,
    VerifyRequestSig: Destination.CRYPTO,
    HashRequest: Destination.HASH,
    WalAppend: Destination.WAL,
    Deliver: Destination.APP,
    AppSnapshotRequest: Destination.APP,
    PersistDummyBatch: Destination.WAL,
    AnnounceDummyBatch: Destination.APP,
    StoreDummyRequest: Destination.REQ_STORE,
}


class WorkItems:
    """Holds outstanding events, split by the module that must process them."""

    def __init__(self) -> None:
        self._buffers: dict[Destination, list[Event]] = {d: [] for d in Destination}

    def add_events(self, events: Iterable[Event]) -> None:
        """Route each event to its buffer.

        Raises TypeError for an event that cannot be routed; events before it
        have already been added.
        """
        for event in events:
            payload = event.payload
            if isinstance(payload, HashResult):
                # The origin of a hash result decides where it goes back to.
                if payload.origin.request is not None:
                    self._buffers[Destination.CLIENT].append(event)
            elif isinstance(payload, WalEntry):
                inner = payload.event.payload
                if isinstance(inner, IssEvent):
                    # Loading protocol events from the WAL is disabled until
                    # recovery is supported.
                    pass
                elif isinstance(inner, PersistDummyBatch):
                    self._buffers[Destination.PROTOCOL].append(payload.event)
                else:
                    raise TypeError(
                        f"unsupported WAL entry event type {type(inner).__name__}"
                    )
            else:
                destination = _ROUTES.get(type(payload))
                if destination is None:
                    raise TypeError(
                        f"cannot add event of unknown type {type(payload).__name__}"
                    )
                self._buffers[destination].append(event)

    def pending(self, destination: Destination) -> list[Event]:
        """Return the buffer of events waiting for ``destination``."""
        return self._buffers[destination]

    def clear(self, destination: Destination) -> list[Event]:
        """Empty the buffer for ``destination`` and return its former contents."""
        old = self._buffers[destination]
        self._buffers[destination] = []
        return old