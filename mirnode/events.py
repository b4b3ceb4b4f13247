"""Event model exchanged between the node's modules.

An :class:`Event` wraps a single payload (one of the payload dataclasses
below) and may carry follow-up events. Processing modules remove those
follow-ups with :func:`strip` and forward them unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RequestRef:
    """Reference to a client request."""

    client_id: int
    req_no: int
    digest: bytes = b""


@dataclass
class Batch:
    """An ordered batch of request references."""

    requests: list[RequestRef] = field(default_factory=list)


@dataclass
class Request:
    """A request as submitted by a client."""

    client_id: int
    req_no: int
    data: bytes = b""
    authenticator: bytes = b""


@dataclass
class HashOrigin:
    """Where a hash request came from; decides where its result is routed."""

    request: Request | None = None


@dataclass
class Init:
    """Initialises the protocol state machine."""


@dataclass
class Tick:
    """One unit of logical time."""


@dataclass
class SendMessage:
    """A message to be sent to the listed destination nodes."""

    destinations: list[int]
    msg: Any


@dataclass
class MessageReceived:
    """A message received from another node."""

    from_node: int
    msg: Any


@dataclass
class IssEvent:
    """An event internal to the ordering protocol."""

    payload: Any = None


@dataclass
class RequestReady:
    """A request is stored, authenticated and ready for ordering."""

    request_ref: RequestRef


@dataclass
class AppSnapshot:
    """A snapshot of the application state at a sequence number."""

    sn: int
    data: bytes


@dataclass
class RequestSigVerified:
    """Outcome of verifying a client request signature."""

    request_ref: RequestRef
    valid: bool
    error: str = ""


@dataclass
class StoreVerifiedRequest:
    """Store an authenticated request together with its authenticator."""

    request_ref: RequestRef
    data: bytes
    authenticator: bytes


@dataclass
class VerifyRequestSig:
    """Verify the signature of a client request."""

    request_ref: RequestRef
    signature: bytes


@dataclass
class HashRequest:
    """Compute one digest over all the data items."""

    data: list[bytes]
    origin: HashOrigin


@dataclass
class HashResult:
    """A computed digest and the origin of its request."""

    digest: bytes
    origin: HashOrigin


@dataclass
class WalAppend:
    """Persist an event to the write-ahead log."""

    event: Event
    retention_index: int = 0


@dataclass
class Deliver:
    """Deliver an ordered batch to the application."""

    sn: int
    batch: Batch


@dataclass
class AppSnapshotRequest:
    """Ask the application for a snapshot at a sequence number."""

    sn: int


@dataclass
class WalEntry:
    """An event loaded back from the write-ahead log."""

    event: Event


@dataclass
class PersistDummyBatch:
    """Persist a batch produced by the dummy protocol."""

    sn: int
    batch: Batch


@dataclass
class AnnounceDummyBatch:
    """Announce a batch produced by the dummy protocol to the application."""

    sn: int
    batch: Batch


@dataclass
class StoreDummyRequest:
    """Store a request of the dummy protocol."""

    request_ref: RequestRef
    data: bytes


@dataclass
class Event:
    """A payload together with the follow-up events that it carries."""

    payload: Any
    next: list[Event] = field(default_factory=list)


def strip(event: Event) -> list[Event]:
    """Detach and return the follow-up events of ``event``."""
    follow_ups = event.next
    event.next = []
    return follow_ups