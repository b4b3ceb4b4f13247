"""Processing of event lists by the node's individual modules.

Every ``process_*`` function takes the module that does the work and an
iterable of :class:`~mirnode.events.Event`. It returns the list of events
produced for further processing. Follow-up events carried by the input
events are detached and passed on unchanged, ahead of any events produced
for the same input. Failures are raised as :class:`EventProcessingError`
chained to the underlying exception.

The modules are duck-typed:

* WAL: ``append(event, retention_index)`` and ``sync()``
* client tracker and protocol: ``apply_event(event)`` returning events
* hasher: a callable returning a fresh hash object with ``update`` and
  ``digest`` (``hashlib.sha256`` for example)
* crypto: ``verify_client_sig(data, signature, client_id)`` raising when the
  signature is invalid
* net: ``send(dest, msg)``
* app: ``apply(batch)`` and ``snapshot()``
* request store: ``put_request(ref, data)``, ``set_authenticated(ref)``,
  ``put_authenticator(ref, authenticator)`` and ``sync()``
"""

from __future__ import annotations

import traceback
from collections.abc import Iterable
from typing import Any

from mirnode.events import (
    AnnounceDummyBatch,
    AppSnapshot,
    AppSnapshotRequest,
    Deliver,
    Event,
    HashRequest,
    HashResult,
    MessageReceived,
    PersistDummyBatch,
    RequestReady,
    RequestSigVerified,
    SendMessage,
    StoreDummyRequest,
    StoreVerifiedRequest,
    VerifyRequestSig,
    WalAppend,
    strip,
)


class EventProcessingError(Exception):
    """A module failed to process an event."""


def _type_name(event: Event) -> str:
    return type(event.payload).__name__


def process_wal_events(wal: Any, events: Iterable[Event]) -> list[Event]:
    """Persist WAL events, then sync the WAL."""
    out: list[Event] = []
    for event in events:
        out.extend(strip(event))
        payload = event.payload
        if isinstance(payload, WalAppend):
            try:
                wal.append(payload.event, payload.retention_index)
            except Exception as err:
                raise EventProcessingError(
                    f"could not persist event (retention index "
                    f"{payload.retention_index}) to WAL: {err}"
                ) from err
        elif isinstance(payload, PersistDummyBatch):
            try:
                wal.append(event, 0)
            except Exception as err:
                raise EventProcessingError(
                    f"could not persist dummy batch: {err}"
                ) from err
        else:
            raise EventProcessingError(
                f"unexpected type of WAL event: {_type_name(event)}"
            )

    try:
        wal.sync()
    except Exception as err:
        raise EventProcessingError(f"failed to sync WAL: {err}") from err
    return out


def process_client_events(tracker: Any, events: Iterable[Event]) -> list[Event]:
    """Apply each event to the client tracker and collect its output."""
    out: list[Event] = []
    for event in events:
        out.extend(strip(event))
        try:
            produced = safe_apply_client_event(tracker, event)
        except EventProcessingError as err:
            raise EventProcessingError(f"err applying client event: {err}") from err
        out.extend(produced)
    return out


def process_hash_events(hasher: Any, events: Iterable[Event]) -> list[Event]:
    """Compute one digest per hash request."""
    out: list[Event] = []
    for event in events:
        out.extend(strip(event))
        payload = event.payload
        if not isinstance(payload, HashRequest):
            raise EventProcessingError(
                f"unexpected type of Hash event: {_type_name(event)}"
            )
        h = hasher()
        for data in payload.data:
            h.update(data)
        out.append(Event(HashResult(h.digest(), payload.origin)))
    return out


def process_crypto_events(crypto: Any, events: Iterable[Event]) -> list[Event]:
    """Verify client request signatures over the request digests."""
    out: list[Event] = []
    for event in events:
        out.extend(strip(event))
        payload = event.payload
        if not isinstance(payload, VerifyRequestSig):
            raise EventProcessingError(
                f"unexpected type of Crypto event: {_type_name(event)}"
            )
        ref = payload.request_ref
        try:
            crypto.verify_client_sig([ref.digest], payload.signature, ref.client_id)
        except Exception as err:
            out.append(Event(RequestSigVerified(ref, False, str(err))))
        else:
            out.append(Event(RequestSigVerified(ref, True, "")))
    return out


def process_send_events(
    self_id: int, net: Any, events: Iterable[Event]
) -> list[Event]:
    """Send messages; messages addressed to this node are looped back."""
    out: list[Event] = []
    for event in events:
        out.extend(strip(event))
        payload = event.payload
        if not isinstance(payload, SendMessage):
            raise EventProcessingError(
                f"unexpected type of Net event: {_type_name(event)}"
            )
        for dest in payload.destinations:
            if dest == self_id:
                out.append(Event(MessageReceived(self_id, payload.msg)))
            else:
                net.send(dest, payload.msg)
    return out


def process_app_events(app: Any, events: Iterable[Event]) -> list[Event]:
    """Deliver batches to the application and serve snapshot requests.

    A snapshot request ends processing: only the snapshot event is returned
    and the remaining input events are left unprocessed.
    """
    out: list[Event] = []
    for event in events:
        out.extend(strip(event))
        payload = event.payload
        if isinstance(payload, AnnounceDummyBatch):
            try:
                app.apply(payload.batch)
            except Exception as err:
                raise EventProcessingError(f"app error: {err}") from err
        elif isinstance(payload, Deliver):
            try:
                app.apply(payload.batch)
            except Exception as err:
                raise EventProcessingError(
                    f"app batch delivery error: {err}"
                ) from err
        elif isinstance(payload, AppSnapshotRequest):
            try:
                data = app.snapshot()
            except Exception as err:
                raise EventProcessingError(f"app snapshot error: {err}") from err
            return [Event(AppSnapshot(payload.sn, data))]
        else:
            raise EventProcessingError(
                f"unexpected type of App event: {_type_name(event)}"
            )
    return out


def _store(
    req_store: Any,
    payload: StoreVerifiedRequest | StoreDummyRequest,
    authenticator: bytes,
    labels: tuple[str, str, str],
) -> None:
    ref = payload.request_ref
    steps = (
        (lambda: req_store.put_request(ref, payload.data), labels[0]),
        (lambda: req_store.set_authenticated(ref), labels[1]),
        (lambda: req_store.put_authenticator(ref, authenticator), labels[2]),
    )
    for action, label in steps:
        try:
            action()
        except Exception as err:
            raise EventProcessingError(f"{label}: {err}") from err


def process_req_store_events(req_store: Any, events: Iterable[Event]) -> list[Event]:
    """Store requests, then sync the request store.

    Events of other types are ignored.
    """
    out: list[Event] = []
    for event in events:
        out.extend(strip(event))
        payload = event.payload
        if isinstance(payload, StoreVerifiedRequest):
            ref = payload.request_ref
            tag = f"c{ref.client_id}r{ref.req_no}"
            _store(
                req_store,
                payload,
                payload.authenticator,
                (
                    f"cannot store request ({tag}) data",
                    f"cannot mark request ({tag}) as authenticated",
                    f"cannot store authenticator ({tag}) of request",
                ),
            )
        elif isinstance(payload, StoreDummyRequest):
            _store(
                req_store,
                payload,
                b"\x00",
                (
                    "cannot store dummy request data",
                    "cannot mark dummy request as authenticated",
                    "cannot store authenticator of dummy request",
                ),
            )
            out.append(Event(RequestReady(payload.request_ref)))

    try:
        req_store.sync()
    except Exception as err:
        raise EventProcessingError(
            f"could not sync request store, unsafe to continue: {err}"
        ) from err
    return out


def process_protocol_events(protocol: Any, events: Iterable[Event]) -> list[Event]:
    """Apply each event to the protocol state machine and collect its output."""
    out: list[Event] = []
    for event in events:
        out.extend(strip(event))
        try:
            produced = safe_apply_protocol_event(protocol, event)
        except EventProcessingError as err:
            raise EventProcessingError(
                f"error applying protocol event: {err}"
            ) from err
        out.extend(produced)
    return out


def _safe_apply(module: Any, event: Event, what: str) -> list[Event]:
    try:
        return list(module.apply_event(event))
    except Exception as err:
        raise EventProcessingError(
            f"panic in {what}: {err}\nStack trace:\n{traceback.format_exc()}"
        ) from err


def safe_apply_protocol_event(protocol: Any, event: Event) -> list[Event]:
    """Apply ``event`` to the protocol, turning any exception into an error."""
    return _safe_apply(protocol, event, "protocol state machine")


def safe_apply_client_event(tracker: Any, event: Event) -> list[Event]:
    """Apply ``event`` to the client tracker, turning any exception into an error."""
    return _safe_apply(tracker, event, "client tracker")