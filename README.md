# mirnode

The internal event plumbing of a replicated state machine node. Events that
the node's modules produce are sorted into per-module buffers and handed to
the module that handles them. The events that module produces are then fed
back in.

## Modules

- `mirnode.events`: the event payload dataclasses. These are `Init`, `Tick`,
  `SendMessage`, `MessageReceived`, `IssEvent`, `RequestReady`,
  `AppSnapshot`, `Request`, `RequestSigVerified`, `StoreVerifiedRequest`,
  `VerifyRequestSig`, `HashRequest`, `HashResult`, `WalAppend`, `Deliver`,
  `AppSnapshotRequest`, `WalEntry`, `PersistDummyBatch`,
  `AnnounceDummyBatch` and `StoreDummyRequest`. The helpers are
  `RequestRef`, `Batch` and `HashOrigin`.
  - An `Event` wraps one payload and a list of follow-up events in `next`.
  - `strip(event)` detaches those follow-ups and returns them.
- `mirnode.workitems`: `WorkItems` keeps one buffer per `Destination`. The
  destinations are `WAL`, `NET`, `HASH`, `CLIENT`, `APP`, `REQ_STORE`,
  `PROTOCOL` and `CRYPTO`.
  - `add_events` routes each event by its payload type.
  - A `HashResult` goes to `CLIENT` only when its origin carries a request.
    Otherwise it is dropped.
  - A `WalEntry` holding a `PersistDummyBatch` passes its inner event to
    `PROTOCOL`. One holding an `IssEvent` is ignored. Any other `WalEntry`
    raises `TypeError`.
  - A payload of an unknown type raises `TypeError`. The events before it
    stay added.
  - `pending(destination)` returns the buffer for a destination.
    `clear(destination)` empties it and returns what it held.
- `mirnode.notifier`: `WorkErrorNotifier` coordinates worker shutdown.
  - The first `fail(err)` records the error, which is readable as `err`,
    and sets `exit_event`. Later calls are ignored.
  - `set_exit_status(status, err)` records a `NodeStatus` and sets
    `exit_status_event`. It may be called only once.
  - `exit_status()` returns `(status, err)`, or `(None, None)` if nothing
    has been recorded.
  - `Stopped` is the exception a worker raises when asked to stop.
- `mirnode.processing`: one function per module kind.
  - The functions are `process_wal_events`, `process_client_events`,
    `process_hash_events`, `process_crypto_events`, `process_send_events`,
    `process_app_events`, `process_req_store_events` and
    `process_protocol_events`.
  - Each takes the module and an iterable of events and returns the list of
    resulting events. Follow-up events are passed on first.
  - Failures raise `EventProcessingError`.
  - `safe_apply_protocol_event` and `safe_apply_client_event` turn any
    exception from `apply_event` into an `EventProcessingError` that includes
    the stack trace.
  - The modules are duck-typed; the module docstring lists the methods each
    one needs.
- `mirnode.workers`: `Workers` connects a `Modules` collection to a set of
  `WorkChannels`, which are `queue.Queue` objects.
  - There is one method per module: `wal_work`, `client_work`, `hash_work`,
    `crypto_work`, `sending_work`, `app_work`, `req_store_work` and
    `protocol_work`. Each takes one event list from its queue, processes it,
    and puts the output on `work_item_input`.
  - `do_until_error(work)` calls such a method repeatedly until it raises,
    then records the error with the notifier.
  - When the protocol worker fails, it records the protocol's `status()` as
    the exit status.
  - `Modules.hasher` defaults to `hashlib.sha256`.
- `mirnode.chatapp`: `ChatApp(req_store, out=None)` is a small application.
  - `apply(batch)` looks up each request with `req_store.get_request(ref)`.
    It appends the line `"Client <id>: <data>"` to its history and prints
    that line.
  - `snapshot()` serialises the history (`messages`) to bytes.
  - `restore_state(snapshot)` loads a history back from those bytes and
    prints all of it.

## Example

```python
import hashlib

from mirnode.events import Event, HashOrigin, HashRequest, Request, Tick
from mirnode.processing import process_hash_events
from mirnode.workitems import Destination, WorkItems

items = WorkItems()
origin = HashOrigin(request=Request(client_id=1, req_no=0, data=b"abc"))
items.add_events([Event(Tick()), Event(HashRequest(data=[b"abc"], origin=origin))])

results = process_hash_events(hashlib.sha256, items.clear(Destination.HASH))
items.add_events(results)           # the HashResult goes back to the client tracker
client_events = items.pending(Destination.CLIENT)
```

## What the package does not do

The package holds the routing, the per-module processing and the worker
loops, but not the modules themselves. It has no ordering protocol, no client
tracker, no network transport, no write-ahead log storage and no persistent
request store. Callers supply objects with the methods described in
`mirnode.processing`. There is no command-line program, and nothing here
starts the worker threads for you.

## Running the tests

```
pip install -e ".[test]"
pytest
```