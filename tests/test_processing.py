import hashlib

import pytest

from mirnode.events import (
    AnnounceDummyBatch,
    AppSnapshot,
    AppSnapshotRequest,
    Batch,
    Deliver,
    Event,
    HashOrigin,
    HashRequest,
    HashResult,
    Init,
    MessageReceived,
    PersistDummyBatch,
    Request,
    RequestReady,
    RequestRef,
    RequestSigVerified,
    SendMessage,
    StoreDummyRequest,
    StoreVerifiedRequest,
    Tick,
    VerifyRequestSig,
    WalAppend,
)
from mirnode.processing import (
    EventProcessingError,
    process_app_events,
    process_client_events,
    process_crypto_events,
    process_hash_events,
    process_protocol_events,
    process_req_store_events,
    process_send_events,
    safe_apply_client_event,
    safe_apply_protocol_event,
)
from mirnode.processing import process_wal_events


class FakeWal:
    def __init__(self, fail_append=False, fail_sync=False):
        self.appended = []
        self.syncs = 0
        self.fail_append = fail_append
        self.fail_sync = fail_sync

    def append(self, event, retention_index):
        if self.fail_append:
            raise OSError("disk full")
        self.appended.append((event, retention_index))

    def sync(self):
        if self.fail_sync:
            raise OSError("sync broken")
        self.syncs += 1


class Echo:
    """Tracker/protocol that answers every event with a Tick."""

    def __init__(self):
        self.seen = []

    def apply_event(self, event):
        self.seen.append(event)
        return [Event(Tick())]


class Exploding:
    def apply_event(self, event):
        raise ValueError("boom")


class FakeCrypto:
    def __init__(self):
        self.calls = []

    def verify_client_sig(self, data, signature, client_id):
        self.calls.append((data, signature, client_id))
        if signature != b"\x00":
            raise ValueError("bad sig")


class FakeNet:
    def __init__(self):
        self.sent = []

    def send(self, dest, msg):
        self.sent.append((dest, msg))


class FakeApp:
    def __init__(self, fail=False):
        self.batches = []
        self.fail = fail

    def apply(self, batch):
        if self.fail:
            raise RuntimeError("apply failed")
        self.batches.append(batch)

    def snapshot(self):
        return b"state"


class FakeReqStore:
    def __init__(self, fail_put=False):
        self.calls = []
        self.syncs = 0
        self.fail_put = fail_put

    def put_request(self, ref, data):
        if self.fail_put:
            raise KeyError("nope")
        self.calls.append(("put_request", ref, data))

    def set_authenticated(self, ref):
        self.calls.append(("set_authenticated", ref))

    def put_authenticator(self, ref, authenticator):
        self.calls.append(("put_authenticator", ref, authenticator))

    def sync(self):
        self.syncs += 1


def test_wal_append_persists_and_forwards_follow_ups():
    inner = Event(Init())
    follow = Event(Tick())
    event = Event(WalAppend(inner, 3), next=[follow])
    wal = FakeWal()
    out = process_wal_events(wal, [event])
    assert out == [follow]
    assert wal.appended == [(inner, 3)]
    assert wal.syncs == 1
    assert event.next == []


def test_wal_persist_dummy_batch_stores_whole_event_at_index_zero():
    event = Event(PersistDummyBatch(1, Batch()))
    wal = FakeWal()
    assert process_wal_events(wal, [event]) == []
    assert wal.appended == [(event, 0)]


def test_wal_rejects_unexpected_event_without_sync():
    wal = FakeWal()
    with pytest.raises(EventProcessingError, match="unexpected type of WAL event: Tick"):
        process_wal_events(wal, [Event(Tick())])
    assert wal.syncs == 0


def test_wal_append_failure_names_retention_index():
    with pytest.raises(EventProcessingError, match="retention index 3") as info:
        process_wal_events(FakeWal(fail_append=True), [Event(WalAppend(Event(Init()), 3))])
    assert isinstance(info.value.__cause__, OSError)


def test_wal_sync_failure():
    with pytest.raises(EventProcessingError, match="failed to sync WAL"):
        process_wal_events(FakeWal(fail_sync=True), [])


def test_client_events_follow_ups_precede_produced_events():
    follow = Event(Init())
    event = Event(Request(1, 1), next=[follow])
    tracker = Echo()
    out = process_client_events(tracker, [event])
    assert out[0] is follow
    assert [type(e.payload) for e in out] == [Init, Tick]
    assert tracker.seen == [event]


def test_client_tracker_exception_is_wrapped():
    with pytest.raises(EventProcessingError, match="err applying client event") as info:
        process_client_events(Exploding(), [Event(Request(1, 1))])
    assert "panic in client tracker: boom" in str(info.value)


def test_hash_digest_covers_concatenated_data():
    origin = HashOrigin(request=Request(4, 2))
    split = process_hash_events(hashlib.sha256, [Event(HashRequest([b"a", b"b"], origin))])
    joined = process_hash_events(hashlib.sha256, [Event(HashRequest([b"ab"], origin))])
    assert split == joined
    result = split[0].payload
    assert isinstance(result, HashResult)
    assert result.digest == hashlib.sha256(b"ab").digest()
    assert result.origin is origin


def test_hash_rejects_other_events():
    with pytest.raises(EventProcessingError, match="unexpected type of Hash event"):
        process_hash_events(hashlib.sha256, [Event(Tick())])


def test_crypto_valid_and_invalid_signatures():
    ref = RequestRef(7, 1, b"digest")
    crypto = FakeCrypto()
    out = process_crypto_events(
        crypto,
        [Event(VerifyRequestSig(ref, b"\x00")), Event(VerifyRequestSig(ref, b"\x01"))],
    )
    assert out[0].payload == RequestSigVerified(ref, True, "")
    assert out[1].payload == RequestSigVerified(ref, False, "bad sig")
    assert crypto.calls[0] == ([b"digest"], b"\x00", 7)


def test_crypto_rejects_other_events():
    with pytest.raises(EventProcessingError, match="unexpected type of Crypto event"):
        process_crypto_events(FakeCrypto(), [Event(Init())])


def test_send_loops_back_messages_for_self():
    net = FakeNet()
    out = process_send_events(1, net, [Event(SendMessage([0, 1, 2], "hello"))])
    assert net.sent == [(0, "hello"), (2, "hello")]
    assert [e.payload for e in out] == [MessageReceived(1, "hello")]


def test_send_rejects_other_events():
    with pytest.raises(EventProcessingError, match="unexpected type of Net event"):
        process_send_events(0, FakeNet(), [Event(Tick())])


def test_app_applies_delivered_and_dummy_batches():
    first, second = Batch([RequestRef(1, 1)]), Batch([RequestRef(2, 1)])
    app = FakeApp()
    out = process_app_events(app, [Event(Deliver(0, first)), Event(AnnounceDummyBatch(1, second))])
    assert out == []
    assert app.batches == [first, second]


def test_app_snapshot_request_returns_only_snapshot():
    app = FakeApp()
    later = Event(Deliver(5, Batch()))
    request = Event(AppSnapshotRequest(4), next=[Event(Tick())])
    out = process_app_events(app, [request, later])
    assert [e.payload for e in out] == [AppSnapshot(4, b"state")]
    assert app.batches == []


def test_app_delivery_failure():
    with pytest.raises(EventProcessingError, match="app batch delivery error: apply failed"):
        process_app_events(FakeApp(fail=True), [Event(Deliver(0, Batch()))])


def test_app_rejects_other_events():
    with pytest.raises(EventProcessingError, match="unexpected type of App event"):
        process_app_events(FakeApp(), [Event(Tick())])


def test_req_store_verified_request_steps_in_order():
    ref = RequestRef(3, 9)
    store = FakeReqStore()
    out = process_req_store_events(store, [Event(StoreVerifiedRequest(ref, b"data", b"auth"))])
    assert out == []
    assert store.calls == [
        ("put_request", ref, b"data"),
        ("set_authenticated", ref),
        ("put_authenticator", ref, b"auth"),
    ]
    assert store.syncs == 1


def test_req_store_dummy_request_gets_zero_authenticator_and_is_ready():
    ref = RequestRef(3, 9)
    store = FakeReqStore()
    out = process_req_store_events(store, [Event(StoreDummyRequest(ref, b"data"))])
    assert store.calls[-1] == ("put_authenticator", ref, b"\x00")
    assert [e.payload for e in out] == [RequestReady(ref)]


def test_req_store_ignores_other_events_but_syncs():
    store = FakeReqStore()
    assert process_req_store_events(store, [Event(Tick())]) == []
    assert store.calls == []
    assert store.syncs == 1


def test_req_store_failure_names_request():
    event = Event(StoreVerifiedRequest(RequestRef(7, 2), b"d", b"a"))
    with pytest.raises(EventProcessingError, match=r"cannot store request \(c7r2\) data"):
        process_req_store_events(FakeReqStore(fail_put=True), [event])


def test_protocol_events_collects_output():
    protocol = Echo()
    events = [Event(Init()), Event(Tick())]
    out = process_protocol_events(protocol, events)
    assert len(out) == len(events)
    assert protocol.seen == events


def test_protocol_exception_is_wrapped():
    with pytest.raises(EventProcessingError, match="error applying protocol event") as info:
        process_protocol_events(Exploding(), [Event(Init())])
    assert "panic in protocol state machine: boom" in str(info.value)


def test_safe_apply_protocol_event_chains_cause():
    with pytest.raises(EventProcessingError, match="Stack trace") as info:
        safe_apply_protocol_event(Exploding(), Event(Init()))
    assert isinstance(info.value.__cause__, ValueError)


def test_safe_apply_client_event_returns_produced_events():
    out = safe_apply_client_event(Echo(), Event(Request(1, 1)))
    assert [type(e.payload) for e in out] == [Tick]