"""Tests for the shared state retriever."""

import threading
import time

import pytest

from lbaas_reconciler.exceptions import LBaaSAPIError, LoadBalancerNotRegistered, ReconciliationCanceled
from lbaas_reconciler.lbaas.models import Backend, Bind, Frontend, ResourceState, ServerResource, TaggedResource
from lbaas_reconciler.reconciliation.state_retriever import StateRetriever

TAG = "anxccm-svc-uid=svc-1"


def _populate(fake, lb_id, prefix, backend_state=ResourceState.READY):
    backend = fake.add(
        Backend(name=f"{prefix}-backend", load_balancer_id=lb_id, state=backend_state), tag=TAG,
    )
    frontend = fake.add(
        Frontend(name=f"{prefix}-frontend", load_balancer_id=lb_id, default_backend_id=backend.identifier), tag=TAG,
    )
    fake.add(Bind(name=f"{prefix}-bind", address="8.8.8.8", port=80, frontend_id=frontend.identifier), tag=TAG)
    fake.add(ServerResource(name=f"{prefix}-server", ip="10.0.0.1", port=30080, backend_id=backend.identifier), tag=TAG)
    return backend, frontend


def _in_threads(targets):
    threads = [threading.Thread(target=t) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    assert not any(t.is_alive() for t in threads)


class TestStateRetriever:
    def test_done_in_different_iterations(self, fake):
        retriever = StateRetriever(fake, TAG, ["lb-0", "lb-1", "lb-2", "lb-3"])
        signals = []
        lock = threading.Lock()

        def registrant(i):
            lb_id = f"lb-{i}"
            try:
                for j in range(i):
                    retriever.load_balancer_state(lb_id)
                    with lock:
                        signals.append(j)
            finally:
                retriever.done(lb_id)

        _in_threads([lambda i=i: registrant(i) for i in range(4)])
        assert signals == [0, 0, 0, 1, 1, 2]
        assert fake.calls["list_tagged"] == 3

    def test_one_listing_per_round(self, fake):
        lbs = ["a", "b", "c"]
        retriever = StateRetriever(fake, TAG, lbs)

        def registrant(lb_id):
            retriever.load_balancer_state(lb_id)
            retriever.done(lb_id)

        _in_threads([lambda lb=lb: registrant(lb) for lb in lbs])
        assert fake.calls["list_tagged"] == 1
        assert retriever.rounds == 1
        assert retriever.registered == []

    def test_unregistered_load_balancer(self, fake):
        retriever = StateRetriever(fake, TAG, ["a"])
        with pytest.raises(LoadBalancerNotRegistered):
            retriever.load_balancer_state("x")
        with pytest.raises(LoadBalancerNotRegistered):
            retriever.done("x")

    def test_done_twice(self, fake):
        retriever = StateRetriever(fake, TAG, ["a"])
        retriever.done("a")
        with pytest.raises(LoadBalancerNotRegistered):
            retriever.done("a")
        with pytest.raises(LoadBalancerNotRegistered):
            retriever.load_balancer_state("a")

    def test_cancellation(self, fake):
        cancel = threading.Event()
        retriever = StateRetriever(fake, TAG, ["foo", "bar"], cancel=cancel)
        cancel.set()
        with pytest.raises(ReconciliationCanceled):
            retriever.load_balancer_state("foo")

    def test_cancel_releases_blocked_registrants(self, fake):
        _populate(fake, "a", "a")
        cancel = threading.Event()
        retriever = StateRetriever(fake, TAG, ["a", "b", "c"], cancel=cancel)
        errors = []
        lock = threading.Lock()

        def registrant(lb_id):
            try:
                retriever.load_balancer_state(lb_id)
            except ReconciliationCanceled as exc:
                with lock:
                    errors.append(exc)

        # "c" never checks in
        threads = [threading.Thread(target=registrant, args=(lb_id,)) for lb_id in ("a", "b")]
        for t in threads:
            t.start()
        deadline = time.monotonic() + 5
        while retriever._rendezvous._arrived < 2 and time.monotonic() < deadline:
            time.sleep(0.005)

        cancel.set()
        for t in threads:
            t.join(timeout=5)
        assert not any(t.is_alive() for t in threads)
        assert len(errors) == 2

        for lb_id in ("a", "b", "c"):
            retriever.done(lb_id)
        assert retriever.registered == []
        assert fake.calls["list_tagged"] == 0
        assert retriever.rounds == 0

    def test_nothing_tagged_is_empty_state(self, fake):
        retriever = StateRetriever(fake, TAG, ["lb-1"])
        state = retriever.load_balancer_state("lb-1")
        assert state.frontends == [] and state.backends == []
        assert state.binds == [] and state.servers == []

    def test_listing_error_propagates(self, fake):
        fake.list_error = LBaaSAPIError("boom", status_code=500)
        retriever = StateRetriever(fake, TAG, ["lb-1"])
        with pytest.raises(LBaaSAPIError, match="boom"):
            retriever.load_balancer_state("lb-1")

    def test_demultiplexes_per_load_balancer(self, fake):
        fake.add_load_balancer("lb-2")
        backend_1, frontend_1 = _populate(fake, "lb-1", "one")
        backend_2, frontend_2 = _populate(fake, "lb-2", "two")
        _populate(fake, "lb-unregistered", "three")

        retriever = StateRetriever(fake, TAG, ["lb-1", "lb-2"])
        states = {}

        def registrant(lb_id):
            states[lb_id] = retriever.load_balancer_state(lb_id)
            retriever.done(lb_id)

        _in_threads([lambda lb=lb: registrant(lb) for lb in ("lb-1", "lb-2")])

        one, two = states["lb-1"], states["lb-2"]
        assert [b.identifier for b in one.backends] == [backend_1.identifier]
        assert [f.identifier for f in two.frontends] == [frontend_2.identifier]
        assert [b.name for b in one.binds] == ["one-bind"]
        assert [s.name for s in two.servers] == ["two-server"]
        assert all(s.backend_id == backend_1.identifier for s in one.servers)

    def test_ignores_unknown_types(self, fake):
        fake.extra_tagged.append(TaggedResource(identifier="zzz", type_identifier="unknown", type_name="VM"))
        retriever = StateRetriever(fake, TAG, ["lb-1"])
        state = retriever.load_balancer_state("lb-1")
        assert state.backends == []

    def test_partitions_failed_and_progressing(self, fake):
        _populate(fake, "lb-1", "ok")
        failed, _ = _populate(fake, "lb-1", "bad", backend_state=ResourceState.FAILED)
        fake.add(Frontend(name="slow", load_balancer_id="lb-1"), tag=TAG, pending_gets=5)

        state = StateRetriever(fake, TAG, ["lb-1"]).load_balancer_state("lb-1")
        assert [r.identifier for r in state.existing_failed] == [failed.identifier]
        assert [r.name for r in state.existing_progressing] == ["slow"]
        assert len(state.backends) == 2
        assert len(state.binds) == 2
