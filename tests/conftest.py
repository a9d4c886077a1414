"""Shared fixtures: an in-memory LBaaS provider."""

from __future__ import annotations

import copy
import dataclasses
import threading
import uuid
from collections import Counter

import pytest

from lbaas_reconciler.config import BackoffConfig
from lbaas_reconciler.exceptions import LBaaSAPIError, ResourceNotFound
from lbaas_reconciler.lbaas.models import LoadBalancer, Resource, ResourceState, TaggedResource
from lbaas_reconciler.reconciliation.types import Port, Server

FAST_BACKOFF = BackoffConfig(initial_interval=0.001, factor=1.5, jitter=0.0, steps=10, max_interval=0.01)


class FakeLBaaS:
    """Thread-safe in-memory implementation of ``LBaaSProvider``.

    New resources start ``PROGRESSING`` when ``pending_gets`` is set and turn
    ``READY`` after that many ``get`` calls.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.objects: dict[str, Resource] = {}
        self.tags: dict[str, set[str]] = {}
        self.calls: Counter[str] = Counter()
        self.created: list[Resource] = []
        self.destroyed: list[str] = []

        self.pending_gets = 0
        self._pending: dict[str, int] = {}

        self.create_error: Exception | None = None
        self.tag_error: Exception | None = None
        self.list_error: Exception | None = None
        self.destroy_errors: dict[str, Exception] = {}
        self.extra_tagged: list[TaggedResource] = []

    # ── helpers for tests ───────────────────────────────────────────

    def add_load_balancer(self, identifier: str) -> LoadBalancer:
        return self.add(LoadBalancer(identifier=identifier, name=f"lb {identifier}"))

    def add(self, resource: Resource, tag: str | None = None, pending_gets: int = 0) -> Resource:
        with self._lock:
            identifier = resource.identifier or uuid.uuid4().hex
            stored = dataclasses.replace(resource, identifier=identifier)
            self.objects[identifier] = stored
            if tag:
                self.tags.setdefault(identifier, set()).add(tag)
            if pending_gets:
                self._pending[identifier] = pending_gets
            return copy.deepcopy(stored)

    def of_kind(self, kind: type[Resource]) -> list[Resource]:
        with self._lock:
            return [copy.deepcopy(o) for o in self.objects.values() if type(o) is kind]

    def is_tagged(self, identifier: str, tag: str) -> bool:
        return tag in self.tags.get(identifier, set())

    # ── LBaaSProvider ───────────────────────────────────────────────

    def get(self, kind, identifier):
        with self._lock:
            self.calls["get"] += 1
            obj = self.objects.get(identifier)
            if obj is None or not isinstance(obj, kind):
                raise ResourceNotFound(f"{kind.kind} {identifier} not found")

            remaining = self._pending.get(identifier)
            if remaining is not None:
                if remaining <= 1:
                    del self._pending[identifier]
                    obj.state = ResourceState.READY
                else:
                    self._pending[identifier] = remaining - 1
                    obj.state = ResourceState.PROGRESSING
            return copy.deepcopy(obj)

    def list_tagged(self, tag):
        with self._lock:
            self.calls["list_tagged"] += 1
            if self.list_error is not None:
                raise self.list_error
            matched = [
                TaggedResource(
                    identifier=o.identifier,
                    name=o.name,
                    type_identifier=type(o).type_identifier,
                    type_name=type(o).kind,
                )
                for o in self.objects.values()
                if tag in self.tags.get(o.identifier, set())
            ]
            matched.extend(self.extra_tagged)
            if not matched:
                raise LBaaSAPIError("nothing tagged", status_code=422)
            return matched

    def create(self, resource):
        with self._lock:
            self.calls["create"] += 1
            if self.create_error is not None:
                raise self.create_error
            identifier = uuid.uuid4().hex
            state = ResourceState.PROGRESSING if self.pending_gets else ResourceState.READY
            stored = dataclasses.replace(resource, identifier=identifier, state=state)
            self.objects[identifier] = stored
            self.created.append(copy.deepcopy(stored))
            if self.pending_gets:
                self._pending[identifier] = self.pending_gets
            return identifier

    def destroy(self, resource):
        with self._lock:
            self.calls["destroy"] += 1
            error = self.destroy_errors.get(resource.identifier)
            if error is not None:
                raise error
            if resource.identifier not in self.objects:
                raise ResourceNotFound(f"{resource.identifier} not found")
            del self.objects[resource.identifier]
            self.tags.pop(resource.identifier, None)
            self.destroyed.append(resource.identifier)

    def tag(self, identifier, tag):
        with self._lock:
            self.calls["tag"] += 1
            if self.tag_error is not None:
                raise self.tag_error
            self.tags.setdefault(identifier, set()).add(tag)


@pytest.fixture
def fake():
    provider = FakeLBaaS()
    provider.add_load_balancer("lb-1")
    return provider


@pytest.fixture
def backoff():
    return FAST_BACKOFF


@pytest.fixture
def ports():
    return {
        "http": Port(internal=30080, external=80),
        "https": Port(internal=30443, external=443),
    }


@pytest.fixture
def servers():
    return [
        Server.parse("node-01", "10.244.0.4"),
        Server.parse("node-02", "10.244.0.5"),
    ]
