"""Shared retrieval of the tagged remote state for one or more load balancers.

Every registered load balancer checks in with ``load_balancer_state()``;
once all of them did, exactly one tag listing is issued and its result is
demultiplexed per load balancer. ``done()`` unregisters a load balancer so
the remaining ones no longer wait for it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

from ..exceptions import LBaaSAPIError, LoadBalancerNotRegistered
from ..lbaas import LBaaSProvider
from ..lbaas.models import RESOURCE_TYPES, Backend, Bind, Frontend, Resource, ServerResource
from .rendezvous import Rendezvous

logger = logging.getLogger(__name__)

# returned by the tag listing when nothing carries the tag
HTTP_UNPROCESSABLE_ENTITY = 422


@dataclass
class RemoteLoadBalancerState:
    """Tagged resources belonging to one load balancer."""

    frontends: list[Frontend] = field(default_factory=list)
    backends: list[Backend] = field(default_factory=list)
    binds: list[Bind] = field(default_factory=list)
    servers: list[ServerResource] = field(default_factory=list)

    existing_failed: list[Resource] = field(default_factory=list)
    existing_progressing: list[Resource] = field(default_factory=list)

    def track(self, resource: Resource) -> None:
        if resource.failed:
            self.existing_failed.append(resource)
        elif resource.progressing:
            self.existing_progressing.append(resource)


class StateRetriever:
    def __init__(
        self,
        provider: LBaaSProvider,
        service_tag: str,
        load_balancer_ids: Iterable[str],
        cancel: threading.Event | None = None,
    ):
        self._provider = provider
        self._tag = service_tag
        self._cancel = cancel

        # guards _states only, never held while waiting for a round
        self._lock = threading.Lock()
        self._states: dict[str, RemoteLoadBalancerState] = {
            lb_id: RemoteLoadBalancerState() for lb_id in load_balancer_ids
        }
        self._rendezvous: Rendezvous[None] = Rendezvous(len(self._states), self._update)

    @property
    def service_tag(self) -> str:
        return self._tag

    @property
    def registered(self) -> list[str]:
        with self._lock:
            return list(self._states)

    @property
    def rounds(self) -> int:
        """Number of listing round-trips started so far."""
        return self._rendezvous.generation

    def load_balancer_state(self, lb_id: str) -> RemoteLoadBalancerState:
        """Block until every registered load balancer asked, then return the fresh state of ``lb_id``.

        Raises ``LoadBalancerNotRegistered`` for unknown or already done load
        balancers, ``ReconciliationCanceled`` when the cancel event is set and
        the listing error of the round, if any, to every caller of that round.
        """
        self._require(lb_id)
        self._rendezvous.wait(self._cancel)
        with self._lock:
            return self._states[lb_id]

    def done(self, lb_id: str) -> None:
        """Unregister ``lb_id``; must be called exactly once per load balancer."""
        with self._lock:
            if lb_id not in self._states:
                raise LoadBalancerNotRegistered(lb_id)
            del self._states[lb_id]
        self._rendezvous.leave(self._cancel)

    def _require(self, lb_id: str) -> None:
        with self._lock:
            if lb_id not in self._states:
                raise LoadBalancerNotRegistered(lb_id)

    def _update(self) -> None:
        with self._lock:
            lb_ids = list(self._states)

        states = self._retrieve(lb_ids)

        with self._lock:
            for lb_id, state in states.items():
                if lb_id in self._states:
                    self._states[lb_id] = state

    def _retrieve(self, lb_ids: list[str]) -> dict[str, RemoteLoadBalancerState]:
        states = {lb_id: RemoteLoadBalancerState() for lb_id in lb_ids}

        try:
            tagged = list(self._provider.list_tagged(self._tag))
        except LBaaSAPIError as exc:
            if exc.status_code == HTTP_UNPROCESSABLE_ENTITY:
                logger.debug("Nothing tagged with %s yet", self._tag)
                return states
            raise

        all_binds: list[Bind] = []
        all_servers: list[ServerResource] = []

        for entry in tagged:
            kind = RESOURCE_TYPES.get(entry.type_identifier)
            if kind is None:
                logger.info(
                    "Retrieved resource of unknown type, did someone else use our tag? Ignoring it",
                    extra={"resource_id": entry.identifier, "kind": entry.type_name or entry.type_identifier},
                )
                continue

            resource = self._provider.get(kind, entry.identifier)

            # frontends and backends reference their load balancer directly
            if isinstance(resource, Frontend):
                state = states.get(resource.load_balancer_id)
                if state is not None:
                    state.frontends.append(resource)
                    state.track(resource)
            elif isinstance(resource, Backend):
                state = states.get(resource.load_balancer_id)
                if state is not None:
                    state.backends.append(resource)
                    state.track(resource)
            elif isinstance(resource, Bind):
                all_binds.append(resource)
            elif isinstance(resource, ServerResource):
                all_servers.append(resource)

        for lb_id, state in states.items():
            frontend_ids = {f.identifier for f in state.frontends}
            backend_ids = {b.identifier for b in state.backends}

            state.binds = [b for b in all_binds if b.frontend_id in frontend_ids]
            state.servers = [s for s in all_servers if s.backend_id in backend_ids]
            for resource in (*state.binds, *state.servers):
                state.track(resource)

            logger.debug(
                "Retrieved resources: %d frontends, %d backends, %d binds, %d servers",
                len(state.frontends), len(state.backends), len(state.binds), len(state.servers),
                extra={"load_balancer": lb_id},
            )

        return states
