"""Converges the LBaaS resources of one service on one load balancer.

One reconciliation cycle::

    check -> destroy surplus -> create missing (+tag) -> wait ready -> check ...

until a check yields nothing to create and nothing to destroy. Destroys always
happen before creates; the stages run Backend, Frontend, Bind, Server.
"""

from __future__ import annotations

import dataclasses
import ipaddress
import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterable, Iterator, Mapping, Sequence

from ..config import BackoffConfig
from ..exceptions import (
    LBaaSAPIError,
    LoadBalancerNotRegistered,
    RateLimited,
    ResourceCreateError,
    ResourceFailed,
    ResourceNotFound,
    ResourceProgressing,
    ResourcesNotDestroyable,
    ResourceTagError,
)
from ..lbaas import LBaaSProvider
from ..lbaas.models import LoadBalancer, Resource, ResourceState, describe_resources
from ..logging_config import ContextAdapter
from .planners import STAGES, PlanningContext
from .state_retriever import StateRetriever
from .types import IPAddress, Port, Server, service_tag
from .waiter import wait_for_resources

logger = logging.getLogger(__name__)

# Serializes create+tag so no untagged resource becomes visible to a concurrent listing.
TAG_LOCK = threading.Lock()

Status = dict[str, list[int]]


class Reconciliation:
    """Reconciliation of one service's resources on a single load balancer.

    The load balancer is fetched on construction, so a missing one raises
    ``ResourceNotFound`` right away. Every operation accepts a shared
    ``StateRetriever`` (see ``MultiReconciliation``); without one a private
    retriever for this load balancer is used.
    """

    def __init__(
        self,
        provider: LBaaSProvider,
        resource_name_suffix: str,
        load_balancer_id: str,
        service_uid: str,
        external_addresses: Iterable[IPAddress | str],
        ports: Mapping[str, Port],
        servers: Sequence[Server],
        backoff: BackoffConfig | None = None,
        cancel: threading.Event | None = None,
    ):
        self._provider = provider
        self._suffix = resource_name_suffix
        self.service_uid = service_uid
        self.tag = service_tag(service_uid)
        self._external_addresses = [ipaddress.ip_address(str(a)) for a in external_addresses]
        self._ports = dict(ports)
        self._servers = list(servers)
        self._backoff = backoff or BackoffConfig()
        self.cancel = cancel or threading.Event()

        self.load_balancer: LoadBalancer = provider.get(LoadBalancer, load_balancer_id)

        self._log = ContextAdapter(logger, {
            "load_balancer": self.load_balancer.identifier,
            "service_uid": service_uid,
        })

    @property
    def load_balancer_id(self) -> str:
        return self.load_balancer.identifier

    @property
    def provider(self) -> LBaaSProvider:
        return self._provider

    # ── Public operations ───────────────────────────────────────────

    def reconcile_check(
        self, state_retriever: StateRetriever | None = None,
    ) -> tuple[list[Resource], list[Resource]]:
        """Return the resources to create and to destroy, without changing anything.

        Resources already in failure state are returned for destruction alone.
        Raises ``ResourceProgressing`` when some resources are not ready yet.
        """
        with self._subscribe(state_retriever) as retriever:
            return self._check(retriever)

    def reconcile(self, state_retriever: StateRetriever | None = None) -> None:
        """Destroy, create and wait until the remote state matches the desired one."""
        start = time.monotonic()
        with self._subscribe(state_retriever) as retriever:
            while True:
                try:
                    to_create, to_destroy = self._check(retriever)
                except ResourceProgressing as exc:
                    self._log.info(
                        "Waiting for progressing resources",
                        extra={"count": len(exc.resources)},
                    )
                    self._wait(exc.resources)
                    continue

                if to_destroy:
                    self._log.info("Destroying resources", extra={"count": len(to_destroy)})
                    self._destroy(to_destroy)
                elif to_create:
                    self._log.info("Creating resources", extra={"count": len(to_create)})
                    self._create(to_create)
                else:
                    break

        self._log.info(
            "Reconciliation converged",
            extra={"elapsed_seconds": round(time.monotonic() - start, 2)},
        )

    def status(self, state_retriever: StateRetriever | None = None) -> Status:
        """Map of external address to the ports bound on it."""
        with self._subscribe(state_retriever) as retriever:
            remote = retriever.load_balancer_state(self.load_balancer_id)

        status: Status = {}
        for bind in remote.binds:
            ports = status.setdefault(bind.address, [])
            if bind.port not in ports:
                ports.append(bind.port)
        for ports in status.values():
            ports.sort()
        return status

    # ── Internals ───────────────────────────────────────────────────

    @contextmanager
    def _subscribe(self, state_retriever: StateRetriever | None) -> Iterator[StateRetriever]:
        retriever = state_retriever or StateRetriever(
            self._provider, self.tag, [self.load_balancer_id], cancel=self.cancel,
        )
        try:
            yield retriever
        finally:
            try:
                retriever.done(self.load_balancer_id)
            except LoadBalancerNotRegistered:
                self._log.exception("Failed to unsubscribe from state retriever")

    def _check(self, retriever: StateRetriever) -> tuple[list[Resource], list[Resource]]:
        remote = retriever.load_balancer_state(self.load_balancer_id)

        if remote.existing_failed:
            self._log.info(
                "Found resources in failure state: %s", describe_resources(remote.existing_failed),
                extra={"count": len(remote.existing_failed)},
            )
            return [], list(remote.existing_failed)

        if remote.existing_progressing:
            raise ResourceProgressing(remote.existing_progressing)

        ctx = PlanningContext(
            load_balancer_id=self.load_balancer_id,
            name_suffix=self._suffix,
            ports=self._ports,
            external_addresses=self._external_addresses,
            servers=self._servers,
            remote=remote,
        )

        to_create: list[Resource] = []
        to_destroy: list[Resource] = []
        for stage in STAGES:
            plan = stage(ctx)
            to_create.extend(plan.to_create)
            to_destroy.extend(plan.to_destroy)

        self._log.debug(
            "Check complete: %d to create, %d to destroy", len(to_create), len(to_destroy),
        )
        return to_create, to_destroy

    def _destroy(self, resources: Sequence[Resource]) -> None:
        remaining = list(resources)
        while remaining:
            retry: list[Resource] = []
            destroyed = 0
            last_error: LBaaSAPIError | None = None

            for index, resource in enumerate(remaining):
                try:
                    self._provider.destroy(resource)
                except ResourceNotFound:
                    self._log.debug("Already gone: %s", resource.describe())
                except RateLimited as exc:
                    raise ResourcesNotDestroyable(retry + remaining[index:]) from exc
                except LBaaSAPIError as exc:
                    self._log.warning("Error destroying %s: %s", resource.describe(), exc)
                    retry.append(resource)
                    last_error = exc
                    continue
                destroyed += 1

            if retry and destroyed == 0:
                raise ResourcesNotDestroyable(retry) from last_error
            remaining = retry

    def _create(self, resources: Sequence[Resource]) -> None:
        created = [self._create_and_tag(r) for r in resources]
        self._wait(created)

    def _create_and_tag(self, resource: Resource) -> Resource:
        with TAG_LOCK:
            try:
                identifier = self._provider.create(resource)
            except LBaaSAPIError as exc:
                raise ResourceCreateError(resource) from exc

            created = dataclasses.replace(resource, identifier=identifier, state=ResourceState.PROGRESSING)
            try:
                self._provider.tag(identifier, self.tag)
            except LBaaSAPIError as exc:
                raise ResourceTagError(created) from exc

        self._log.debug("Created %s", created.describe(), extra={"resource_id": identifier})
        return created

    def _wait(self, resources: Sequence[Resource]) -> None:
        try:
            wait_for_resources(self._provider, resources, self._backoff, self.cancel)
        except ResourceFailed as exc:
            # the next check returns them for destruction
            self._log.warning("Resources ended in failure state: %s", describe_resources(exc.resources))
