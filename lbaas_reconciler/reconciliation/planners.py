"""Stage planners building the desired resources per kind and diffing them against the remote state.

Stages run in the order Backends, Frontends, Binds, Servers. A stage that
finds nothing to create or destroy publishes the identifiers of its resources
per port, which the following stages reference. Ports whose upstream resource
is not resolved yet are skipped; they are picked up in a later cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from ..lbaas.models import Backend, Bind, Frontend, Resource, ServerResource
from .compare import Diff, reconcile
from .state_retriever import RemoteLoadBalancerState
from .types import IPAddress, Port, Server, address_family, make_resource_name

logger = logging.getLogger(__name__)

MODE_TCP = "tcp"
TCP_HEALTH_CHECK = '"adv_check": "tcp-check"'
SERVER_CHECK_ENABLED = "enabled"

BACKEND_FIELDS = ("name", "mode", "health_check", "load_balancer_id")
FRONTEND_FIELDS = ("name", "mode", "load_balancer_id", "default_backend_id")
BIND_FIELDS = ("name", "address", "port", "frontend_id")
SERVER_FIELDS = ("name", "ip", "port", "check", "backend_id")


@dataclass
class PlanningContext:
    """Inputs shared by the stages of one check pass."""

    load_balancer_id: str
    name_suffix: str
    ports: Mapping[str, Port]
    external_addresses: Sequence[IPAddress]
    servers: Sequence[Server]
    remote: RemoteLoadBalancerState

    # resolved by the Backend and Frontend stages, port name -> identifier
    port_backends: dict[str, str] = field(default_factory=dict)
    port_frontends: dict[str, str] = field(default_factory=dict)

    def resource_name(self, *parts: str) -> str:
        return make_resource_name(*parts, suffix=self.name_suffix)

    def port_names(self) -> list[str]:
        return sorted(self.ports)


@dataclass
class StagePlan:
    to_create: list[Resource] = field(default_factory=list)
    to_destroy: list[Resource] = field(default_factory=list)


Stage = Callable[[PlanningContext], StagePlan]


def _resolve_by_port(ctx: PlanningContext, diff: Diff) -> dict[str, str]:
    by_name = {r.name: r.identifier for r in diff.existing}
    resolved: dict[str, str] = {}
    for port_name in ctx.port_names():
        identifier = by_name.get(ctx.resource_name(port_name))
        if identifier:
            resolved[port_name] = identifier
    return resolved


def _plan(diff: Diff) -> StagePlan:
    return StagePlan(to_create=list(diff.to_create), to_destroy=list(diff.to_destroy))


def reconcile_backends(ctx: PlanningContext) -> StagePlan:
    target = [
        Backend(
            name=ctx.resource_name(port_name),
            load_balancer_id=ctx.load_balancer_id,
            mode=MODE_TCP,
            health_check=TCP_HEALTH_CHECK,
        )
        for port_name in ctx.port_names()
    ]

    diff = reconcile(target, ctx.remote.backends, BACKEND_FIELDS)
    if diff.converged:
        ctx.port_backends.update(_resolve_by_port(ctx, diff))
    return _plan(diff)


def reconcile_frontends(ctx: PlanningContext) -> StagePlan:
    target: list[Frontend] = []
    for port_name in ctx.port_names():
        backend_id = ctx.port_backends.get(port_name)
        if backend_id is None:
            logger.debug("Not reconciling frontend because backend not (yet?) found", extra={"port": port_name})
            continue

        target.append(Frontend(
            name=ctx.resource_name(port_name),
            load_balancer_id=ctx.load_balancer_id,
            mode=MODE_TCP,
            default_backend_id=backend_id,
        ))

    diff = reconcile(target, ctx.remote.frontends, FRONTEND_FIELDS)
    if diff.converged:
        ctx.port_frontends.update(_resolve_by_port(ctx, diff))
    return _plan(diff)


def reconcile_binds(ctx: PlanningContext) -> StagePlan:
    target: list[Bind] = []
    for address in ctx.external_addresses:
        family = address_family(address)
        for port_name in ctx.port_names():
            frontend_id = ctx.port_frontends.get(port_name)
            if frontend_id is None:
                logger.debug(
                    "Not reconciling bind for %s because frontend not (yet?) found", address,
                    extra={"port": port_name},
                )
                continue

            target.append(Bind(
                name=ctx.resource_name(family, port_name),
                address=str(address),
                port=ctx.ports[port_name].external,
                frontend_id=frontend_id,
            ))

    return _plan(reconcile(target, ctx.remote.binds, BIND_FIELDS))


def reconcile_servers(ctx: PlanningContext) -> StagePlan:
    target: list[ServerResource] = []
    for server in ctx.servers:
        for port_name in ctx.port_names():
            backend_id = ctx.port_backends.get(port_name)
            if backend_id is None:
                logger.debug(
                    "Not reconciling server %s because backend not (yet?) found", server.name,
                    extra={"port": port_name},
                )
                continue

            target.append(ServerResource(
                name=ctx.resource_name(server.name, port_name),
                ip=str(server.address),
                port=ctx.ports[port_name].internal,
                check=SERVER_CHECK_ENABLED,
                backend_id=backend_id,
            ))

    return _plan(reconcile(target, ctx.remote.servers, SERVER_FIELDS))


STAGES: tuple[Stage, ...] = (
    reconcile_backends,
    reconcile_frontends,
    reconcile_binds,
    reconcile_servers,
)
