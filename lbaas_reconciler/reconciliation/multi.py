"""Concurrent reconciliation of one service on several load balancers."""

from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

from ..lbaas.models import Resource
from .reconciler import Reconciliation, Status
from .state_retriever import StateRetriever

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MultiReconciliation:
    """Runs the wrapped reconciliations concurrently, sharing one state retriever per operation.

    All wrapped reconciliations must belong to the same service. An operation
    is complete once every wrapped reconciliation completed; the first error
    (in the order the reconciliations were added) is raised.
    """

    def __init__(self, *reconciliations: Reconciliation):
        self._recons: list[Reconciliation] = []
        for recon in reconciliations:
            self.add(recon)

    def add(self, recon: Reconciliation) -> None:
        if self._recons and recon.service_uid != self._recons[0].service_uid:
            raise ValueError(
                f"cannot combine services {self._recons[0].service_uid!r} and {recon.service_uid!r}"
            )
        if any(r.load_balancer_id == recon.load_balancer_id for r in self._recons):
            raise ValueError(f"load balancer {recon.load_balancer_id!r} is already reconciled")
        self._recons.append(recon)

    def __len__(self) -> int:
        return len(self._recons)

    @property
    def reconciliations(self) -> list[Reconciliation]:
        return list(self._recons)

    def reconcile_check(self) -> tuple[list[Resource], list[Resource]]:
        to_create: list[Resource] = []
        to_destroy: list[Resource] = []
        for create, destroy in self._run_all(lambda r, sr: r.reconcile_check(sr)):
            to_create.extend(create)
            to_destroy.extend(destroy)
        return to_create, to_destroy

    def reconcile(self) -> None:
        self._run_all(lambda r, sr: r.reconcile(sr))

    def status(self) -> Status:
        return merge_status(self._run_all(lambda r, sr: r.status(sr)))

    def _run_all(self, op: Callable[[Reconciliation, StateRetriever], T]) -> list[T]:
        if not self._recons:
            return []

        first = self._recons[0]
        retriever = StateRetriever(
            first.provider,
            first.tag,
            [r.load_balancer_id for r in self._recons],
            cancel=first.cancel,
        )

        with ThreadPoolExecutor(max_workers=len(self._recons), thread_name_prefix="lbaas-recon") as pool:
            futures: list[Future[T]] = [pool.submit(op, recon, retriever) for recon in self._recons]

        results: list[T] = []
        for recon, future in zip(self._recons, futures):
            exc = future.exception()
            if exc is not None:
                logger.error(
                    "Reconciliation failed: %s", exc,
                    extra={"load_balancer": recon.load_balancer_id, "service_uid": recon.service_uid},
                )
                raise exc
            results.append(future.result())
        return results


def merge_status(statuses: Sequence[Status]) -> Status:
    """Keep only address/port combinations reported by every status.

    An address is dropped entirely when none of its ports is reported by all.
    """
    counts: dict[str, Counter[int]] = {}
    for status in statuses:
        for address, ports in status.items():
            counts.setdefault(address, Counter()).update(set(ports))

    merged: Status = {}
    for address, port_counts in counts.items():
        ports = sorted(p for p, n in port_counts.items() if n == len(statuses))
        if ports:
            merged[address] = ports
    return merged
