"""Poll resources until they leave the progressing state, with bounded exponential backoff."""

from __future__ import annotations

import dataclasses
import logging
import random
import threading
from typing import Sequence

from ..config import BackoffConfig
from ..exceptions import ReconciliationCanceled, ResourceFailed, ResourceNotFound, ResourceWaitTimeout
from ..lbaas import LBaaSProvider
from ..lbaas.models import Resource, ResourceState

logger = logging.getLogger(__name__)


def backoff_delays(backoff: BackoffConfig) -> list[float]:
    """Base delays between the polling steps, before jitter is applied."""
    delays = []
    delay = backoff.initial_interval
    for _ in range(backoff.steps - 1):
        delays.append(delay)
        delay = min(delay * backoff.factor, backoff.max_interval)
    return delays


def _jittered(delay: float, jitter: float) -> float:
    if jitter <= 0:
        return delay
    return delay + random.uniform(0, jitter * delay)


def wait_for_resources(
    provider: LBaaSProvider,
    resources: Sequence[Resource],
    backoff: BackoffConfig,
    cancel: threading.Event | None = None,
) -> list[Resource]:
    """Wait until every resource is ready and return their fresh representations.

    The first step re-fetches all resources, later steps only those not ready
    yet. A resource in failure state (or vanished) raises ``ResourceFailed``
    immediately, even when others are still progressing. When the step budget
    runs out ``ResourceWaitTimeout`` carries the ones still progressing.
    """
    cancel = cancel or threading.Event()
    current = list(resources)
    if not current:
        return current

    delays = backoff_delays(backoff)
    progressing: list[Resource] = []

    for step in range(backoff.steps):
        if cancel.is_set():
            raise ReconciliationCanceled()

        current = [
            r if step > 0 and r.ready else _refresh(provider, r)
            for r in current
        ]

        failed = [r for r in current if r.failed]
        if failed:
            raise ResourceFailed(failed)

        progressing = [r for r in current if r.progressing]
        if not progressing:
            logger.debug("%d resources ready after %d steps", len(current), step + 1)
            return current

        if step < len(delays):
            sleep = _jittered(delays[step], backoff.jitter)
            logger.debug(
                "%d resources still progressing, next check in %.2fs", len(progressing), sleep,
                extra={"count": len(progressing)},
            )
            if cancel.wait(sleep):
                raise ReconciliationCanceled()

    raise ResourceWaitTimeout(progressing)


def _refresh(provider: LBaaSProvider, resource: Resource) -> Resource:
    try:
        return provider.get(type(resource), resource.identifier)
    except ResourceNotFound:
        logger.warning("Resource vanished while waiting for it: %s", resource.describe())
        return dataclasses.replace(resource, state=ResourceState.FAILED)
