"""Main polling loop with signal handling and exponential backoff."""

from __future__ import annotations

import logging
import random
import signal
import threading
import time
from types import FrameType

from .config import AppConfig, ServiceConfig
from .exceptions import ReconciliationError
from .lbaas import LBaaSProvider
from .lbaas.client import LBaaSClient
from .lbaas.models import Resource
from .reconciliation import MultiReconciliation, Port, Reconciliation, Server

logger = logging.getLogger(__name__)


class Daemon:
    """Polling daemon: reconcile every configured service -> sleep -> repeat."""

    def __init__(self, config: AppConfig, provider: LBaaSProvider | None = None):
        self._config = config
        self._provider: LBaaSProvider = provider or LBaaSClient(config.api)
        # set on shutdown, also aborts in-flight readiness waits
        self._shutdown = threading.Event()
        self._consecutive_failures = 0

    @property
    def shutdown_event(self) -> threading.Event:
        return self._shutdown

    def build_reconciliation(self, service: ServiceConfig) -> MultiReconciliation:
        """Reconciliation of one service over all of its load balancers."""
        ports = {name: Port(internal=p.internal, external=p.external) for name, p in service.ports.items()}
        servers = [Server.parse(s.name, s.address) for s in service.servers]

        multi = MultiReconciliation()
        for lb_id in service.load_balancers:
            multi.add(Reconciliation(
                self._provider,
                service.name_suffix,
                lb_id,
                service.service_uid,
                service.external_addresses,
                ports,
                servers,
                backoff=self._config.reconciliation.backoff,
                cancel=self._shutdown,
            ))
        return multi

    def run_once(self) -> None:
        """Execute a single reconciliation cycle."""
        self._cycle()

    def check(self) -> dict[str, dict[str, list[str]]]:
        """Planned changes per service, without touching anything."""
        result = {}
        for service in self._config.services:
            to_create, to_destroy = self.build_reconciliation(service).reconcile_check()
            result[service.service_uid] = {
                "create": _describe_planned(to_create),
                "destroy": _describe_planned(to_destroy),
            }
        return result

    def status(self) -> dict[str, dict[str, list[int]]]:
        return {
            service.service_uid: self.build_reconciliation(service).status()
            for service in self._config.services
        }

    def run(self) -> None:
        """Run the polling loop until shutdown signal."""
        self._install_signal_handlers()
        logger.info("Daemon started, polling every %ds", self._config.polling.interval_seconds)

        while not self._shutdown.is_set():
            cycle_start = time.monotonic()

            try:
                self._cycle()
                self._consecutive_failures = 0
            except Exception:
                if self._shutdown.is_set():
                    break
                self._consecutive_failures += 1
                logger.exception(
                    "Cycle failed (consecutive failures: %d)",
                    self._consecutive_failures,
                )

            elapsed = time.monotonic() - cycle_start
            sleep_time = self._calculate_sleep(elapsed)
            logger.debug("Sleeping %.1fs before next cycle", sleep_time)
            self._shutdown.wait(sleep_time)

        logger.info("Daemon stopped")

    def _cycle(self) -> None:
        """Reconcile every service; one failing service does not stop the others."""
        start = time.monotonic()
        failed: list[str] = []

        for service in self._config.services:
            if self._shutdown.is_set():
                break
            try:
                self.build_reconciliation(service).reconcile()
            except Exception:
                if self._shutdown.is_set():
                    raise
                logger.exception("Reconciling service failed", extra={"service_uid": service.service_uid})
                failed.append(service.service_uid)

        elapsed = time.monotonic() - start
        logger.info(
            "Cycle complete",
            extra={"elapsed_seconds": round(elapsed, 2), "services": len(self._config.services)},
        )
        if failed:
            raise ReconciliationError(f"Reconciliation failed for services: {', '.join(failed)}")

    def _calculate_sleep(self, elapsed: float) -> float:
        """Determine how long to sleep, applying backoff and jitter."""
        base = self._config.polling.interval_seconds

        if self._consecutive_failures > 0:
            backoff = min(
                self._config.polling.backoff_base_seconds * (2 ** (self._consecutive_failures - 1)),
                self._config.polling.max_backoff_seconds,
            )
            base = backoff

        jitter = random.uniform(0, self._config.polling.jitter_seconds)

        return max(0.0, base - elapsed + jitter)

    def _install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

    def _handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down", sig_name)
        self._shutdown.set()


def _describe_planned(resources: list[Resource]) -> list[str]:
    return [f"{type(r).__name__}:{r.identifier or r.name}" for r in resources]
