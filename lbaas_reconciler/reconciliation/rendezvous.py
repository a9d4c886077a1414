"""Re-usable cyclic barrier whose last arriving party runs a shared action."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

from ..exceptions import ReconciliationCanceled

logger = logging.getLogger(__name__)

T = TypeVar("T")

# how often blocked parties re-check their cancel event
CANCEL_POLL_SECONDS = 0.05


class Rendezvous(Generic[T]):
    """All parties must arrive, one of them runs the action, all are released.

    Unlike ``threading.Barrier`` the number of parties can shrink between
    rounds: ``leave()`` removes a party and completes the current round if
    every remaining party already arrived. The action runs without holding
    the internal lock. Its result (or exception) is handed to every party of
    the round it completed.
    """

    def __init__(self, parties: int, action: Callable[[], T]):
        if parties < 0:
            raise ValueError("parties must be >= 0")
        self._cond = threading.Condition()
        self._action = action
        self._parties = parties
        self._arrived = 0
        self._generation = 0
        # a round can only complete after every party read the previous outcome
        self._outcome: tuple[int, T | None, BaseException | None] | None = None

    @property
    def parties(self) -> int:
        with self._cond:
            return self._parties

    @property
    def generation(self) -> int:
        """Number of completed (or running) rounds."""
        with self._cond:
            return self._generation

    def wait(self, cancel: threading.Event | None = None) -> T | None:
        """Arrive at the current round and block until it completes."""
        if cancel is not None and cancel.is_set():
            raise ReconciliationCanceled()

        with self._cond:
            if self._arrived >= self._parties:
                raise RuntimeError("more arrivals than registered parties")
            generation = self._generation
            self._arrived += 1
            trip = self._arrived == self._parties
            if trip:
                self._start_round()

        if trip:
            self._run_round(generation)

        with self._cond:
            while not self._completed(generation):
                if cancel is not None and cancel.is_set():
                    # withdraw the arrival unless the round already started
                    if self._generation == generation:
                        self._arrived -= 1
                    raise ReconciliationCanceled()
                self._cond.wait(CANCEL_POLL_SECONDS)
            _, result, error = self._outcome

        if error is not None:
            raise error
        return result

    def leave(self, cancel: threading.Event | None = None) -> None:
        """Remove one party; completes the round if it was the last one missing.

        When ``cancel`` is set the round completes with ``ReconciliationCanceled``
        instead of running the action.
        """
        with self._cond:
            if self._parties == 0:
                raise RuntimeError("no party left to remove")
            self._parties -= 1
            generation = self._generation
            trip = 0 < self._arrived == self._parties
            if trip:
                self._start_round()

        if trip:
            self._run_round(generation, canceled=cancel is not None and cancel.is_set())

    def _start_round(self) -> None:
        self._arrived = 0
        self._generation += 1

    def _completed(self, generation: int) -> bool:
        return self._outcome is not None and self._outcome[0] == generation

    def _run_round(self, generation: int, canceled: bool = False) -> None:
        result: T | None = None
        error: BaseException | None = None
        if canceled:
            error = ReconciliationCanceled()
        else:
            try:
                result = self._action()
            except Exception as exc:
                logger.debug("Rendezvous action of round %d failed: %s", generation, exc)
                error = exc

        with self._cond:
            self._outcome = (generation, result, error)
            self._cond.notify_all()
