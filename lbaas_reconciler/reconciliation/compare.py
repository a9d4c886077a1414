"""Structural set difference between desired and remote resources."""

from __future__ import annotations

from dataclasses import dataclass, field
from operator import attrgetter
from typing import Any, Generic, Sequence, TypeVar

from ..exceptions import DuplicateResourceError
from ..lbaas.models import Resource

T = TypeVar("T", bound=Resource)


@dataclass
class Diff(Generic[T]):
    to_create: list[T] = field(default_factory=list)
    to_destroy: list[T] = field(default_factory=list)
    # remote objects matched by a target, carrying the provider identifiers
    existing: list[T] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return not self.to_create and not self.to_destroy


def reconcile(target: Sequence[T], remote: Sequence[T], fields: Sequence[str]) -> Diff[T]:
    """Compare ``target`` and ``remote`` over exactly ``fields``.

    Targets without an equal remote are returned for creation, remotes without
    an equal target for destruction. Every remote object satisfies at most one
    target, so duplicated remotes get destroyed. Fields not listed (identifier,
    state, ...) are ignored. Dotted paths are accepted.
    """
    if not fields:
        raise ValueError("at least one comparison field is required")

    key_of = attrgetter(*fields)

    seen: set[Any] = set()
    for t in target:
        key = key_of(t)
        if key in seen:
            raise DuplicateResourceError(
                f"Desired {type(t).__name__} objects collide on {', '.join(fields)}: {key!r}"
            )
        seen.add(key)

    unmatched: dict[Any, list[T]] = {}
    for r in remote:
        unmatched.setdefault(key_of(r), []).append(r)

    diff: Diff[T] = Diff()
    for t in target:
        candidates = unmatched.get(key_of(t))
        if candidates:
            diff.existing.append(candidates.pop(0))
        else:
            diff.to_create.append(t)

    for leftovers in unmatched.values():
        diff.to_destroy.extend(leftovers)

    return diff
