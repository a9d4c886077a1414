"""LBaaS provider package: the provider Protocol the reconciliation engine drives."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from .models import Resource, TaggedResource

R = TypeVar("R", bound="Resource")


@runtime_checkable
class LBaaSProvider(Protocol):
    """Protocol that every LBaaS API client must satisfy.

    Errors are reported with the exceptions of ``lbaas_reconciler.exceptions``:
    ``ResourceNotFound`` for missing objects, ``RateLimited`` when throttled and
    ``LBaaSAPIError`` otherwise (with ``status_code`` 422 when a tag listing
    matches nothing).
    """

    def get(self, kind: type[R], identifier: str) -> R:
        """Return the full, current object."""
        ...

    def list_tagged(self, tag: str) -> Iterable[TaggedResource]:
        """List every resource carrying the given tag."""
        ...

    def create(self, resource: Resource) -> str:
        """Create the resource and return its new identifier."""
        ...

    def destroy(self, resource: Resource) -> None:
        ...

    def tag(self, identifier: str, tag: str) -> None:
        ...
