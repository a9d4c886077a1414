"""Custom exception hierarchy for the LBaaS reconciler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .lbaas.models import Resource


class LBaaSReconcilerError(Exception):
    """Base exception for all reconciler errors."""


class ConfigError(LBaaSReconcilerError):
    """Invalid or missing configuration."""


class LBaaSAPIError(LBaaSReconcilerError):
    """Error communicating with the LBaaS provider API."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ResourceNotFound(LBaaSAPIError):
    """HTTP 404: the resource does not exist (anymore)."""

    def __init__(self, message: str = "Resource not found", response_body: str | None = None):
        super().__init__(message, status_code=404, response_body=response_body)


class RateLimited(LBaaSAPIError):
    """HTTP 429: the provider refused the request because of rate limiting."""

    def __init__(self, message: str = "Rate limited by LBaaS API", response_body: str | None = None):
        super().__init__(message, status_code=429, response_body=response_body)


class ReconciliationError(LBaaSReconcilerError):
    """Base for errors raised by the reconciliation engine."""


class _ResourcesError(ReconciliationError):
    default_message = ""

    def __init__(self, resources: Sequence[Resource] = (), message: str | None = None):
        self.resources = list(resources)
        super().__init__(message or f"{self.default_message} ({len(self.resources)} resources)")


class ResourceProgressing(_ResourcesError):
    """Some resources of the snapshot are not ready yet."""

    default_message = "LBaaS resources still progressing"


class ResourceFailed(_ResourcesError):
    """Some resources are in a failure state."""

    default_message = "LBaaS resource in failure state"


class ResourceWaitTimeout(_ResourcesError):
    """Backoff steps exhausted while resources were still progressing."""

    default_message = "Timed out waiting for LBaaS resources to become ready"


class ResourcesNotDestroyable(_ResourcesError):
    """Destroying resources made no progress; the remainder is attached."""

    default_message = "Failed to destroy some resources"


class ResourceCreateError(ReconciliationError):
    """The provider refused to create a resource."""

    def __init__(self, resource: Resource, message: str = "Error creating LBaaS resource"):
        super().__init__(f"{message}: {resource.describe()}")
        self.resource = resource


class ResourceTagError(ReconciliationError):
    """A created resource could not be tagged and is now untracked."""

    def __init__(self, resource: Resource, message: str = "Error tagging LBaaS resource"):
        super().__init__(f"{message}: {resource.describe()}")
        self.resource = resource


class LoadBalancerNotRegistered(ReconciliationError):
    """A load balancer not (or no longer) registered at the state retriever was used.

    This is a programming error in the caller.
    """

    def __init__(self, lb_id: str):
        super().__init__(f"Load balancer {lb_id!r} is not registered for the state retriever")
        self.lb_id = lb_id


class ReconciliationCanceled(ReconciliationError):
    """The cancel event was set while waiting."""

    def __init__(self, message: str = "Reconciliation canceled"):
        super().__init__(message)


class DuplicateResourceError(ReconciliationError, ValueError):
    """Two desired resources collide on their identity fields."""
