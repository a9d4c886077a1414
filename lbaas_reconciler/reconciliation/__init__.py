"""Tag-based reconciliation of LBaaS resources."""

from .multi import MultiReconciliation, merge_status
from .reconciler import TAG_LOCK, Reconciliation
from .state_retriever import RemoteLoadBalancerState, StateRetriever
from .types import Port, Server, make_resource_name, service_tag

__all__ = [
    "MultiReconciliation",
    "Port",
    "Reconciliation",
    "RemoteLoadBalancerState",
    "Server",
    "StateRetriever",
    "TAG_LOCK",
    "make_resource_name",
    "merge_status",
    "service_tag",
]
