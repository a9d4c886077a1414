"""Data models for LBaaS resources and their readiness state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Iterable

FRONTEND_TYPE_IDENTIFIER = "da9d14b9d95840c08213de67f9cee6e2"
BIND_TYPE_IDENTIFIER = "bd24def982aa478fb3352cb5f49aab47"
BACKEND_TYPE_IDENTIFIER = "33164a3066a04a52be43c607f0c5dd8c"
SERVER_TYPE_IDENTIFIER = "01f321a4875446409d7d8469503a905f"

# Provider-reported state types
STATE_TYPE_OK = 0
STATE_TYPE_ERROR = 1
STATE_TYPE_PENDING = 2


class ResourceState(Enum):
    """Readiness classification of a resource."""

    PROGRESSING = "progressing"
    READY = "ready"
    FAILED = "failed"

    @classmethod
    def from_api(cls, raw: Any) -> ResourceState:
        """Derive the readiness from the provider's ``state`` object."""
        if not isinstance(raw, dict):
            return cls.READY
        state_type = raw.get("type", STATE_TYPE_OK)
        if state_type == STATE_TYPE_PENDING:
            return cls.PROGRESSING
        if state_type == STATE_TYPE_ERROR:
            return cls.FAILED
        return cls.READY


def _ref(raw: Any) -> str:
    """Extract an identifier from a nested reference (``{"identifier": ...}``) or plain string."""
    if isinstance(raw, dict):
        return raw.get("identifier", "") or ""
    return raw or ""


@dataclass
class Resource:
    """Common fields of every LBaaS resource.

    Only a base for the concrete variants below; it has no API representation
    of its own.
    """

    identifier: str = ""
    name: str = ""
    state: ResourceState = ResourceState.READY

    kind: ClassVar[str] = "resource"
    type_identifier: ClassVar[str] = ""

    @property
    def progressing(self) -> bool:
        return self.state is ResourceState.PROGRESSING

    @property
    def failed(self) -> bool:
        return self.state is ResourceState.FAILED

    @property
    def ready(self) -> bool:
        return self.state is ResourceState.READY

    def describe(self) -> str:
        """Short representation for logs, e.g. ``Backend:abc123``."""
        return f"{type(self).__name__}:{self.identifier or '<no identifier>'}"

    def to_api(self) -> dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} has no API representation")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Resource:
        raise NotImplementedError(f"{cls.__name__} cannot be built from API data")


@dataclass
class LoadBalancer(Resource):
    kind: ClassVar[str] = "loadbalancer"

    def to_api(self) -> dict[str, Any]:
        return {"name": self.name}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> LoadBalancer:
        return cls(
            identifier=data.get("identifier", ""),
            name=data.get("name", ""),
            state=ResourceState.from_api(data.get("state")),
        )


@dataclass
class Backend(Resource):
    load_balancer_id: str = ""
    mode: str = "tcp"
    health_check: str = ""

    kind: ClassVar[str] = "backend"
    type_identifier: ClassVar[str] = BACKEND_TYPE_IDENTIFIER

    def to_api(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "load_balancer": self.load_balancer_id,
            "mode": self.mode,
            "health_check": self.health_check,
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Backend:
        return cls(
            identifier=data.get("identifier", ""),
            name=data.get("name", ""),
            state=ResourceState.from_api(data.get("state")),
            load_balancer_id=_ref(data.get("load_balancer")),
            mode=data.get("mode", ""),
            health_check=data.get("health_check") or "",
        )


@dataclass
class Frontend(Resource):
    load_balancer_id: str = ""
    mode: str = "tcp"
    default_backend_id: str = ""

    kind: ClassVar[str] = "frontend"
    type_identifier: ClassVar[str] = FRONTEND_TYPE_IDENTIFIER

    def to_api(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "load_balancer": self.load_balancer_id,
            "mode": self.mode,
            "default_backend": self.default_backend_id,
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Frontend:
        return cls(
            identifier=data.get("identifier", ""),
            name=data.get("name", ""),
            state=ResourceState.from_api(data.get("state")),
            load_balancer_id=_ref(data.get("load_balancer")),
            mode=data.get("mode", ""),
            default_backend_id=_ref(data.get("default_backend")),
        )


@dataclass
class Bind(Resource):
    address: str = ""
    port: int = 0
    frontend_id: str = ""

    kind: ClassVar[str] = "bind"
    type_identifier: ClassVar[str] = BIND_TYPE_IDENTIFIER

    def to_api(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "port": self.port,
            "frontend": self.frontend_id,
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Bind:
        return cls(
            identifier=data.get("identifier", ""),
            name=data.get("name", ""),
            state=ResourceState.from_api(data.get("state")),
            address=data.get("address") or "",
            port=int(data.get("port") or 0),
            frontend_id=_ref(data.get("frontend")),
        )


@dataclass
class ServerResource(Resource):
    """A pool member of a Backend (``server`` in the LBaaS API)."""

    ip: str = ""
    port: int = 0
    check: str = "enabled"
    backend_id: str = ""

    kind: ClassVar[str] = "server"
    type_identifier: ClassVar[str] = SERVER_TYPE_IDENTIFIER

    def to_api(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ip": self.ip,
            "port": self.port,
            "check": self.check,
            "backend": self.backend_id,
        }

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ServerResource:
        return cls(
            identifier=data.get("identifier", ""),
            name=data.get("name", ""),
            state=ResourceState.from_api(data.get("state")),
            ip=data.get("ip") or "",
            port=int(data.get("port") or 0),
            check=data.get("check") or "",
            backend_id=_ref(data.get("backend")),
        )


# Provider type identifier -> resource variant, used to classify tag listings.
RESOURCE_TYPES: dict[str, type[Resource]] = {
    FRONTEND_TYPE_IDENTIFIER: Frontend,
    BACKEND_TYPE_IDENTIFIER: Backend,
    BIND_TYPE_IDENTIFIER: Bind,
    SERVER_TYPE_IDENTIFIER: ServerResource,
}


@dataclass(frozen=True)
class TaggedResource:
    """An entry of a tag listing: only identity and type, no details."""

    identifier: str
    name: str = ""
    type_identifier: str = ""
    type_name: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> TaggedResource:
        type_info = data.get("type") or {}
        return cls(
            identifier=data.get("identifier", ""),
            name=data.get("name", ""),
            type_identifier=type_info.get("identifier", ""),
            type_name=type_info.get("name", ""),
        )


def describe_resources(resources: Iterable[Resource]) -> list[str]:
    return [r.describe() for r in resources]
