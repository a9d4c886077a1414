"""Desired-state inputs for LBaaS reconciliation and resource naming."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

SERVICE_TAG_FORMAT = "anxccm-svc-uid={}"


@dataclass(frozen=True)
class Port:
    """A port of the service.

    ``external`` is configured into the LBaaS Bind (client facing), ``internal``
    is the port LBaaS connects to on the backend servers, e.g. a NodePort.
    """

    internal: int
    external: int

    def __post_init__(self) -> None:
        for value in (self.internal, self.external):
            if not 0 <= value <= 65535:
                raise ValueError(f"port {value} out of range 0-65535")


@dataclass(frozen=True)
class Server:
    """A backend endpoint, translated into one LBaaS server per port."""

    name: str
    address: IPAddress

    @classmethod
    def parse(cls, name: str, address: str) -> Server:
        return cls(name=name, address=ipaddress.ip_address(address))


def service_tag(service_uid: str) -> str:
    """Ownership tag attached to every resource created for the service."""
    return SERVICE_TAG_FORMAT.format(service_uid)


def address_family(address: IPAddress) -> str:
    return "v4" if address.version == 4 else "v6"


def make_resource_name(*parts: str, suffix: str = "") -> str:
    """Join the non-empty name parts and the per-service suffix with dots.

    >>> make_resource_name("v4", "http", suffix="my-svc")
    'v4.http.my-svc'
    """
    return ".".join(p for p in (*parts, suffix) if p)
