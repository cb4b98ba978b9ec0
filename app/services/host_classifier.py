"""
Hostname classification.

``classify`` is called exactly once per request at the edge and produces an
immutable value that the rest of request handling reads. It never raises:
empty, malformed and mixed-case hosts all get a classification, and a store
failure is reported as such instead of falling back to platform routing.
"""
import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional
from uuid import UUID

from app.config import settings
from app.crud.crud_domain import DomainSnapshot
from app.models.custom_domain import DomainStatus

logger = logging.getLogger("linkbio.domain.classifier")

_HOSTNAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9.-]{0,251}[a-z0-9])?$")

DomainLookup = Callable[[str], Optional[DomainSnapshot]]


class HostKind(str, enum.Enum):
    PLATFORM = "platform"
    LOCAL_DEV = "local_dev"
    CUSTOM_DOMAIN = "custom_domain"


@dataclass(frozen=True)
class HostClassification:
    kind: HostKind
    host: str
    domain: Optional[DomainSnapshot] = None
    lookup_failed: bool = False

    @property
    def is_known(self) -> bool:
        return self.domain is not None

    @property
    def owner_id(self) -> Optional[UUID]:
        return self.domain.owner_id if self.domain else None

    @property
    def status(self) -> Optional[DomainStatus]:
        return self.domain.status if self.domain else None


def normalize_host(raw) -> str:
    """Strip port, brackets and trailing dot from a Host header and lower-case it.

    Non-ASCII hosts are returned as sent so they never fold onto an ASCII name.
    """
    if not isinstance(raw, str):
        return ""
    host = raw.strip()
    if host.startswith("["):
        end = host.find("]")
        host = host[1:end] if end != -1 else host[1:]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    host = host.rstrip(".")
    return host.lower() if host.isascii() else host


def is_platform(host: str, platform_domain: str) -> bool:
    return bool(host) and (host == platform_domain or host.endswith(f".{platform_domain}"))


def classify(
    host_header,
    lookup: DomainLookup,
    *,
    platform_domain: Optional[str] = None,
    local_hosts: Optional[Iterable[str]] = None,
) -> HostClassification:
    host = normalize_host(host_header)
    platform = (platform_domain or settings.PLATFORM_DOMAIN).lower()
    local = set(local_hosts) if local_hosts is not None else set(settings.local_dev_hosts)

    if host in local:
        return HostClassification(HostKind.LOCAL_DEV, host)
    if is_platform(host, platform):
        return HostClassification(HostKind.PLATFORM, host)
    if not host.isascii() or not _HOSTNAME_RE.match(host):
        return HostClassification(HostKind.CUSTOM_DOMAIN, host)

    try:
        snapshot = lookup(host)
    except Exception as e:
        logger.error("Custom domain lookup failed for %s: %s", host, e)
        return HostClassification(HostKind.CUSTOM_DOMAIN, host, lookup_failed=True)
    return HostClassification(HostKind.CUSTOM_DOMAIN, host, domain=snapshot)
