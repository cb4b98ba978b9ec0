"""Domain name normalization and FQDN syntax checks."""
import ipaddress
import re
from typing import Optional

from app.config import settings
from app.core.errors import InvalidDomainSyntax

_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.I)
MAX_DOMAIN_LENGTH = 253


def _to_ascii(name: str) -> str:
    try:
        return name.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise InvalidDomainSyntax(f"'{name}' is not a valid domain name") from e


def normalize_domain(raw: Optional[str]) -> str:
    """Return the canonical stored form of a user-supplied domain.

    Accepts pasted URLs ("https://Example.com/alice") and strips scheme, path,
    port and trailing dot. Raises InvalidDomainSyntax for anything that is not
    a plausible public FQDN.
    """
    if raw is None:
        raise InvalidDomainSyntax("Domain is required")
    value = raw.strip()
    value = _SCHEME_RE.sub("", value)
    value = value.split("/", 1)[0].split("?", 1)[0].split("#", 1)[0]
    if "@" in value:
        raise InvalidDomainSyntax(f"'{raw}' is not a valid domain name")
    value = value.rsplit(":", 1)[0] if value.count(":") == 1 else value
    value = value.rstrip(".").lower()

    if not value:
        raise InvalidDomainSyntax("Domain is required")

    try:
        ipaddress.ip_address(value.strip("[]"))
    except ValueError:
        pass
    else:
        raise InvalidDomainSyntax("IP addresses cannot be used as custom domains")

    value = _to_ascii(value)
    if len(value) > MAX_DOMAIN_LENGTH:
        raise InvalidDomainSyntax("Domain name is too long")

    labels = value.split(".")
    if len(labels) < 2:
        raise InvalidDomainSyntax(f"'{value}' is not a fully-qualified domain name")
    if not all(_LABEL_RE.match(label) for label in labels):
        raise InvalidDomainSyntax(f"'{value}' contains an invalid label")
    if labels[-1].isdigit():
        raise InvalidDomainSyntax(f"'{value}' has a numeric top-level domain")

    if is_platform_host(value) or value in settings.local_dev_hosts:
        raise InvalidDomainSyntax("The platform's own domains cannot be claimed")
    return value


def is_platform_host(host: str) -> bool:
    platform = settings.PLATFORM_DOMAIN.lower()
    return host == platform or host.endswith(f".{platform}")


def is_apex(domain: str) -> bool:
    """Rough apex check used for the www convenience claim (example.com, not a.example.com)."""
    return not domain.startswith("www.") and domain.count(".") == 1


def www_variant(domain: str) -> str:
    return f"www.{domain}"


def strip_www(domain: str) -> str:
    return domain[4:] if domain.startswith("www.") else domain
