"""
DNS ownership verification for custom domains.

The tenant publishes two records:

    example.com            A    <platform server IP>
    _linkbio.example.com   TXT  "linkbio_verify=<token>"

Both are checked independently; only when both match may the domain leave
``pending_dns``. Every query runs with a hard lifetime so a misbehaving
resolver can never hang the scheduler.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import dns.exception
import dns.resolver

from app.config import settings

logger = logging.getLogger("linkbio.dns")


class LookupStatus(str, enum.Enum):
    FOUND = "found"
    MISSING = "missing"   # NXDOMAIN / no answer: a definite "not there (yet)"
    ERROR = "error"       # timeout, SERVFAIL, network trouble


class CheckOutcome(str, enum.Enum):
    VERIFIED = "verified"
    TOKEN_MISMATCH = "token_mismatch"
    NOT_PROPAGATED = "dns_not_propagated"
    RESOLVER_ERROR = "resolver_error"


@dataclass(frozen=True)
class RecordLookup:
    name: str
    rdtype: str
    status: LookupStatus
    values: Tuple[str, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True)
class DnsCheckResult:
    domain: str
    a_match: bool
    txt_match: bool
    a_lookup: RecordLookup
    txt_lookup: RecordLookup
    expected_ips: Tuple[str, ...]
    expected_txt_value: str
    details: List[str] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return self.a_match and self.txt_match

    @property
    def outcome(self) -> CheckOutcome:
        if self.verified:
            return CheckOutcome.VERIFIED
        if self.txt_lookup.status == LookupStatus.FOUND and not self.txt_match:
            return CheckOutcome.TOKEN_MISMATCH
        if LookupStatus.ERROR in (self.a_lookup.status, self.txt_lookup.status):
            return CheckOutcome.RESOLVER_ERROR
        return CheckOutcome.NOT_PROPAGATED


def _clean_txt(value: str) -> str:
    return value.strip().strip('"').strip()


class DnsVerifier:
    """Checks A and TXT records through dnspython."""

    def __init__(
        self,
        resolver=None,
        timeout: Optional[float] = None,
        nameservers: Optional[List[str]] = None,
        verify_prefix: Optional[str] = None,
    ):
        self._resolver = resolver
        self.timeout = timeout if timeout is not None else settings.DNS_TIMEOUT_SECONDS
        self.nameservers = nameservers if nameservers is not None else settings.dns_nameservers
        self.verify_prefix = verify_prefix or settings.txt_verify_prefix

    @property
    def resolver(self):
        if self._resolver is None:
            resolver = dns.resolver.Resolver(configure=not self.nameservers)
            if self.nameservers:
                resolver.nameservers = list(self.nameservers)
            resolver.timeout = self.timeout
            resolver.lifetime = self.timeout
            self._resolver = resolver
        return self._resolver

    def _lookup(self, name: str, rdtype: str) -> RecordLookup:
        try:
            answer = self.resolver.resolve(name, rdtype, lifetime=self.timeout)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer) as e:
            return RecordLookup(name, rdtype, LookupStatus.MISSING, error=type(e).__name__)
        except dns.exception.Timeout:
            logger.warning("DNS %s lookup for %s timed out after %.1fs", rdtype, name, self.timeout)
            return RecordLookup(name, rdtype, LookupStatus.ERROR, error="Timeout")
        except dns.exception.DNSException as e:
            logger.warning("DNS %s lookup for %s failed: %s", rdtype, name, e)
            return RecordLookup(name, rdtype, LookupStatus.ERROR, error=type(e).__name__)

        if rdtype == "TXT":
            values = tuple(
                _clean_txt(b"".join(rdata.strings).decode("utf-8", "replace"))
                for rdata in answer
            )
        else:
            values = tuple(rdata.to_text() for rdata in answer)
        if not values:
            return RecordLookup(name, rdtype, LookupStatus.MISSING, error="NoAnswer")
        return RecordLookup(name, rdtype, LookupStatus.FOUND, values=values)

    def verify(
        self,
        domain: str,
        expected_server_ip,
        expected_txt_name: str,
        expected_token: str,
    ) -> DnsCheckResult:
        """Run one A + TXT check for ``domain``.

        ``expected_server_ip`` may be a single address or an iterable of
        addresses (any of them satisfies the A check).
        """
        if isinstance(expected_server_ip, str):
            expected_ips: Tuple[str, ...] = (expected_server_ip,)
        else:
            expected_ips = tuple(expected_server_ip)
        expected_value = f"{self.verify_prefix}={expected_token}"
        details: List[str] = []

        a_lookup = self._lookup(domain, "A")
        a_match = a_lookup.status == LookupStatus.FOUND and any(
            ip in expected_ips for ip in a_lookup.values
        )
        if a_lookup.status == LookupStatus.FOUND and not a_match:
            details.append(
                f"A record points to {', '.join(a_lookup.values)}, expected {', '.join(expected_ips)}"
            )
        elif a_lookup.status == LookupStatus.MISSING:
            details.append(f"No A record found for {domain}")
        elif a_lookup.status == LookupStatus.ERROR:
            details.append(f"Could not look up the A record for {domain}; will retry")

        txt_lookup = self._lookup(expected_txt_name, "TXT")
        txt_match = txt_lookup.status == LookupStatus.FOUND and expected_value in txt_lookup.values
        if txt_lookup.status == LookupStatus.FOUND and not txt_match:
            details.append(
                f"TXT record at {expected_txt_name} does not contain the current verification value"
            )
        elif txt_lookup.status == LookupStatus.MISSING:
            details.append(f"No TXT record found at {expected_txt_name}")
        elif txt_lookup.status == LookupStatus.ERROR:
            details.append(f"Could not look up the TXT record at {expected_txt_name}; will retry")

        result = DnsCheckResult(
            domain=domain,
            a_match=a_match,
            txt_match=txt_match,
            a_lookup=a_lookup,
            txt_lookup=txt_lookup,
            expected_ips=expected_ips,
            expected_txt_value=expected_value,
            details=details,
        )
        logger.info(
            "DNS check %s: A=%s TXT=%s outcome=%s",
            domain, a_match, txt_match, result.outcome.value,
        )
        return result
