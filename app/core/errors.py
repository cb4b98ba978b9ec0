"""
Custom domain error taxonomy.

Every error carries a stable machine ``code`` (returned to API clients), the
HTTP status used when it escapes an endpoint, and whether retrying the same
operation later can succeed without the caller changing anything.
"""
from typing import Optional


class DomainError(Exception):
    code = "domain_error"
    status_code = 400
    retryable = False
    default_message = "Domain operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class DomainAlreadyClaimed(DomainError):
    code = "domain_already_claimed"
    status_code = 409
    default_message = "This domain is already registered"


class InvalidDomainSyntax(DomainError):
    code = "invalid_domain_syntax"
    status_code = 422
    default_message = "Invalid domain name"


class DnsNotYetPropagated(DomainError):
    code = "dns_not_propagated"
    status_code = 200
    retryable = True
    default_message = "DNS records not found yet; propagation can take up to 48 hours"


class TokenMismatch(DomainError):
    code = "token_mismatch"
    status_code = 200
    retryable = True
    default_message = "TXT record found but the verification value does not match"


class ResolverUnavailable(DomainError):
    code = "resolver_error"
    status_code = 200
    retryable = True
    default_message = "DNS lookup failed; will retry"


class VerificationTimedOut(DomainError):
    code = "verification_timed_out"
    status_code = 200
    default_message = "DNS verification did not succeed in time"


class PrimaryConflict(DomainError):
    code = "primary_conflict"
    status_code = 409
    default_message = "Only an active domain can be primary"


class UnknownDomain(DomainError):
    code = "unknown_domain"
    status_code = 404
    default_message = "Domain not found"


class DomainNotFound(DomainError):
    code = "domain_not_found"
    status_code = 404
    default_message = "Domain record not found"


class IllegalTransition(DomainError):
    code = "illegal_transition"
    status_code = 409
    default_message = "This action is not allowed in the domain's current state"
