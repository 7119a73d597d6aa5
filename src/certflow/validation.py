"""Validation of collaborator input: domain names and verification methods."""

import re

from certflow.exceptions import UnsupportedChallengeType
from certflow.models import ChallengeType

# Labels of 1-63 alphanumerics/hyphens with alphanumeric edges, alphabetic TLD
_DOMAIN_RE = re.compile(
    r"^(\*\.)?([a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$"
)

_METHOD_ALIASES: dict[str, ChallengeType] = {
    "http-01": ChallengeType.HTTP_01,
    "http": ChallengeType.HTTP_01,
    "webserver": ChallengeType.HTTP_01,
    "dns-01": ChallengeType.DNS_01,
    "dns": ChallengeType.DNS_01,
}


def normalize_method(method: str | ChallengeType) -> ChallengeType:
    """Map a verification method to the challenge type it uses.

    Accepts the ACME challenge type names and the short names used by
    front ends ("webserver", "http", "dns").

    Raises:
        UnsupportedChallengeType: If the method is not HTTP-01 or DNS-01.
    """
    try:
        return _METHOD_ALIASES[str(method).strip().lower()]
    except KeyError:
        raise UnsupportedChallengeType(
            detail=f"Unsupported verification method: {method}"
        ) from None


def validate_domain(domain: str, method: str | ChallengeType) -> str:
    """Validate a domain name for the given verification method.

    Args:
        domain: Domain as entered by the user.
        method: Verification method; wildcards require DNS-01.

    Returns:
        The normalized (trimmed, lower-cased) domain.

    Raises:
        ValueError: If the domain is empty, malformed, or a wildcard
            requested over HTTP-01.
    """
    normalized = domain.strip().lower().rstrip(".")
    if not normalized:
        raise ValueError("A domain name is required")
    if len(normalized) > 253 or not _DOMAIN_RE.match(normalized):
        raise ValueError(f"Invalid domain name: {domain!r}")
    if normalized.startswith("*.") and normalize_method(method) != ChallengeType.DNS_01:
        raise ValueError(f"Wildcard domain {normalized} can only be validated with dns-01")
    return normalized
