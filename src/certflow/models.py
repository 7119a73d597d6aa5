"""Pydantic models for ACME protocol resources."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

# =============================================================================
# ACME Protocol Enums (RFC 8555)
# =============================================================================


class ChallengeStatus(StrEnum):
    """Challenge statuses (RFC 8555 Section 7.1.6)."""

    PENDING = "pending"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


class AuthorizationStatus(StrEnum):
    """Authorization statuses (RFC 8555 Section 7.1.6)."""

    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    REVOKED = "revoked"


class OrderStatus(StrEnum):
    """Order statuses (RFC 8555 Section 7.1.6)."""

    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


class ChallengeType(StrEnum):
    """Challenge types this client can complete."""

    HTTP_01 = "http-01"
    DNS_01 = "dns-01"


class IdentifierType(StrEnum):
    """Identifier types (RFC 8555 Section 9.7.7)."""

    DNS = "dns"


# =============================================================================
# Protocol resources
# =============================================================================


class Directory(BaseModel):
    """ACME directory resource (RFC 8555 Section 7.1.1)."""

    new_nonce: str = Field(alias="newNonce")
    new_account: str = Field(alias="newAccount")
    new_order: str = Field(alias="newOrder")
    revoke_cert: str | None = Field(default=None, alias="revokeCert")
    key_change: str | None = Field(default=None, alias="keyChange")
    meta: dict[str, Any] | None = None

    model_config = {"populate_by_name": True, "frozen": True}


class Identifier(BaseModel):
    """ACME identifier (RFC 8555 Section 7.1.3)."""

    type: IdentifierType
    value: str


class Challenge(BaseModel):
    """ACME challenge resource (RFC 8555 Section 7.5.1).

    ``type`` is kept as a plain string: CAs offer challenge types this
    client does not implement (tls-alpn-01, ...) alongside the ones it does.
    """

    type: str
    url: str
    status: ChallengeStatus
    token: str
    validated: datetime | None = None
    error: dict[str, Any] | None = None


class Authorization(BaseModel):
    """ACME authorization resource (RFC 8555 Section 7.1.4)."""

    status: AuthorizationStatus
    identifier: Identifier
    challenges: list[Challenge]
    expires: datetime | None = None
    wildcard: bool | None = None


class Order(BaseModel):
    """ACME order resource (RFC 8555 Section 7.1.3)."""

    status: OrderStatus
    identifiers: list[Identifier]
    authorizations: list[str]
    finalize: str
    expires: datetime | None = None
    not_before: datetime | None = Field(default=None, alias="notBefore")
    not_after: datetime | None = Field(default=None, alias="notAfter")
    certificate: str | None = None
    error: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}


class JWS(BaseModel):
    """JWS in flattened JSON serialization, the body of every signed request."""

    protected: str
    payload: str
    signature: str


# =============================================================================
# Collaborator-facing models
# =============================================================================


class Http01Material(BaseModel):
    """What a web server must serve for an HTTP-01 challenge."""

    token: str
    key_authorization: str

    @property
    def path(self) -> str:
        """URL path the CA will fetch."""
        return f"/.well-known/acme-challenge/{self.token}"


class Dns01Material(BaseModel):
    """What a DNS zone must publish for a DNS-01 challenge."""

    host: str = "_acme-challenge"
    value: str

    def record_name(self, domain: str) -> str:
        """Full TXT record name for ``domain`` (wildcard prefix dropped)."""
        base = domain[2:] if domain.startswith("*.") else domain
        return f"{self.host}.{base}"


ChallengeMaterial = Http01Material | Dns01Material


class PendingCertificate(BaseModel):
    """A certificate request waiting for its challenge material to be published.

    Bound to exactly one order: the material is only valid for that
    order's challenge token.
    """

    domain: str
    provider: str
    method: ChallengeType
    order: Order
    order_url: str
    authorization: Authorization
    challenge: Challenge
    material: ChallengeMaterial

    @property
    def already_validated(self) -> bool:
        """The CA reused a valid authorization; nothing has to be published."""
        return (
            self.authorization.status == AuthorizationStatus.VALID
            or self.challenge.status == ChallengeStatus.VALID
        )


class CertificateBundle(BaseModel):
    """Result of certificate issuance."""

    certificate_pem: str
    private_key_pem: str
    domain: str
    provider: str
    issued_at: datetime
