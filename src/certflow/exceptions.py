"""ACME client exceptions."""

from typing import Any


class AcmeError(Exception):
    """Base exception for ACME errors.

    Represents both problem documents returned by the ACME server
    (RFC 7807) and failures detected by the client itself. Client-side
    failures have no HTTP status and use the generic "about:blank" type
    unless they wrap a server problem.
    """

    default_type = "about:blank"

    def __init__(
        self,
        detail: str,
        type: str | None = None,
        status_code: int | None = None,
        subproblems: list[dict[str, Any]] | None = None,
        retry_after: int | None = None,
    ):
        self.type = type or self.default_type
        self.detail = detail
        self.status_code = status_code
        self.subproblems = subproblems
        self.retry_after = retry_after
        super().__init__(f"{self.type}: {detail}")

    @classmethod
    def from_response(
        cls,
        data: dict[str, Any],
        status_code: int,
        headers: dict[str, str] | None = None,
    ) -> "AcmeError":
        """Create an AcmeError from a problem document.

        Routes to the appropriate subclass based on the problem type.

        Args:
            data: Parsed JSON error response.
            status_code: HTTP status code.
            headers: Response headers (for Retry-After extraction).

        Returns:
            AcmeError instance (or appropriate subclass).
        """
        retry_after = None
        if headers:
            lowered = {k.lower(): v for k, v in headers.items()}
            retry_after = cls._parse_retry_after(lowered.get("retry-after"))
        error_type = data.get("type", "about:blank")

        kwargs: dict[str, Any] = {
            "type": error_type,
            "detail": data.get("detail", "Unknown error"),
            "status_code": status_code,
            "subproblems": data.get("subproblems"),
            "retry_after": retry_after,
        }

        error_cls = _PROBLEM_TYPES.get(error_type, AcmeError)
        return error_cls(**kwargs)

    @classmethod
    def wrap(cls, error: "AcmeError", detail: str | None = None) -> "AcmeError":
        """Re-raise a server problem as a more specific client error.

        Args:
            error: The original error.
            detail: Replacement detail message (defaults to the original).

        Returns:
            An instance of ``cls`` carrying the original problem fields.
        """
        return cls(
            detail=detail or error.detail,
            type=error.type,
            status_code=error.status_code,
            subproblems=error.subproblems,
            retry_after=error.retry_after,
        )

    @staticmethod
    def _parse_retry_after(value: str | None) -> int | None:
        """Parse Retry-After header (seconds or HTTP-date).

        Args:
            value: Retry-After header value.

        Returns:
            Seconds to wait, or None if not parseable.
        """
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            from datetime import datetime, timezone
            from email.utils import parsedate_to_datetime

            try:
                dt = parsedate_to_datetime(value)
            except (TypeError, ValueError):
                return None
            return max(0, int((dt - datetime.now(timezone.utc)).total_seconds()))


# Server problem types


class BadNonceError(AcmeError):
    """Bad nonce error (urn:ietf:params:acme:error:badNonce)."""

    pass


class RateLimitError(AcmeError):
    """Rate limit exceeded (urn:ietf:params:acme:error:rateLimited)."""

    pass


class DnsValidationError(AcmeError):
    """DNS validation failed (urn:ietf:params:acme:error:dns)."""

    pass


class CAAError(AcmeError):
    """CAA record forbids issuance (urn:ietf:params:acme:error:caa)."""

    pass


class ServerInternalError(AcmeError):
    """ACME server internal error (urn:ietf:params:acme:error:serverInternal)."""

    pass


class UnauthorizedError(AcmeError):
    """Client lacks authorization (urn:ietf:params:acme:error:unauthorized)."""

    pass


class BadCSRError(AcmeError):
    """CSR rejected by the server (urn:ietf:params:acme:error:badCSR)."""

    pass


_PROBLEM_TYPES: dict[str, type[AcmeError]] = {
    "urn:ietf:params:acme:error:badNonce": BadNonceError,
    "urn:ietf:params:acme:error:rateLimited": RateLimitError,
    "urn:ietf:params:acme:error:dns": DnsValidationError,
    "urn:ietf:params:acme:error:caa": CAAError,
    "urn:ietf:params:acme:error:serverInternal": ServerInternalError,
    "urn:ietf:params:acme:error:unauthorized": UnauthorizedError,
    "urn:ietf:params:acme:error:badCSR": BadCSRError,
}


# Client flow errors


class TransportError(AcmeError):
    """Network-level failure talking to the CA or a verification endpoint."""

    pass


class DirectoryUnavailable(AcmeError):
    """The ACME directory could not be fetched or parsed."""

    pass


class NonceUnavailable(AcmeError):
    """The nonce endpoint did not return a Replay-Nonce header."""

    pass


class SigningError(AcmeError):
    """A JWS could not be produced."""

    pass


class AccountCreationFailed(AcmeError):
    """The CA refused to create or look up the account."""

    pass


class AuthorizationError(AcmeError):
    """Error with authorization processing."""

    pass


class UnsupportedChallengeType(AuthorizationError):
    """The authorization offers no challenge of the requested type."""

    pass


class ChallengeError(AcmeError):
    """Error during challenge validation."""

    pass


class ChallengeValidationFailed(ChallengeError):
    """The CA marked the challenge invalid."""

    pass


class ChallengeTimeout(ChallengeError):
    """The challenge did not reach a final status within the polling budget."""

    pass


class OrderError(AcmeError):
    """Error with order processing."""

    pass


class OrderFailed(OrderError):
    """The CA marked the order invalid."""

    pass


class OrderTimeout(OrderError):
    """The order did not become valid within the polling budget."""

    pass


class CSRSigningError(AcmeError):
    """The generated CSR failed its own signature check."""

    pass


class CertificateDownloadFailed(AcmeError):
    """The issued certificate chain could not be downloaded."""

    pass
