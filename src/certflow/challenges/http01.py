"""HTTP-01 challenge material."""

from cryptography.hazmat.primitives.asymmetric import rsa

from certflow.crypto import key_thumbprint
from certflow.models import Challenge, Http01Material


def compute_key_authorization(token: str, thumbprint: str) -> str:
    """Compute the key authorization string.

    The key authorization is the token concatenated with the account
    key thumbprint, separated by a period.

    Args:
        token: The challenge token from the ACME server.
        thumbprint: The base64url-encoded SHA-256 thumbprint of the account key.

    Returns:
        The key authorization string (token.thumbprint).
    """
    return f"{token}.{thumbprint}"


def http01_material(challenge: Challenge, account_key: rsa.RSAPrivateKey) -> Http01Material:
    """Build what the web server must serve for an HTTP-01 challenge.

    The response body at ``/.well-known/acme-challenge/<token>`` must be
    the key authorization, byte for byte.
    """
    key_authorization = compute_key_authorization(challenge.token, key_thumbprint(account_key))
    return Http01Material(token=challenge.token, key_authorization=key_authorization)
