"""DNS-01 challenge material."""

import hashlib

from cryptography.hazmat.primitives.asymmetric import rsa

from certflow.challenges.http01 import compute_key_authorization
from certflow.crypto import base64url_encode, key_thumbprint
from certflow.models import Challenge, Dns01Material


def compute_dns_txt_value(key_authorization: str) -> str:
    """Compute the DNS TXT record value for DNS-01 challenge.

    The TXT record value is the base64url-encoded SHA-256 digest
    of the key authorization string.

    Args:
        key_authorization: The key authorization string.

    Returns:
        The base64url-encoded SHA-256 digest (without padding).
    """
    digest = hashlib.sha256(key_authorization.encode("utf-8")).digest()
    return base64url_encode(digest)


def dns01_material(challenge: Challenge, account_key: rsa.RSAPrivateKey) -> Dns01Material:
    """Build the TXT record a zone must publish for a DNS-01 challenge."""
    key_authorization = compute_key_authorization(challenge.token, key_thumbprint(account_key))
    return Dns01Material(value=compute_dns_txt_value(key_authorization))
