"""Cryptographic utilities for ACME protocol operations."""

import base64
import hashlib

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certflow.canonical import canonical_json
from certflow.exceptions import CSRSigningError


def generate_rsa_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """Generate an RSA private key.

    Account keys use 2048 bits; domain keys default to 4096 in the flow.

    Args:
        key_size: Key size in bits.

    Returns:
        RSA private key.
    """
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def load_private_key_pem(pem_data: str, password: bytes | None = None) -> rsa.RSAPrivateKey:
    """Load an RSA private key from PEM-encoded data.

    Args:
        pem_data: PEM-encoded private key string.
        password: Optional password for encrypted keys.

    Returns:
        RSA private key.

    Raises:
        ValueError: If PEM data is invalid, the password is wrong, or the
            key is not RSA.
    """
    try:
        key = serialization.load_pem_private_key(
            pem_data.encode("utf-8"),
            password=password,
        )
    except ValueError as e:
        error_msg = str(e).lower()
        if "password" in error_msg or "decrypt" in error_msg:
            raise ValueError("Invalid password or encrypted key requires password") from e
        raise ValueError(f"Invalid PEM data: {e}") from e
    except TypeError as e:
        # Raised when an encrypted key is loaded without password
        raise ValueError("Invalid password or encrypted key requires password") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError(f"Unsupported key type: {type(key).__name__}")

    return key


def private_key_to_pem(key: rsa.RSAPrivateKey) -> str:
    """Export a private key as unencrypted PKCS#8 PEM."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def base64url_encode(data: bytes | str) -> str:
    """Base64url encode without padding.

    Text is UTF-8 encoded first; bytes (signatures, digests, DER) are
    encoded as they are.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _int_to_bytes(n: int) -> bytes:
    """Minimal big-endian representation of a non-negative integer."""
    return n.to_bytes(max(1, (n.bit_length() + 7) // 8), byteorder="big")


def get_jwk(key: rsa.RSAPrivateKey | rsa.RSAPublicKey) -> dict[str, str]:
    """Get the JWK (JSON Web Key) representation of an RSA public key.

    Args:
        key: RSA private or public key.

    Returns:
        JWK dictionary with ``kty``, ``n`` and ``e``.
    """
    public_key = key.public_key() if isinstance(key, rsa.RSAPrivateKey) else key
    numbers = public_key.public_numbers()
    return {
        "kty": "RSA",
        "n": base64url_encode(_int_to_bytes(numbers.n)),
        "e": base64url_encode(_int_to_bytes(numbers.e)),
    }


def key_thumbprint(key: rsa.RSAPrivateKey | rsa.RSAPublicKey) -> str:
    """Compute the JWK thumbprint of a key (RFC 7638).

    Args:
        key: Key to compute thumbprint for.

    Returns:
        Base64url-encoded SHA-256 thumbprint.
    """
    digest = hashlib.sha256(canonical_json(get_jwk(key))).digest()
    return base64url_encode(digest)


def create_csr(key: rsa.RSAPrivateKey, domain: str) -> bytes:
    """Create a DER-encoded Certificate Signing Request for one domain.

    The subject is ``CN=<domain>`` and the same name is repeated in the
    subjectAltName extension, which CAs use to read the identifier.

    Args:
        key: Domain private key to sign the CSR.
        domain: Domain name (may be a ``*.`` wildcard).

    Returns:
        DER-encoded CSR.

    Raises:
        ValueError: If domain is empty.
        CSRSigningError: If the signed CSR does not verify.
    """
    if not domain:
        raise ValueError("A domain is required")

    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, domain),
        ]
    )
    san = x509.SubjectAlternativeName([x509.DNSName(domain)])

    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(subject)
        .add_extension(san, critical=False)
        .sign(key, hashes.SHA256())
    )

    if not csr.is_signature_valid:
        raise CSRSigningError(detail=f"CSR signature for {domain} did not verify")

    return csr.public_bytes(serialization.Encoding.DER)
