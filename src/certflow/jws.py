"""JWS signing for authenticated ACME requests (RFC 8555 Section 6.2)."""

from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from certflow.canonical import canonical_json
from certflow.crypto import base64url_encode, get_jwk
from certflow.exceptions import SigningError
from certflow.models import JWS

ALGORITHM = "RS256"


def sign_jws(
    key: rsa.RSAPrivateKey,
    payload: dict[str, Any] | str,
    url: str,
    nonce: str | None,
    kid: str | None = None,
) -> JWS:
    """Sign a payload as a flattened JWS for ACME.

    Args:
        key: Account private key.
        payload: Payload to sign (dict for JSON, empty string for POST-as-GET).
        url: Request URL; must equal the URL the JWS is posted to.
        nonce: Replay nonce for this request.
        kid: Account URL (if registered). If None, the JWK is embedded.

    Returns:
        The signed JWS.

    Raises:
        SigningError: If no nonce is given or the key is not RSA.
    """
    if not nonce:
        raise SigningError(detail=f"No replay nonce available to sign request for {url}")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningError(detail=f"{ALGORITHM} requires an RSA key, got {type(key).__name__}")

    protected: dict[str, Any] = {
        "alg": ALGORITHM,
        "nonce": nonce,
        "url": url,
    }

    # kid and jwk are mutually exclusive
    if kid:
        protected["kid"] = kid
    else:
        protected["jwk"] = get_jwk(key)

    protected_b64 = base64url_encode(canonical_json(protected))

    if payload == "":
        payload_b64 = ""
    else:
        payload_b64 = base64url_encode(canonical_json(payload))

    signing_input = f"{protected_b64}.{payload_b64}".encode("ascii")
    signature = key.sign(signing_input, padding.PKCS1v15(), hashes.SHA256())

    return JWS(
        protected=protected_b64,
        payload=payload_b64,
        signature=base64url_encode(signature),
    )
