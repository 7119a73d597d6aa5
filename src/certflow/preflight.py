"""Self-checks that challenge material is publicly visible before triggering.

A failed challenge counts against the CA's failed-validation limits, so it
is worth checking from the outside first: fetch the HTTP-01 file, or look up
the DNS-01 TXT record through a public DNS-over-HTTPS resolver.
"""

import httpx

from certflow._logging import get_logger
from certflow.exceptions import TransportError
from certflow.models import Dns01Material, Http01Material

logger = get_logger(__name__)

# JSON DNS-over-HTTPS endpoints
DOH_RESOLVERS: dict[str, str] = {
    "alidns": "https://dns.alidns.com/resolve",
    "dnspod": "https://doh.pub/dns-query",
    "cloudflare": "https://cloudflare-dns.com/dns-query",
    "google": "https://dns.google/resolve",
}

TXT_RECORD_TYPE = 16


async def check_http01(
    domain: str,
    material: Http01Material,
    http: httpx.AsyncClient | None = None,
) -> bool:
    """Check that the HTTP-01 key authorization is served for ``domain``.

    Args:
        domain: Domain being validated.
        material: HTTP-01 material for the current order.
        http: Optional client to reuse.

    Returns:
        True if the URL answers 2xx with the key authorization.

    Raises:
        TransportError: If the URL cannot be fetched.
    """
    url = f"http://{domain}{material.path}"
    try:
        if http is None:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(url)
        else:
            response = await http.get(url)
    except httpx.HTTPError as e:
        raise TransportError(detail=f"Cannot fetch {url}: {e}") from e

    if not response.is_success:
        logger.info("Challenge file not served", extra={"url": url, "status_code": response.status_code})
        return False

    matches = response.text.strip() == material.key_authorization
    if not matches:
        logger.info("Challenge file content does not match", extra={"url": url})
    return matches


def _txt_values(answers: list[dict]) -> list[str]:
    values = []
    for answer in answers:
        if answer.get("type") != TXT_RECORD_TYPE:
            continue
        data = answer.get("data") or answer.get("Data") or ""
        if data.startswith('"') and data.endswith('"') and len(data) >= 2:
            data = data[1:-1]
        values.append(data.replace('\\"', '"'))
    return values


async def check_dns01(
    domain: str,
    material: Dns01Material,
    resolver: str = "google",
    http: httpx.AsyncClient | None = None,
) -> bool:
    """Check that the DNS-01 TXT record is visible through a public resolver.

    Args:
        domain: Domain being validated (wildcard prefix allowed).
        material: DNS-01 material for the current order.
        resolver: One of DOH_RESOLVERS.
        http: Optional client to reuse.

    Returns:
        True if a TXT answer equals the expected value.

    Raises:
        ValueError: If the resolver is unknown.
        TransportError: If the resolver cannot be queried.
    """
    try:
        endpoint = DOH_RESOLVERS[resolver]
    except KeyError:
        raise ValueError(f"Unknown resolver: {resolver}. Known: {sorted(DOH_RESOLVERS)}") from None

    name = material.record_name(domain)
    params = {"name": name, "type": "TXT"}
    headers = {"Accept": "application/dns-json"}
    try:
        if http is None:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(endpoint, params=params, headers=headers)
        else:
            response = await http.get(endpoint, params=params, headers=headers)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as e:
        raise TransportError(detail=f"DNS-over-HTTPS query to {resolver} failed: {e}") from e
    except ValueError as e:
        raise TransportError(detail=f"{resolver} returned an unreadable answer: {e}") from e

    if data.get("Status") != 0:
        logger.info("TXT lookup failed", extra={"record": name, "dns_status": data.get("Status")})
        return False

    values = _txt_values(data.get("Answer") or [])
    logger.debug("TXT records found", extra={"record": name, "count": len(values)})
    return material.value in values
