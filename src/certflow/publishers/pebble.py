"""Challenge publisher for pebble-challtestsrv."""

import httpx

from certflow._logging import get_logger
from certflow.challenges.base import ChallengePublisher
from certflow.models import ChallengeMaterial, Dns01Material, Http01Material

logger = get_logger(__name__)


class PebbleChallengeServer(ChallengePublisher):
    """Publisher backed by pebble-challtestsrv.

    Used to test against the Pebble ACME server: challtestsrv answers the
    HTTP-01 and DNS-01 queries Pebble makes during validation, and its
    management API sets up the responses.

    Args:
        challtestsrv_url: Base URL of the pebble-challtestsrv management API.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(self, challtestsrv_url: str, timeout: float = 10.0):
        self.challtestsrv_url = challtestsrv_url.rstrip("/")
        self.timeout = timeout

    async def _post(self, path: str, body: dict[str, str]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as http:
            response = await http.post(f"{self.challtestsrv_url}{path}", json=body)
        response.raise_for_status()

    async def publish(self, domain: str, material: ChallengeMaterial) -> None:
        """Register the HTTP-01 response or the DNS-01 TXT record."""
        if isinstance(material, Http01Material):
            await self._post(
                "/add-http01",
                {"token": material.token, "content": material.key_authorization},
            )
        else:
            await self._post(
                "/set-txt",
                {"host": f"{material.record_name(domain)}.", "value": material.value},
            )
        logger.debug("Challenge published to challtestsrv", extra={"domain": domain})

    async def cleanup(self, domain: str, material: ChallengeMaterial) -> None:
        """Remove the HTTP-01 response or the DNS-01 TXT record."""
        if isinstance(material, Dns01Material):
            await self._post("/clear-txt", {"host": f"{material.record_name(domain)}."})
        else:
            await self._post("/del-http01", {"token": material.token})
