"""HTTP-01 publisher writing into a web server's document root."""

from pathlib import Path

import anyio

from certflow._logging import get_logger
from certflow.challenges.base import ChallengePublisher
from certflow.exceptions import UnsupportedChallengeType
from certflow.models import ChallengeMaterial, Http01Material

logger = get_logger(__name__)


class WebrootPublisher(ChallengePublisher):
    """Serve HTTP-01 key authorizations from a static document root.

    The key authorization is written to
    ``<webroot>/.well-known/acme-challenge/<token>``; the web server must
    serve that directory over plain HTTP on port 80. File operations run in
    worker threads through ``anyio.Path``.

    Args:
        webroot: Document root of the site for the domain.
    """

    def __init__(self, webroot: str | Path):
        self.webroot = Path(webroot)

    def _path(self, material: ChallengeMaterial) -> anyio.Path:
        if not isinstance(material, Http01Material):
            raise UnsupportedChallengeType(detail="WebrootPublisher only handles http-01")
        return anyio.Path(self.webroot / material.path.lstrip("/"))

    async def publish(self, domain: str, material: ChallengeMaterial) -> None:
        path = self._path(material)
        await path.parent.mkdir(parents=True, exist_ok=True)
        # Exact bytes: no trailing newline
        await path.write_bytes(material.key_authorization.encode("ascii"))
        logger.info("Challenge file written", extra={"domain": domain, "path": str(path)})

    async def cleanup(self, domain: str, material: ChallengeMaterial) -> None:
        await self._path(material).unlink(missing_ok=True)
