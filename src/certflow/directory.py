"""ACME directory and replay-nonce management."""

import httpx
from pydantic import ValidationError

from certflow._logging import Timer, get_logger
from certflow.exceptions import DirectoryUnavailable, NonceUnavailable, TransportError
from certflow.models import Directory

logger = get_logger(__name__)

NONCE_HEADER = "Replay-Nonce"


class NonceManager:
    """Holds the directory and the single replay nonce of one ACME flow.

    Exactly one nonce is held at a time. It is consumed by every signed
    request and replaced by the Replay-Nonce header of every response,
    error responses included.

    Args:
        http: HTTP client owned by the flow.
        directory_url: URL of the ACME directory endpoint.
    """

    def __init__(self, http: httpx.AsyncClient, directory_url: str):
        self._http = http
        self.directory_url = directory_url
        self._directory: Directory | None = None
        self._nonce: str | None = None

    @property
    def directory(self) -> Directory:
        """The fetched directory.

        Raises:
            DirectoryUnavailable: If initialize() has not completed.
        """
        if self._directory is None:
            raise DirectoryUnavailable(detail="Directory not fetched; call initialize() first")
        return self._directory

    @property
    def nonce(self) -> str | None:
        """The currently held nonce, if any."""
        return self._nonce

    async def initialize(self) -> Directory:
        """Fetch the ACME directory (cached after the first success).

        Returns:
            The parsed Directory.

        Raises:
            DirectoryUnavailable: On network error, non-2xx status or a
                body that is not a valid directory.
        """
        if self._directory is not None:
            return self._directory

        try:
            with Timer() as t:
                response = await self._http.get(self.directory_url)
        except httpx.HTTPError as e:
            raise DirectoryUnavailable(
                detail=f"Cannot reach ACME directory {self.directory_url}: {e}"
            ) from e

        if not response.is_success:
            raise DirectoryUnavailable(
                detail=f"ACME directory {self.directory_url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            self._directory = Directory.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise DirectoryUnavailable(
                detail=f"ACME directory {self.directory_url} is not a valid directory: {e}",
                status_code=response.status_code,
            ) from e

        logger.info(
            "Directory fetched",
            extra={"url": self.directory_url, "elapsed_ms": t.elapsed_ms},
        )
        return self._directory

    async def current_nonce(self) -> str:
        """Return the held nonce, fetching one from newNonce if none is held.

        Raises:
            NonceUnavailable: If the nonce endpoint sends no Replay-Nonce.
            TransportError: On network failure.
        """
        if self._nonce:
            return self._nonce

        url = self.directory.new_nonce
        try:
            response = await self._http.head(url)
        except httpx.HTTPError as e:
            raise TransportError(detail=f"Nonce request to {url} failed: {e}") from e

        nonce = response.headers.get(NONCE_HEADER)
        if not nonce:
            raise NonceUnavailable(
                detail=f"{url} returned no {NONCE_HEADER} header (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        logger.debug("Fetched fresh nonce", extra={"url": url})
        self._nonce = nonce
        return nonce

    async def consume(self) -> str:
        """Return a nonce for one request and stop holding it."""
        nonce = await self.current_nonce()
        self._nonce = None
        return nonce

    def update_from_response(self, response: httpx.Response) -> None:
        """Hold the Replay-Nonce of a response, if it carries one."""
        nonce = response.headers.get(NONCE_HEADER)
        if nonce:
            self._nonce = nonce
