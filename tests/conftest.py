"""Pytest fixtures for the certflow test suite."""

import base64
import json
import logging
import logging.handlers
import os
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import httpx
import pytest
import respx
from cryptography.hazmat.primitives.asymmetric import rsa

from certflow.client import AcmeClient
from certflow.config import ClientSettings
from certflow.crypto import generate_rsa_key, load_private_key_pem
from certflow.publishers import PebbleChallengeServer

DATA_DIR = Path(__file__).parent / "data"

# Default URLs for local pebble setup
PEBBLE_DIRECTORY_URL = os.environ.get("PEBBLE_DIRECTORY_URL", "https://localhost:14000/dir")
CHALLTESTSRV_URL = os.environ.get("CHALLTESTSRV_URL", "http://localhost:8055")

# Fake CA used by the unit tests
CA_URL = "https://ca.test"
DIRECTORY_URL = f"{CA_URL}/directory"
DIRECTORY = {
    "newNonce": f"{CA_URL}/new-nonce",
    "newAccount": f"{CA_URL}/new-acct",
    "newOrder": f"{CA_URL}/new-order",
    "revokeCert": f"{CA_URL}/revoke-cert",
    "keyChange": f"{CA_URL}/key-change",
}


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


@pytest.fixture(scope="session")
def account_key() -> rsa.RSAPrivateKey:
    """Fixed 2048-bit RSA account key (tests/data/account_key.pem)."""
    return load_private_key_pem((DATA_DIR / "account_key.pem").read_text())


@pytest.fixture
def fast_settings() -> ClientSettings:
    """Settings with no polling delay and small domain keys."""
    return ClientSettings(poll_interval=0, poll_max_attempts=5, domain_key_size=2048)


class MockCA:
    """respx routes for a fake ACME server.

    Every response built through :meth:`response` carries a fresh
    Replay-Nonce (nonce-1, nonce-2, ...).
    """

    def __init__(self, router: respx.MockRouter) -> None:
        self.router = router
        self._nonce_count = 0
        self.directory_route = router.get(DIRECTORY_URL).mock(
            return_value=httpx.Response(200, json=DIRECTORY)
        )
        self.nonce_route = router.head(DIRECTORY["newNonce"]).mock(
            side_effect=lambda request: self.response(200)
        )

    def next_nonce(self) -> str:
        self._nonce_count += 1
        return f"nonce-{self._nonce_count}"

    def response(
        self,
        status_code: int = 200,
        json: Any = None,
        text: str | None = None,
        headers: dict[str, str] | None = None,
        nonce: bool = True,
    ) -> httpx.Response:
        headers = dict(headers or {})
        if nonce:
            headers["Replay-Nonce"] = self.next_nonce()
        if json is not None:
            return httpx.Response(status_code, json=json, headers=headers)
        return httpx.Response(status_code, text=text or "", headers=headers)

    def problem(self, status_code: int, type: str, detail: str) -> httpx.Response:
        return self.response(
            status_code,
            json={"type": type, "detail": detail, "status": status_code},
            headers={"Content-Type": "application/problem+json"},
        )

    @staticmethod
    def signed_body(request: httpx.Request) -> tuple[dict[str, Any], Any]:
        """Decode the protected header and payload of a JWS request."""
        body = json.loads(request.content)

        def b64decode(value: str) -> bytes:
            return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))

        protected = json.loads(b64decode(body["protected"]))
        payload = json.loads(b64decode(body["payload"])) if body["payload"] else ""
        return protected, payload


@pytest.fixture
def mock_ca() -> Generator[MockCA]:
    """A fake ACME server serving the directory and nonces."""
    with respx.mock(assert_all_called=False) as router:
        yield MockCA(router)


@pytest.fixture
async def client(
    mock_ca: MockCA, account_key: rsa.RSAPrivateKey, fast_settings: ClientSettings
) -> AsyncGenerator[AcmeClient]:
    """AcmeClient pointed at the fake CA."""
    client = AcmeClient(DIRECTORY_URL, account_key=account_key, settings=fast_settings)
    yield client
    await client.aclose()


@pytest.fixture(scope="session")
def pebble_directory_url() -> str:
    """Return the Pebble ACME directory URL."""
    return PEBBLE_DIRECTORY_URL


@pytest.fixture(scope="session")
def challtestsrv_url() -> str:
    """Return the pebble-challtestsrv management API URL."""
    return CHALLTESTSRV_URL


@pytest.fixture(scope="session")
def pebble_ca_cert() -> str | bool:
    """Get SSL verification setting for Pebble.

    Pebble uses a self-signed certificate that's not meant for production,
    so verification is disabled unless PEBBLE_CA_CERT points at its CA.
    """
    ca_cert_path = os.environ.get("PEBBLE_CA_CERT")
    if ca_cert_path and Path(ca_cert_path).exists():
        return ca_cert_path
    return False


@pytest.fixture(scope="session")
def pebble_available(pebble_directory_url: str, challtestsrv_url: str) -> None:
    """Skip the test when Pebble or challtestsrv is not running."""
    try:
        httpx.get(pebble_directory_url, verify=False, timeout=5)
        httpx.post(f"{challtestsrv_url}/clear-txt", json={"host": "probe.example.com."}, timeout=5)
    except httpx.ConnectError:
        pytest.skip("Pebble not available")


@pytest.fixture
def pebble_settings() -> ClientSettings:
    """Settings tuned for Pebble's quick validations."""
    return ClientSettings(poll_interval=1, poll_max_attempts=30, domain_key_size=2048)


@pytest.fixture
def challtestsrv(challtestsrv_url: str) -> PebbleChallengeServer:
    return PebbleChallengeServer(challtestsrv_url)


@pytest.fixture
async def pebble_client(
    pebble_available: None,
    pebble_directory_url: str,
    pebble_ca_cert: str | bool,
    pebble_settings: ClientSettings,
) -> AsyncGenerator[AcmeClient]:
    """Initialized AcmeClient with a fresh account key for Pebble."""
    async with AcmeClient(
        pebble_directory_url,
        account_key=generate_rsa_key(2048),
        settings=pebble_settings,
        ca_cert=pebble_ca_cert,
    ) as client:
        yield client


class LogCapture:
    """Helper class to capture and inspect log records."""

    def __init__(self, handler: logging.handlers.MemoryHandler) -> None:
        self._handler = handler

    @property
    def records(self) -> list[logging.LogRecord]:
        """Get all captured log records."""
        return self._handler.buffer

    def get_records(
        self, level: int | None = None, name: str | None = None
    ) -> list[logging.LogRecord]:
        """Get log records filtered by level and/or logger name prefix."""
        records = self.records
        if level is not None:
            records = [r for r in records if r.levelno == level]
        if name is not None:
            records = [r for r in records if r.name.startswith(name)]
        return records

    def get_messages(self, level: int | None = None, name: str | None = None) -> list[str]:
        """Get log messages filtered by level and/or logger name prefix."""
        return [r.getMessage() for r in self.get_records(level, name)]

    def clear(self) -> None:
        """Clear all captured log records."""
        self._handler.buffer.clear()


@pytest.fixture
def log_capture() -> Generator[LogCapture]:
    """Capture logs from the certflow library during a test.

    Usage:
        def test_something(log_capture):
            # do something that logs
            assert "Certificate issued" in log_capture.get_messages(logging.INFO)
    """
    handler = logging.handlers.MemoryHandler(capacity=1000)
    handler.setLevel(logging.DEBUG)

    certflow_logger = logging.getLogger("certflow")
    original_level = certflow_logger.level
    certflow_logger.setLevel(logging.DEBUG)
    certflow_logger.addHandler(handler)

    try:
        yield LogCapture(handler)
    finally:
        certflow_logger.removeHandler(handler)
        certflow_logger.setLevel(original_level)
        handler.close()
