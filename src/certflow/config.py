"""Client configuration: CA directories and tunable protocol constants."""

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

CA_DIRECTORIES: dict[str, str] = {
    "letsencrypt": "https://acme-v02.api.letsencrypt.org/directory",
    "letsencrypt-staging": "https://acme-staging-v02.api.letsencrypt.org/directory",
    "zerossl": "https://acme.zerossl.com/v2/DV90/directory",
}

DEFAULT_PROVIDER = "letsencrypt"

ENV_PREFIX = "CERTFLOW_"


def resolve_directory_url(provider: str) -> str:
    """Map a CA provider name to its ACME directory URL.

    Args:
        provider: A key of CA_DIRECTORIES, or a directory URL
                  (for private CAs and Pebble).

    Returns:
        The directory URL.

    Raises:
        ValueError: If the provider is unknown.
    """
    if provider.startswith(("https://", "http://")):
        return provider
    try:
        return CA_DIRECTORIES[provider]
    except KeyError:
        raise ValueError(
            f"Unknown CA provider: {provider}. Known: {sorted(CA_DIRECTORIES)}"
        ) from None


class ClientSettings(BaseModel):
    """Tunable settings for one ACME client.

    Polling is fixed-cadence: the worst-case wait of a poll loop is
    ``poll_max_attempts * poll_interval`` seconds (90s with the defaults).
    """

    poll_max_attempts: int = Field(default=30, ge=1)
    poll_interval: float = Field(default=3.0, ge=0)
    account_key_size: int = Field(default=2048, ge=2048)
    domain_key_size: int = Field(default=4096, ge=2048)
    http_timeout: float = Field(default=30.0, gt=0)

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ClientSettings":
        """Build settings from CERTFLOW_* environment variables.

        Unset variables keep their defaults, e.g. ``CERTFLOW_POLL_INTERVAL=5``.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)
