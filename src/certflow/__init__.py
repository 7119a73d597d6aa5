"""certflow - async ACME v2 client for domain-validated certificates."""

from certflow.client import AcmeClient
from certflow.config import ClientSettings

__all__ = ["AcmeClient", "ClientSettings"]
__version__ = "0.1.0"
