"""Base class for challenge publishers."""

from abc import ABC, abstractmethod

from certflow.models import ChallengeMaterial


class ChallengePublisher(ABC):
    """Abstract interface for making challenge material visible to the CA.

    A publisher is the external side of a challenge: a web server that
    serves the HTTP-01 key authorization, or a DNS zone that carries the
    DNS-01 TXT record.
    """

    @abstractmethod
    async def publish(self, domain: str, material: ChallengeMaterial) -> None:
        """Publish challenge material before the challenge is triggered.

        Args:
            domain: The domain being validated.
            material: HTTP-01 or DNS-01 material for the current order.
        """
        ...

    @abstractmethod
    async def cleanup(self, domain: str, material: ChallengeMaterial) -> None:
        """Remove whatever publish() created.

        Args:
            domain: The domain being validated.
            material: The material passed to publish().
        """
        ...
