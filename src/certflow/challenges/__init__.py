"""ACME challenge material and publisher interface."""

from certflow.challenges.base import ChallengePublisher
from certflow.challenges.dns01 import compute_dns_txt_value, dns01_material
from certflow.challenges.http01 import compute_key_authorization, http01_material

__all__ = [
    "ChallengePublisher",
    "compute_dns_txt_value",
    "compute_key_authorization",
    "dns01_material",
    "http01_material",
]
