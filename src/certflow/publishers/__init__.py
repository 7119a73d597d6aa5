"""Challenge publishers."""

from certflow.publishers.pebble import PebbleChallengeServer
from certflow.publishers.webroot import WebrootPublisher

__all__ = ["PebbleChallengeServer", "WebrootPublisher"]
