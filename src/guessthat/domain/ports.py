"""
Ports (interfaces) for the remote card service.

The replenishment policy depends on this abstraction, not on the HTTP adapter.
"""

from abc import ABC, abstractmethod

from .models import Bucket, Card


class CardSource(ABC):
    """
    Port for fetching cards from the remote card-generation service.

    Implementations:
        - HttpCardSource: Talks to the service over HTTP.

    Both operations may raise RemoteServiceError. Results are always merged
    through CardStore.insert_batch, so repeating a call is harmless.
    """

    @abstractmethod
    async def draw(self, bucket: Bucket, count: int, offset: int = 0) -> list[Card]:
        """
        Fetch already generated cards for a bucket.

        Args:
            bucket: Language/category/difficulty to draw from.
            count: Maximum number of cards to return.
            offset: Number of cards to skip on the server side.
        """
        pass

    @abstractmethod
    async def download(self, bucket: Bucket, count: int) -> list[Card]:
        """
        Ask the service to generate new cards for a bucket.

        Args:
            bucket: Language/category/difficulty to generate for.
            count: Number of cards requested.
        """
        pass

    async def aclose(self) -> None:
        """Release any network resources held by the source."""
        return None
