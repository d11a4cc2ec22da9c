"""Shared builders and fakes for the test suite."""

from guessthat.domain.models import Bucket, Card
from guessthat.domain.ports import CardSource

DE_FAMILY = Bucket("de-CH", "family", "medium")
EN_EASY = Bucket("en", "family", "easy")


class FakeClock:
    """Settable epoch-seconds clock for trash TTL tests."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource(CardSource):
    """In-memory card service; records calls and can be told to fail."""

    def __init__(self, cards_per_call: int = 50, fail: Exception | None = None):
        self.cards_per_call = cards_per_call
        self.fail = fail
        self.calls: list[tuple[Bucket, int]] = []
        self.closed = False
        self._serial = 0

    async def draw(self, bucket, count, offset=0):
        return await self.download(bucket, count)

    async def download(self, bucket, count):
        self.calls.append((bucket, count))
        if self.fail is not None:
            raise self.fail
        out = []
        for _ in range(min(count, self.cards_per_call)):
            self._serial += 1
            out.append(make_card(f"remote-{self._serial}", f"Wort{self._serial}", bucket=bucket))
        return out

    async def aclose(self):
        self.closed = True


def make_card(card_id, target, forbidden=None, bucket=DE_FAMILY) -> Card:
    return Card(
        id=card_id,
        language=bucket.language,
        category=bucket.category,
        difficulty=bucket.difficulty,
        target=target,
        forbidden=list(forbidden) if forbidden is not None else ["eins", "zwei"],
    )


def make_cards(n, prefix="c", bucket=DE_FAMILY) -> list[Card]:
    return [make_card(f"{prefix}{i}", f"{prefix.upper()}wort{i}", bucket=bucket) for i in range(n)]
