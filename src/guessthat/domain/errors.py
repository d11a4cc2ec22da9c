"""Exception taxonomy for the card cache."""


class GuessThatError(Exception):
    """Base class for all errors raised by guessthat."""


class StorageError(GuessThatError):
    """A store read or transactional write failed; the transaction was rolled back."""


class DuplicateTarget(GuessThatError):
    """A user-authored card collides with an active card in the same bucket."""

    def __init__(self, bucket, normalized_target: str):
        self.bucket = bucket
        self.normalized_target = normalized_target
        super().__init__(
            f"A card for '{normalized_target}' already exists in {bucket}"
        )


class RemoteServiceError(GuessThatError):
    """Calling the remote card service failed or returned an unusable payload."""


class NotInitializedError(GuessThatError):
    """A store operation was invoked before ensure_open() completed or after close()."""


class InvalidCard(ValueError, GuessThatError):
    """User input for a card failed validation."""
