"""
Error taxonomy for the ranking engine.

Ingestion errors surface synchronously to callers. Batch errors are caught
per item by the worker and never abort a batch.
"""


class RankingError(Exception):
    """Base class for all engine errors."""


class ValidationError(RankingError, ValueError):
    """Malformed event or request. Rejected before anything is written."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class TransientStoreError(RankingError):
    """Claim, update or publish failed due to contention or timeout.

    The item stays dirty and is retried with backoff.
    """


class ComputationError(RankingError):
    """Unexpected numeric state, e.g. NaN from a corrupted rating.

    The item's published score is frozen until it is manually unfrozen.
    """

    def __init__(self, message: str, item_id: str | None = None):
        super().__init__(message)
        self.item_id = item_id


class SelectionStarvedError(RankingError):
    """Pool too small to select from."""


class ClaimLostError(RankingError):
    """The worker no longer holds the dirty claim it is committing.

    Another worker reclaimed the item after the claim timed out, or the
    item's checkpoint moved underneath the replay. Nothing is written.
    """

    def __init__(self, message: str, item_id: str | None = None):
        super().__init__(message)
        self.item_id = item_id
