"""Error taxonomy for indicator computation.

ProviderError is absorbed per source inside the computor, ComputationAbort is
absorbed per topic by the batch job, and StoreError on the initial load is the
only failure that escapes a batch.
"""

from __future__ import annotations


class IndicatorError(Exception):
    """Base class for all topic indicator errors."""


class ProviderError(IndicatorError):
    """A single external source lookup failed."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class StoreError(IndicatorError):
    """Loading or persisting topics failed."""


class ComputationAbort(IndicatorError):
    """Unexpected failure while scoring one topic."""

    def __init__(self, topic_name: str, cause: BaseException):
        super().__init__(f"Computation aborted for topic '{topic_name}': {cause}")
        self.topic_name = topic_name
        self.cause = cause
