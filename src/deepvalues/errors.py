"""
Exception taxonomy for deep values resolution.

Only remote failures and malformed relation metadata raise. Missing dotted
paths and unexpected relation field shapes are handled as results/fallbacks.
"""

from typing import Any, Optional


class DeepValuesError(Exception):
    """Base class for all deepvalues errors."""


class FetchFailure(DeepValuesError):
    """A remote read failed.

    The engine never catches this: the recomputation aborts and the previously
    published resolved record stays visible.
    """

    def __init__(self, collection: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"Fetch from '{collection}' failed: {message}")
        self.collection = collection
        self.cause = cause


class RelationConfigError(DeepValuesError, ValueError):
    """Relation metadata payload is missing required keys."""

    def __init__(self, payload: Any, missing: str):
        super().__init__(f"Relation payload is missing '{missing}': {payload!r}")
        self.payload = payload
        self.missing = missing
