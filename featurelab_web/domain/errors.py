from __future__ import annotations

from typing import Optional, Sequence


class FeatureLabError(Exception):
    """Base class for all domain errors."""


class TransportError(FeatureLabError):
    """Network failure, timeout or an undecodable response body."""


class HTTPError(FeatureLabError):
    """The inference service answered with a non-2xx status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(FeatureLabError):
    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Validation failed")


class StorageError(FeatureLabError):
    """Durable storage could not be read or written."""


class NotLoadedError(FeatureLabError):
    """A derived accessor was used before any record was loaded."""

    def __init__(self, what: str = "Data"):
        super().__init__(f"{what} not loaded")
