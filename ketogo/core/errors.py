"""Exception types shared across the pipeline."""


class KetogoError(Exception):
    """Base error for the curation pipeline."""


class ConfigurationError(KetogoError):
    """An optional integration is not configured; the run is skipped."""


class StoreWriteError(KetogoError):
    """Persisting a collection failed. Fatal for the run."""


class PAAPIError(KetogoError):
    """Product Advertising API request failed or returned an error payload."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class FeedFetchError(KetogoError):
    """A single feed could not be fetched or parsed."""
