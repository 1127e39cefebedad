"""Exception hierarchy shared by the fetch, store and pipeline layers."""


class ParlwatchError(Exception):
    """Base class for every error raised by this package."""


class FetchError(ParlwatchError):
    """An HTTP fetch failed, either immediately (4xx) or after the retry budget."""

    def __init__(
        self,
        url: str,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(f"{message} [{url}]")
        self.url = url
        self.status_code = status_code
        self.retryable = retryable


class StoreError(ParlwatchError):
    """A storage round-trip failed for this batch/row."""


class StoreAuthError(StoreError):
    """Credentials were rejected by the store. Always fatal to the run."""


class SnapshotError(ParlwatchError):
    """A snapshot directory or dataset file is missing or unreadable."""


class FeedValidationError(ParlwatchError):
    """A raw feed record does not have the shape the transformers rely on."""


class StepFailedError(ParlwatchError):
    """A critical step finished but every row it handled failed."""
