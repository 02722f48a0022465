"""Exception hierarchy for the balance tracker."""


class TrackerError(Exception):
    """
    Base exception for all balance tracker errors.

    Parameters
    ----------
    message : str
        Human-readable error message

    """

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(TrackerError):
    """Malformed address, network id or argument. Raised before any fetch."""

    status_code = 400


class NotFoundError(TrackerError):
    """Unknown network or token referenced by the caller."""

    status_code = 404


class UpstreamFetchError(TrackerError):
    """RPC or price provider failure, including timeouts."""

    status_code = 502


class CacheConsistencyError(TrackerError):
    """Cache reached a state that the single-writer-per-key design rules out."""

    status_code = 500
