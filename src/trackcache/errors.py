"""Custom track cache exceptions."""


class TrackCacheError(Exception):
    """Base exception for audio cache errors."""

    def __init__(
        self, message: str, original_error: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.original_error = original_error


class InvalidContainer(TrackCacheError):
    """Exception raised when an artifact file cannot be decoded.

    This typically occurs when:
    - The file does not start with the DCA1 magic tag
    - The declared header length is out of range or truncated
    - The header text is not a JSON object of the expected shape
    - The header was written by an incompatible format version

    Callers treat this as a cache miss.
    """

    pass


class IoFailure(TrackCacheError):
    """Exception raised for filesystem or backing store errors.

    Raised while reading or writing artifacts, and while loading or
    persisting the cache index.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error)
        self.path = path


class BackingStoreUnavailable(TrackCacheError):
    """Exception raised when the index storage cannot be opened at startup.

    The service recovers by disabling caching for the process lifetime.
    """

    pass
