"""Error hierarchy for data access and view control.

Store adapters raise these; the resolver, assembler and mutation service
catch them at their boundary and convert them into typed results. The
transient/permanent split lets tenacity decide what is worth retrying.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientStoreError), stop=stop_after_attempt(3))
    def _request(...):
        ...
"""


class TimetableError(Exception):
    """Base exception for all timetable errors."""

    pass


class StoreError(TimetableError):
    """Base exception for failures of the relational store."""

    pass


class TransientStoreError(StoreError):
    """Temporary failure that may succeed on retry.

    Examples: network timeouts, connection resets, 5xx responses.
    """

    pass


class RateLimitedError(TransientStoreError):
    """Rate limit exceeded - needs longer backoff.

    Inherits from TransientStoreError so tenacity will retry it.
    """

    pass


class PermanentStoreError(StoreError):
    """Failure that won't succeed on retry.

    Examples: unknown column, constraint violation, malformed response body.
    """

    pass


class InvalidTransitionError(TimetableError):
    """A view was asked to move between states that cannot follow each other."""

    pass
