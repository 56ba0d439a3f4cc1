"""
Custom exceptions for the task index sync subsystem.

Provides structured error handling for the write path, the search index and
the dead-letter store.
"""


class TaskSyncError(Exception):
    """Base operational error for task index sync."""

    pass


class RetryableError(TaskSyncError):
    """Temporary errors that should be retried with backoff."""

    pass


class ConstraintViolation(TaskSyncError):
    """Database constraint violations (unique, check, etc.)."""

    pass


class TimeoutExceeded(TaskSyncError):
    """Query or connection timeout errors."""

    pass


class TaskNotFound(TaskSyncError):
    """No task row matched the requested id."""

    pass


class IndexWriteError(TaskSyncError):
    """The search engine rejected or failed an upsert."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PayloadDecodeError(TaskSyncError):
    """A dead-letter payload could not be turned back into a Mutation."""

    pass


class ChannelClosedError(TaskSyncError):
    """The mutation channel is closed (and drained, for consumers)."""

    pass


class QueueFullError(TaskSyncError):
    """Raised by put() when the channel is full and overflow is 'error'."""

    pass


def map_db_error(e: Exception) -> TaskSyncError:
    import psycopg
    import psycopg.errors as E

    if isinstance(e, (E.SerializationFailure, E.DeadlockDetected, psycopg.OperationalError)):
        return RetryableError(str(e))
    if isinstance(e, (E.UniqueViolation, E.CheckViolation, E.ForeignKeyViolation)):
        return ConstraintViolation(str(e))
    if isinstance(e, E.QueryCanceled):
        return TimeoutExceeded(str(e))
    return TaskSyncError(str(e))
