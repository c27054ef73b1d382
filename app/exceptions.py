"""Error taxonomy for the city processing pipeline.

Two families:

1. Request/infrastructure errors that surface synchronously to HTTP callers
   (``InvalidRequest``, ``NotFound``, ``StoreUnavailable``, ``QueueUnavailable``).
2. Stage failures that are absorbed into the job record
   (``ConfigurationMissing``, ``ProviderError``) and never trigger redelivery.

``DecodeFailure`` is the one condition a stage worker lets propagate so the
queue can redeliver and eventually dead-letter the message.
"""


class PipelineError(Exception):
    """Base class. ``http_status`` and ``error`` shape the HTTP error body."""

    http_status = 500
    error = "Internal Server Error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class InvalidRequest(PipelineError):
    """Caller input failed validation. No side effects were made."""

    http_status = 400
    error = "Bad Request"


class NotFound(PipelineError):
    """No record exists for the requested job id. An expected outcome."""

    http_status = 404
    error = "Not Found"


class StageFailure(PipelineError):
    """Business failure inside a stage; recorded on the job as ``error``."""


class ConfigurationMissing(StageFailure):
    """A provider credential is not configured."""


class ProviderError(StageFailure):
    """External enrichment call failed or returned an unexpected shape."""


class StoreUnavailable(PipelineError):
    """Record store read or write failed."""


class QueueUnavailable(PipelineError):
    """Queue enqueue, receive or delete failed."""


class StaleTransition(PipelineError):
    """A conditional write found a different prior status than expected."""

    http_status = 409
    error = "Conflict"

    def __init__(self, job_id: str, expected, actual):
        super().__init__(
            f"Job {job_id}: expected status {_value(expected)}, found {_value(actual)}"
        )
        self.job_id = job_id
        self.expected = expected
        self.actual = actual


class DecodeFailure(PipelineError):
    """A queue message body is not a valid job record."""


def _value(status) -> str:
    return getattr(status, "value", str(status))
