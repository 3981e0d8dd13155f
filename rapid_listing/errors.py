"""Error taxonomy for the listing tool.

Every failure is local to one user action. The API blueprint renders these
as JSON using ``status_code`` and ``retryable``; nothing here is fatal to
the process.
"""


class ListingToolError(Exception):
    status_code = 400
    retryable = False

    @property
    def kind(self):
        return type(self).__name__


class InvalidInput(ListingToolError, ValueError):
    """User input rejected before any network call."""


class UnsupportedInput(InvalidInput):
    """Uploaded file is not an image."""

    status_code = 415


class FileTooLarge(InvalidInput):
    status_code = 413


class AIServiceError(ListingToolError, RuntimeError):
    """The external model call failed outright."""

    status_code = 502
    retryable = True


class EmptyExtraction(AIServiceError):
    """Identifier extraction returned blank text."""

    status_code = 422


class LookupFailed(AIServiceError):
    """Supplemental-data, visual-search or VIN lookup call failed."""


class MalformedResponse(AIServiceError):
    """Listing response did not match the two-field JSON shape."""


class NoImageReturned(AIServiceError):
    """Image-generation response carried no inline image."""


class QuotaExceeded(ListingToolError):
    """A single store write would exceed the storage quota."""

    status_code = 507


class StorageExhausted(ListingToolError):
    """Every fallback tier of a store write failed."""

    status_code = 507


class FlowCancelled(ListingToolError):
    """A newer flow started, or the flow was cancelled, before it finished."""

    status_code = 409
