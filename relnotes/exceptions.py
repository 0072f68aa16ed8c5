"""relnotes exception hierarchy.

Base exceptions for all layers with correlation ID support.

Usage:
    from relnotes.exceptions import NoteStreamError, ProtocolError

    try:
        stream = await open_stream(request)
    except NoteStreamError as e:
        logger.error("Stream failed: %s (correlation_id=%s)", e, e.correlation_id)
"""

import uuid


class RelnotesError(Exception):
    """Base exception for all relnotes errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ConfigurationError(RelnotesError):
    """Errors from application configuration."""

    pass


class ValidationError(RelnotesError):
    """Errors from input validation (beyond Pydantic)."""

    pass


class ParseDegraded(RelnotesError):
    """Section grammar assumptions were violated while parsing.

    Never raised past the parser boundary; logged as a diagnostic while the
    parser falls back to a degraded section map.
    """

    def __init__(self, message: str, *, buffer_length: int = 0, **kwargs):
        self.buffer_length = buffer_length
        super().__init__(message, **kwargs)


class NoteStreamError(RelnotesError):
    """Base class for failures of a note generation stream."""

    pass


class NetworkError(NoteStreamError):
    """Transport or connection failure while talking to the stream source."""

    pass


class ProtocolError(NoteStreamError):
    """The stream source reported a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
        correlation_id: str | None = None,
    ):
        self.status_code = status_code
        self.detail = detail
        super().__init__(message, correlation_id=correlation_id)


class GenerationTimeoutError(NoteStreamError, TimeoutError):
    """The stream did not complete within the generation timeout."""

    def __init__(self, message: str, *, timeout_seconds: float | None = None, **kwargs):
        self.timeout_seconds = timeout_seconds
        super().__init__(message, **kwargs)


class StreamUnsupported(NoteStreamError):
    """The stream source cannot be iterated asynchronously. Fatal."""

    pass


class EnrichmentError(RelnotesError):
    """Errors from the contributor enrichment collaborator."""

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs):
        self.status_code = status_code
        super().__init__(message, **kwargs)
