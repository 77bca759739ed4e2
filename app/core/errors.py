# app/core/errors.py
from __future__ import annotations


class BriefingError(Exception):
    """
    Base class for failures that abort a briefing request.

    Routes turn these into a single `{success: false, error}` payload; there is
    no partial or degraded success response.
    """


class ConfigurationError(BriefingError):
    """Required credentials or recipients are missing. Raised before any network call."""


class UpstreamUnavailableError(BriefingError):
    """
    An outbound source failed.

    Fatal for the primary news search and for the generation transport.
    The listing source and the reference snapshot absorb it and degrade to empty.
    """

    def __init__(self, message: str, *, source: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class GenerationMalformedError(BriefingError):
    """The generative capability returned output that is not valid JSON for the report schema."""

    def __init__(self, message: str, raw_text: str | None = None):
        super().__init__(message)
        self.raw_text = raw_text
