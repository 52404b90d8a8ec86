"""
Error taxonomy for an agent run.

Every error raised by a provider derives from AgentError so the run-agent
step can record it once and re-raise.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for failures during a listing-generation attempt.

    Providers set transcript_lines to whatever they collected before the
    failure, so the run-agent step can store it next to the error.
    """

    transcript_lines: tuple[str, ...] | list[str] = ()


class ImageDownloadError(AgentError):
    """An input image could not be fetched or was empty."""


class ProviderConfigError(AgentError):
    """A required credential or setting is missing."""


class ProviderProtocolError(AgentError):
    """The agent misbehaved: turn limit, bad stop reason, failed process."""


class ExtractionError(AgentError):
    """No JSON object could be recovered from the agent's text."""


class OutputValidationError(AgentError):
    """The agent's JSON does not match the listing contract."""
