from __future__ import annotations


class AdvisorError(Exception):
    """Base class for advisor failures."""


class ToolFetchError(AdvisorError):
    """Raised inside a tool when upstream data cannot be obtained.

    Covers network failures, non-2xx responses, rate limiting that outlasts
    the retry budget, and provider payloads flagged as errors. Tools and the
    invocation bridge turn it into an ``{"error": ...}`` payload.
    """


class OrchestrationError(AdvisorError):
    """Base class for failures that abort a whole advisor run."""


class RoutingClassificationFailure(OrchestrationError):
    """The supervisor's classifier call failed or produced an unusable decision."""


class RoutingParseError(RoutingClassificationFailure):
    """Classifier output could not be decoded into a routing decision."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class SynthesisFailure(OrchestrationError):
    """The final synthesis step could not produce an answer."""


class RunCancelled(OrchestrationError):
    """A cancellation signal was observed between orchestration steps."""


class UnknownDomainError(AdvisorError):
    """No advisor profile is registered under the requested domain name."""
