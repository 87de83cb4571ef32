"""Exception taxonomy for the render pipeline."""

from typing import Optional


class RenderError(Exception):
    """Base class for every pipeline error."""


class ValidationError(RenderError):
    """Timeline is malformed or incomplete. Fatal, never retried."""


class PlanError(RenderError):
    """The plan provider could not produce a timeline."""


class UnsupportedDurationError(RenderError):
    """No provider can cover the remaining duration."""

    def __init__(self, remaining: int, message: Optional[str] = None):
        self.remaining = remaining
        super().__init__(message or f"No provider supports a duration <= {remaining}s")


class SegmentationInvalidError(RenderError):
    """Remainder correction left the last segment with a non-positive duration."""


class DeadlineExceeded(RenderError):
    """A deadline-bound call ran past its budget."""

    def __init__(self, operation: str, seconds: float):
        self.operation = operation
        self.seconds = seconds
        super().__init__(f"{operation} exceeded its deadline of {seconds:.1f}s")


class ProviderError(RenderError):
    """A single provider attempt failed. Recoverable through the fallback chain."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ExhaustedProvidersError(RenderError):
    """Every provider in a segment's chain failed."""

    def __init__(self, segment_index: int, attempts: list[str]):
        self.segment_index = segment_index
        self.attempts = attempts
        super().__init__(
            f"Segment {segment_index}: all providers failed ({', '.join(attempts) or 'empty chain'})"
        )


class DownloadIntegrityError(RenderError):
    """Downloaded artifact is missing or too small after every attempt."""


class NoClipsError(RenderError):
    """Zero segments produced a usable clip."""


class AssemblyStageError(RenderError):
    """An assembly stage failed or timed out after its retry budget."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"Assembly stage '{stage}' failed: {message}")


class PublishVerificationWarning(UserWarning):
    """Published asset did not answer the reachability check. Logged only."""
