"""Error Handler - user-facing messages for failed jobs."""

from typing import Optional

from app.core.exceptions import (
    AssemblyStageError,
    NoClipsError,
    PlanError,
    UnsupportedDurationError,
    ValidationError,
)


def format_error_message(
    operation: str,
    error: Exception,
    context: Optional[dict] = None,
    suggestion: Optional[str] = None,
) -> str:
    """
    Format a user-friendly error message.

    Args:
        operation: What operation was being performed (e.g., "Rendering job")
        error: The exception that occurred
        context: Additional context (e.g., {"job_id": "job_123", "stage": "mux"})
        suggestion: Optional suggestion for how to fix the issue

    Returns:
        Formatted error message
    """
    error_type = type(error).__name__
    context_str = ""
    if context:
        context_str = f" ({', '.join(f'{k}={v}' for k, v in context.items())})"

    message = f"{operation} failed{context_str}: {error_type}: {error}"
    if suggestion:
        message += f" Suggestion: {suggestion}"
    return message


def get_fallback_suggestion(error: Exception) -> Optional[str]:
    """
    Suggest a next step for a fatal job error.

    Args:
        error: The exception that ended the job

    Returns:
        Suggestion string or None
    """
    if isinstance(error, ValidationError):
        return "The plan provider returned an incomplete timeline. Resubmit the request."
    if isinstance(error, PlanError):
        return "No plan model answered with a usable timeline. Check OPENAI_API_KEY and PLAN_MODELS."
    if isinstance(error, UnsupportedDurationError):
        return "Enable a provider whose durations can cover the requested length."
    if isinstance(error, NoClipsError):
        return "Every generation provider failed. Check provider credentials and quotas."
    if isinstance(error, AssemblyStageError):
        if "deadline" in str(error).lower():
            return f"Stage '{error.stage}' timed out. Raise ASSEMBLY_STAGE_TIMEOUT_SECONDS."
        return f"Stage '{error.stage}' failed. Check that ffmpeg is installed and the clips are valid."

    error_msg = str(error).lower()
    if "api key" in error_msg or "not configured" in error_msg:
        return "Check your API keys in the .env file."
    if "rate limit" in error_msg or "429" in error_msg:
        return "Rate limit exceeded. Wait a few minutes and try again."
    return None
