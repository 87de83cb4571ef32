"""Generation Providers - one request/response contract over many clip generators."""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from app.core.config import Settings
from app.core.exceptions import DeadlineExceeded, ProviderError
from app.models.schemas import GenerationRequest, ProviderCapability
from app.utils.deadline import Deadline
from app.utils.rate_limiter import get_provider_limiter
from app.utils.url_utils import extract_video_url

RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"


@dataclass
class PollResult:
    """Normalized provider task state."""

    state: str
    url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Submission:
    """What a provider returned on submit: a finished URL or a task handle."""

    url: Optional[str] = None
    handle: dict = field(default_factory=dict)


class GenerationProvider:
    """
    Base provider. Subclasses implement `_submit` and `_poll`.

    `generate` wraps both synchronous and poll-until-terminal providers: a URL
    returned on submit finishes immediately, otherwise the task is polled at a
    fixed interval until a terminal state, a usable URL, or the maximum wait.
    """

    requires_key = True

    def __init__(self, settings: Settings, logger: Any, capability: ProviderCapability):
        """
        Initialize provider.

        Args:
            settings: Application settings
            logger: Logger instance
            capability: Registry entry this adapter serves
        """
        self.settings = settings
        self.logger = logger
        self.capability = capability
        self.name = capability.name
        self.poll_interval = settings.provider_poll_interval_seconds
        self.max_wait = settings.provider_max_wait_seconds
        self.limiter = get_provider_limiter(self.name, max_calls=settings.provider_rate_limit_per_minute)

    @property
    def api_key(self) -> Optional[str]:
        return None

    def generate(self, request: GenerationRequest) -> str:
        """
        Produce a clip and return its URL.

        Raises:
            ProviderError: On any failure, including timeout or unsupported duration
        """
        if not self.capability.supports(request.duration):
            raise ProviderError(self.name, f"duration {request.duration}s not supported")
        if self.requires_key and not self.api_key:
            raise ProviderError(self.name, "API key not configured")

        deadline = Deadline(self.max_wait, operation=f"{self.name} generation")
        try:
            submission = self._submit(request, deadline)
            if submission.url:
                self.logger.debug(f"[{self.name}] returned output synchronously")
                return submission.url

            polls = 0
            while True:
                deadline.check()
                result = self._poll(submission.handle, deadline)
                polls += 1
                if result.url:
                    self.logger.debug(f"[{self.name}] output ready after {polls} polls ({result.state})")
                    return result.url
                if result.state == FAILED:
                    raise ProviderError(self.name, result.error or "task failed")
                if result.state == SUCCEEDED:
                    raise ProviderError(self.name, "task finished without an output URL")
                time.sleep(min(self.poll_interval, deadline.remaining()))
        except DeadlineExceeded:
            raise ProviderError(self.name, f"no output within {self.max_wait:.0f}s") from None
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(self.name, f"unexpected response: {type(e).__name__}: {e}") from e

    def _submit(self, request: GenerationRequest, deadline: Deadline) -> Submission:
        raise NotImplementedError("Subclass must implement _submit()")

    def _poll(self, handle: dict, deadline: Deadline) -> PollResult:
        raise NotImplementedError("Subclass must implement _poll()")

    def _http(self, method: str, url: str, deadline: Deadline, **kwargs: Any) -> Any:
        """JSON HTTP call bounded by the attempt deadline; failures become ProviderError."""
        deadline.check()
        self.limiter.wait_if_needed(self.name, max_wait=deadline.remaining())
        deadline.check()
        try:
            response = requests.request(
                method,
                url,
                timeout=deadline.cap(self.settings.http_timeout_seconds),
                **kwargs,
            )
            response.raise_for_status()
            data = response.json() if response.content else {}
        except requests.exceptions.RequestException as e:
            detail = ""
            if getattr(e, "response", None) is not None:
                detail = f" - status {e.response.status_code}: {e.response.text[:200]}"
            raise ProviderError(self.name, f"HTTP error: {e}{detail}") from e
        except ValueError as e:
            raise ProviderError(self.name, f"invalid JSON response: {e}") from e
        if not isinstance(data, dict):
            raise ProviderError(self.name, f"expected a JSON object, got {type(data).__name__}")
        return data


class FalProvider(GenerationProvider):
    """Kling models through the fal.ai queue API."""

    @property
    def api_key(self) -> Optional[str]:
        return self.settings.fal_api_key

    def _headers(self) -> dict:
        return {"Authorization": f"Key {self.api_key}", "Content-Type": "application/json"}

    def _submit(self, request: GenerationRequest, deadline: Deadline) -> Submission:
        payload: dict[str, Any] = {
            "prompt": request.prompt,
            "duration": str(request.duration),
            "aspect_ratio": request.aspect_ratio,
            "negative_prompt": "blur, distort, and low quality",
        }
        overrides = request.overrides
        if overrides.seed is not None:
            payload["seed"] = overrides.seed
        if overrides.style_reference:
            payload["image_url"] = overrides.style_reference
        if overrides.lora:
            payload["loras"] = [{"path": overrides.lora, "scale": overrides.lora_scale or 1.0}]

        data = self._http(
            "POST", f"{self.settings.fal_queue_url}/{self.capability.model}", deadline,
            json=payload, headers=self._headers(),
        )
        if not data.get("status_url"):
            return Submission(url=extract_video_url(data))
        return Submission(handle={"status_url": data["status_url"], "response_url": data.get("response_url")})

    def _poll(self, handle: dict, deadline: Deadline) -> PollResult:
        status = self._http("GET", handle["status_url"], deadline, headers=self._headers())
        state = str(status.get("status", "")).upper()
        if state == "COMPLETED":
            if not handle.get("response_url"):
                return PollResult(SUCCEEDED, url=extract_video_url(status))
            output = self._http("GET", handle["response_url"], deadline, headers=self._headers())
            return PollResult(SUCCEEDED, url=extract_video_url(output))
        if state in ("FAILED", "ERROR", "CANCELLED"):
            return PollResult(FAILED, error=str(status.get("error") or state))
        return PollResult(RUNNING)


class RunwayProvider(GenerationProvider):
    """Runway image-to-video tasks. Needs a style reference image as the first frame."""

    api_version = "2024-11-06"

    @property
    def api_key(self) -> Optional[str]:
        return self.settings.runway_api_key

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "X-Runway-Version": self.api_version,
            "Content-Type": "application/json",
        }

    def _submit(self, request: GenerationRequest, deadline: Deadline) -> Submission:
        if not request.overrides.style_reference:
            raise ProviderError(self.name, "requires a style reference image")
        payload: dict[str, Any] = {
            "model": self.capability.model or "gen4_turbo",
            "promptImage": request.overrides.style_reference,
            "promptText": request.prompt[:1000],
            "ratio": "1280:720" if request.aspect_ratio == "16:9" else "720:1280",
            "duration": request.duration,
        }
        if isinstance(request.overrides.seed, int):
            payload["seed"] = request.overrides.seed
        data = self._http(
            "POST", f"{self.settings.runway_api_url}/v1/image_to_video", deadline,
            json=payload, headers=self._headers(),
        )
        task_id = data.get("id")
        if not task_id:
            raise ProviderError(self.name, "no task id in response")
        return Submission(handle={"id": task_id})

    def _poll(self, handle: dict, deadline: Deadline) -> PollResult:
        task = self._http(
            "GET", f"{self.settings.runway_api_url}/v1/tasks/{handle['id']}", deadline, headers=self._headers()
        )
        state = str(task.get("status", "")).upper()
        url = extract_video_url(task.get("output"))
        if state in ("FAILED", "CANCELLED"):
            return PollResult(FAILED, error=str(task.get("failure") or state))
        if state == "SUCCEEDED":
            return PollResult(SUCCEEDED, url=url)
        return PollResult(RUNNING, url=url)


class ReplicateProvider(GenerationProvider):
    """Replicate predictions. Streaming models may expose output before succeeding."""

    @property
    def api_key(self) -> Optional[str]:
        return self.settings.replicate_api_token

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _submit(self, request: GenerationRequest, deadline: Deadline) -> Submission:
        model_input: dict[str, Any] = {"prompt": request.prompt, "duration": request.duration}
        overrides = request.overrides
        if overrides.seed is not None:
            model_input["seed"] = overrides.seed
        if overrides.style_reference:
            model_input["first_frame_image"] = overrides.style_reference
        if overrides.lora:
            model_input["lora_url"] = overrides.lora
            if overrides.lora_scale is not None:
                model_input["lora_scale"] = overrides.lora_scale

        data = self._http(
            "POST", f"{self.settings.replicate_api_url}/v1/models/{self.capability.model}/predictions", deadline,
            json={"input": model_input}, headers=self._headers(),
        )
        url = extract_video_url(data.get("output"))
        if url:
            return Submission(url=url)
        get_url = (data.get("urls") or {}).get("get")
        if not get_url:
            raise ProviderError(self.name, "no prediction URL in response")
        return Submission(handle={"get": get_url})

    def _poll(self, handle: dict, deadline: Deadline) -> PollResult:
        prediction = self._http("GET", handle["get"], deadline, headers=self._headers())
        state = prediction.get("status")
        url = extract_video_url(prediction.get("output"))
        if state in ("failed", "canceled"):
            return PollResult(FAILED, error=str(prediction.get("error") or state))
        if state == "succeeded":
            return PollResult(SUCCEEDED, url=url)
        return PollResult(RUNNING, url=url)


PROVIDER_KINDS: dict[str, type[GenerationProvider]] = {
    "fal": FalProvider,
    "runway": RunwayProvider,
    "replicate": ReplicateProvider,
}


def build_provider(capability: ProviderCapability, settings: Settings, logger: Any) -> GenerationProvider:
    """Instantiate the adapter for a registry entry."""
    provider_class = PROVIDER_KINDS.get(capability.kind)
    if provider_class is None:
        raise ValueError(f"Unknown provider kind '{capability.kind}' for {capability.name}")
    return provider_class(settings, logger, capability)
