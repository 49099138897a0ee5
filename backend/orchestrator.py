# backend/orchestrator.py
"""
Single entry point used by the HTTP layer.

handle(raw_body) runs: config check -> validation -> resolve image ->
submit prediction -> poll -> extract, stopping at the first failure.
Every failure comes back as a ClassifiedError; nothing raw escapes except
cancellation.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx
import pydantic

from config.settings import Settings

from . import extractor, resolver, submitter
from .errors import ClassifiedError, ConfigurationError, GenerationError, ValidationError, classify
from .model import GenerateRequest, GenerationRequest, PollPolicy
from .poller import Clock, JobPoller, Sleep
from .replicate_client import ReplicateClient
from .utils import gen_request_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestrationResult:
    image_url: Optional[str] = None
    error: Optional[ClassifiedError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _validation_message(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def build_generation_request(raw: Optional[Mapping[str, Any]]) -> GenerationRequest:
    """Validate a decoded JSON body into an immutable GenerationRequest."""
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValidationError("request body must be a JSON object")

    try:
        body = GenerateRequest.model_validate(dict(raw))
    except pydantic.ValidationError as e:
        raise ValidationError("invalid request", detail=_validation_message(e))

    image_source = resolver.parse_image_source(body.imageDataURL)
    return GenerationRequest.build(
        prompt=body.prompt,
        image_source=image_source,
        mode=body.mode,
        width=body.width,
        height=body.height,
        steps=body.num_inference_steps,
        extra_params=body.passthrough_params(),
    )


class RequestOrchestrator:
    def __init__(
        self,
        settings: Settings,
        http: Optional[httpx.AsyncClient] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings
        self.http = http
        self.clock = clock
        self.sleep = sleep

    @property
    def poll_policy(self) -> PollPolicy:
        return PollPolicy(
            interval=self.settings.POLL_INTERVAL,
            max_total_wait=self.settings.POLL_TIMEOUT,
        )

    async def handle(self, raw: Optional[Mapping[str, Any]]) -> OrchestrationResult:
        request_id = gen_request_id()
        started = time.monotonic()
        try:
            image_url = await self._run(raw, request_id)
        except asyncio.CancelledError:
            logger.info("[Orchestrator %s] Cancelled by caller", request_id)
            raise
        except Exception as e:
            err = classify(e, secret=self.settings.REPLICATE_API_TOKEN)
            if isinstance(e, GenerationError):
                logger.warning("[Orchestrator %s] %s: %s", request_id, err.kind, err.message)
            else:
                logger.exception("[Orchestrator %s] Unexpected error", request_id)
            return OrchestrationResult(error=err)

        logger.info(
            "[Orchestrator %s] Done in %.1fs -> %s", request_id, time.monotonic() - started, image_url
        )
        return OrchestrationResult(image_url=image_url)

    async def _run(self, raw: Optional[Mapping[str, Any]], request_id: str) -> str:
        if not self.settings.REPLICATE_API_TOKEN:
            raise ConfigurationError("Missing REPLICATE_API_TOKEN")

        request = build_generation_request(raw)
        logger.info(
            "[Orchestrator %s] mode=%s %dx%d steps=%d source=%s prompt=%s",
            request_id, request.mode, request.width, request.height, request.steps,
            type(request.image_source).__name__, request.prompt[:50],
        )

        async with ReplicateClient(self.settings, http=self.http) as client:
            image_url = await resolver.resolve(request.image_source, client)
            job = await submitter.submit(request, image_url, client)
            poller = JobPoller(client, self.poll_policy, clock=self.clock, sleep=self.sleep)
            job = await poller.poll(job)
            return extractor.extract(job)
