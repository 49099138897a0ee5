# backend/submitter.py
import logging
from typing import Any, Dict

import httpx

from config.settings import Settings

from .errors import SubmissionFailed
from .model import GenerationJob, GenerationRequest, ResolvedImageURL
from .replicate_client import ReplicateClient

logger = logging.getLogger(__name__)


def build_job_input(
    request: GenerationRequest,
    image_url: ResolvedImageURL,
    settings: Settings,
) -> Dict[str, Any]:
    """
    Tạo "input" cho prediction.

    Thứ tự ưu tiên: EXTRA_INPUT (config) < tham số của request.
    Key names can be remapped per backend via INPUT_FIELD_MAP, e.g.
    {"image": "input_image", "num_inference_steps": "steps"}.
    """
    fields: Dict[str, Any] = {
        "prompt": request.prompt,
        "image": image_url,
        "width": request.width,
        "height": request.height,
        "num_inference_steps": request.steps,
    }
    fields.update(request.extra_params)

    job_input: Dict[str, Any] = dict(settings.EXTRA_INPUT)
    field_map = settings.INPUT_FIELD_MAP
    for key, value in fields.items():
        job_input[field_map.get(key, key)] = value

    return {k: v for k, v in job_input.items() if v is not None}


async def submit(
    request: GenerationRequest,
    image_url: ResolvedImageURL,
    client: ReplicateClient,
) -> GenerationJob:
    """Start one prediction; the returned job carries the backend-reported status."""
    payload: Dict[str, Any] = {"input": build_job_input(request, image_url, client.settings)}
    if client.settings.REPLICATE_MODEL_VERSION:
        payload["version"] = client.settings.REPLICATE_MODEL_VERSION

    try:
        r = await client.create_prediction(payload)
    except httpx.HTTPError as e:
        raise SubmissionFailed(detail=f"{type(e).__name__}: {e}") from e

    if not r.is_success:
        logger.warning("[Submitter] Backend returned %s: %s", r.status_code, r.text[:500])
        raise SubmissionFailed(detail=r.text)

    try:
        data = r.json()
    except ValueError:
        raise SubmissionFailed("replicate start returned invalid JSON", detail=r.text)

    if not isinstance(data, dict) or not data.get("id"):
        raise SubmissionFailed("replicate start returned no prediction id", detail=r.text)

    job = GenerationJob.from_payload(data)
    logger.info("[Submitter] Got prediction id=%s status=%s", job.id, job.status.value)
    return job
