# backend/extractor.py
from typing import Any, Optional

from .errors import GenerationFailed, NoOutputProduced
from .model import GenerationJob, JobStatus


def first_output(output: Any) -> Optional[Any]:
    """
    Backend output có thể là list hoặc 1 giá trị đơn.
    Luôn lấy phần tử đầu tiên.
    """
    if isinstance(output, (list, tuple)):
        return output[0] if output else None
    return output


def extract(job: GenerationJob) -> str:
    """Map a terminal job to its output image URL."""
    if job.status is not JobStatus.SUCCEEDED:
        raise GenerationFailed(detail=job.error_detail or f"prediction {job.id} ended as {job.status.value}")

    image_url = first_output(job.output)
    if not image_url:
        raise NoOutputProduced(detail=f"prediction {job.id} succeeded without output")
    return str(image_url)
