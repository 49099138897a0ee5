# backend/model.py
import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Literal, Mapping, NewType, Optional, Union

from pydantic import BaseModel, Field

Mode = Literal["preview", "final"]

# mode -> (width, height, num_inference_steps)
MODE_DEFAULTS: Dict[str, tuple] = {
    "preview": (1024, 1024, 18),
    "final": (2000, 2000, 30),
}


# ==========================
# HTTP schemas
# ==========================

class GenerateRequest(BaseModel):
    prompt: str = ""
    # str (http URL hoặc data URL); kiểm tra chi tiết ở resolver
    imageDataURL: Any = None
    mode: Mode = "preview"
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    num_inference_steps: Optional[int] = Field(None, gt=0)

    # Tham số tuỳ chọn, chuyển thẳng sang backend
    negative_prompt: Optional[str] = None
    strength: Optional[float] = Field(None, ge=0.0, le=1.0)
    guidance_scale: Optional[float] = None
    seed: Optional[int] = None
    scheduler: Optional[str] = None

    model_config = {"extra": "ignore"}

    def passthrough_params(self) -> Dict[str, Any]:
        params = {
            "negative_prompt": self.negative_prompt,
            "strength": self.strength,
            "guidance_scale": self.guidance_scale,
            "seed": self.seed,
            "scheduler": self.scheduler,
        }
        return {k: v for k, v in params.items() if v is not None}


class GenerateResponse(BaseModel):
    imageUrl: str


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None


# ==========================
# Domain types
# ==========================

@dataclass(frozen=True)
class RemoteURL:
    url: str


@dataclass(frozen=True)
class InlineBytes:
    data: bytes
    content_type: str = "application/octet-stream"

    def __repr__(self) -> str:
        return f"InlineBytes(<{len(self.data)} bytes>, content_type={self.content_type!r})"


ImageSource = Union[RemoteURL, InlineBytes]

# URL mà backend tải được; chỉ resolver tạo ra
ResolvedImageURL = NewType("ResolvedImageURL", str)


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    image_source: ImageSource
    mode: Mode = "preview"
    width: int = 1024
    height: int = 1024
    steps: int = 18
    extra_params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        prompt: str,
        image_source: ImageSource,
        mode: Mode = "preview",
        width: Optional[int] = None,
        height: Optional[int] = None,
        steps: Optional[int] = None,
        extra_params: Optional[Dict[str, Any]] = None,
    ) -> "GenerationRequest":
        """Fill omitted width/height/steps from the mode defaults."""
        default_w, default_h, default_steps = MODE_DEFAULTS[mode]
        return cls(
            prompt=prompt,
            image_source=image_source,
            mode=mode,
            width=width if width is not None else default_w,
            height=height if height is not None else default_h,
            steps=steps if steps is not None else default_steps,
            extra_params=MappingProxyType(dict(extra_params or {})),
        )


class JobStatus(str, enum.Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> "JobStatus":
        if isinstance(raw, str):
            try:
                return cls(raw.strip().lower())
            except ValueError:
                pass
        return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED)


@dataclass(frozen=True)
class GenerationJob:
    id: str
    status: JobStatus
    output: Any = None
    error_detail: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], fallback_id: str = "") -> "GenerationJob":
        """
        Build a snapshot from a backend prediction payload.
        Replicate trả về: {"id", "status", "output", "error", "logs", ...}
        """
        error_detail = payload.get("error") or payload.get("logs")
        return cls(
            id=str(payload.get("id") or fallback_id),
            status=JobStatus.parse(payload.get("status")),
            output=payload.get("output"),
            error_detail=str(error_detail) if error_detail else None,
            raw=payload,
        )


@dataclass(frozen=True)
class PollPolicy:
    interval: float = 1.5
    max_total_wait: float = 120.0

    def __post_init__(self):
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.max_total_wait < 0:
            raise ValueError("max_total_wait must not be negative")
