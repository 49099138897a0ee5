import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load biến môi trường trong .env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_json(name: str) -> Dict[str, Any]:
    raw = os.getenv(name)
    if not raw or not raw.strip():
        return {}
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be a JSON object, got: {raw[:100]}")
    return value


def _env_list(name: str) -> List[str]:
    return [s.strip() for s in (os.getenv(name) or "").split(",") if s.strip()]


class Settings:
    """
    Process-wide read-only configuration. Built once at startup from the
    environment; keyword arguments override individual fields (tests use this).
    """

    REPLICATE_API_TOKEN: Optional[str]
    ALLOWED_ORIGINS: List[str]

    REPLICATE_API_BASE: str
    REPLICATE_MODEL: str
    REPLICATE_MODEL_VERSION: Optional[str]
    AUTH_SCHEME: str

    POLL_INTERVAL: float  # giây
    POLL_TIMEOUT: float
    REQUEST_TIMEOUT: float

    # Tham số cố định gửi kèm mọi job (vd: {"guidance_scale": 7.0})
    EXTRA_INPUT: Dict[str, Any]
    # Đổi tên field khi backend dùng key khác (vd: {"image": "input_image"})
    INPUT_FIELD_MAP: Dict[str, str]

    LOG_LEVEL: str

    def __init__(self, **overrides: Any):
        values: Dict[str, Any] = {
            "REPLICATE_API_TOKEN": os.getenv("REPLICATE_API_TOKEN") or None,
            "ALLOWED_ORIGINS": _env_list("ALLOWED_ORIGINS"),
            "REPLICATE_API_BASE": os.getenv("REPLICATE_API_BASE", "https://api.replicate.com/v1"),
            "REPLICATE_MODEL": os.getenv("REPLICATE_MODEL", "black-forest-labs/flux-kontext-pro"),
            "REPLICATE_MODEL_VERSION": os.getenv("REPLICATE_MODEL_VERSION") or None,
            "AUTH_SCHEME": os.getenv("REPLICATE_AUTH_SCHEME", "Token"),
            "POLL_INTERVAL": _env_float("POLL_INTERVAL", 1.5),
            "POLL_TIMEOUT": _env_float("POLL_TIMEOUT", 120.0),
            "REQUEST_TIMEOUT": _env_float("REQUEST_TIMEOUT", 60.0),
            "EXTRA_INPUT": _env_json("EXTRA_INPUT"),
            "INPUT_FIELD_MAP": _env_json("INPUT_FIELD_MAP"),
            "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        }
        unknown = set(overrides) - set(values)
        if unknown:
            raise TypeError(f"Unknown settings: {sorted(unknown)}")
        values.update(overrides)
        for key, value in values.items():
            object.__setattr__(self, key, value)

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError("Settings is read-only")

    @property
    def api_base(self) -> str:
        return self.REPLICATE_API_BASE.rstrip("/")

    @property
    def upload_url(self) -> str:
        return f"{self.api_base}/files"

    @property
    def predictions_url(self) -> str:
        # Có version -> endpoint chung; không có -> endpoint theo model
        if self.REPLICATE_MODEL_VERSION:
            return f"{self.api_base}/predictions"
        return f"{self.api_base}/models/{self.REPLICATE_MODEL}/predictions"

    @property
    def status_url(self) -> str:
        return f"{self.api_base}/predictions"

    @property
    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"{self.AUTH_SCHEME} {self.REPLICATE_API_TOKEN}"}


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return settings
