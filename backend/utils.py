import logging
import uuid


def gen_request_id() -> str:
    # Ngắn gọn, chỉ dùng để ghép log của cùng 1 request
    return uuid.uuid4().hex[:8]


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
