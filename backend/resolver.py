# backend/resolver.py
import base64
import binascii
import logging
import re
from typing import Any

import httpx

from .errors import UploadFailed, UploadResponseInvalid, ValidationError
from .model import ImageSource, InlineBytes, RemoteURL, ResolvedImageURL
from .replicate_client import ReplicateClient

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/"
_WHITESPACE = re.compile(r"\s+")


def parse_image_source(raw: Any) -> ImageSource:
    """
    Turn the client's `imageDataURL` into an ImageSource.

    - "http://..." / "https://..."  -> RemoteURL (không gọi mạng)
    - "data:image/<type>;base64,<payload>" -> InlineBytes (decoded)
    - anything else -> ValidationError
    """
    if raw is None or raw == "":
        raise ValidationError("imageDataURL is required")
    if not isinstance(raw, str):
        raise ValidationError("invalid imageDataURL")

    lowered = raw[:8].lower()
    if lowered.startswith("http://") or lowered.startswith("https://"):
        return RemoteURL(raw)

    if raw.startswith(DATA_URL_PREFIX):
        header, sep, payload = raw.partition(",")
        if not sep or not payload:
            raise ValidationError("invalid data URL (no base64 part)")
        payload = _WHITESPACE.sub("", payload)
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError("invalid data URL (bad base64)", detail=str(e)) from e
        if not data:
            raise ValidationError("invalid data URL (empty after decode)")
        # "data:image/png;base64" -> "image/png"
        content_type = header[len("data:"):].split(";", 1)[0] or "application/octet-stream"
        return InlineBytes(data=data, content_type=content_type)

    raise ValidationError("invalid imageDataURL")


def _extract_upload_url(payload: Any) -> str:
    # Replicate /v1/files trả về {"urls": {"get": "..."}}; một số bản trả {"url": "..."}
    if not isinstance(payload, dict):
        return ""
    urls = payload.get("urls")
    if isinstance(urls, dict) and urls.get("get"):
        return str(urls["get"])
    if payload.get("url"):
        return str(payload["url"])
    return ""


async def resolve(source: ImageSource, client: ReplicateClient) -> ResolvedImageURL:
    """Return a URL the backend can fetch, uploading inline bytes first."""
    if isinstance(source, RemoteURL):
        return ResolvedImageURL(source.url)

    try:
        r = await client.upload_file(source.data, source.content_type)
    except httpx.HTTPError as e:
        raise UploadFailed(detail=f"{type(e).__name__}: {e}") from e

    if not r.is_success:
        logger.warning("[Resolver] Upload failed with status %s", r.status_code)
        raise UploadFailed(detail=r.text)

    try:
        payload = r.json()
    except ValueError:
        raise UploadResponseInvalid(detail=r.text)

    url = _extract_upload_url(payload)
    if not url:
        raise UploadResponseInvalid(detail=r.text)

    logger.info("[Resolver] Uploaded image available at %s", url)
    return ResolvedImageURL(url)
