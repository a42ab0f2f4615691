import logging
import re
import uuid
from pathlib import Path

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.domain.errors import ValidationError
from atelier.domain.requests import service as requests_service
from atelier.domain.requests.db_models import CommissionRequest
from atelier.infra.storage import StorageBackend
from atelier.settings import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _safe_suffix(original: str | None) -> str:
    if not original:
        return ""
    suffix = Path(original).suffix
    return suffix.lower() if re.match(r"^\.[A-Za-z0-9]{1,8}$", suffix) else ""


def _validate_content_type(content_type: str | None) -> str:
    if not content_type:
        raise ValidationError(detail="Missing content type")
    if content_type.lower() not in set(settings.image_allowed_mimes):
        raise ValidationError(detail="Unsupported image type")
    return content_type.lower()


async def store_request_image(
    session: AsyncSession,
    request_id: str,
    *,
    customer_id: str,
    upload: UploadFile,
    storage: StorageBackend,
) -> CommissionRequest:
    """Stream an uploaded image into blob storage and append its URL to the request."""
    request = await requests_service.get_request(session, request_id)
    requests_service.ensure_owner(request, customer_id)
    content_type = _validate_content_type(upload.content_type)
    key = f"requests/{request.request_id}/{uuid.uuid4()}{_safe_suffix(upload.filename)}"
    size = 0

    async def _stream():
        nonlocal size
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > settings.image_max_bytes:
                raise ValidationError(detail="Image too large")
            yield chunk

    stored = await storage.put(key=key, body=_stream(), content_type=content_type)
    if stored.size == 0:
        await storage.delete(key=key)
        raise ValidationError(detail="Image is empty")

    request = await requests_service.attach_image(
        session, request_id, customer_id=customer_id, url=storage.url_for(key)
    )
    logger.info(
        "request_image_stored",
        extra={"extra": {"request_id": request_id, "key": key, "size_bytes": stored.size}},
    )
    return request
