import mimetypes

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from atelier.dependencies import get_storage
from atelier.infra.storage import StorageBackend

router = APIRouter(tags=["uploads"])


@router.get("/uploads/{key:path}", name="get_upload")
async def get_upload(key: str, storage: StorageBackend = Depends(get_storage)) -> Response:
    try:
        payload = await storage.read(key=key)
    except (FileNotFoundError, IsADirectoryError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File missing") from exc
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return Response(content=payload, media_type=media_type, headers={"Cache-Control": "public, max-age=86400"})
