from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from deps import get_storage
from storage import FileStorage

router = APIRouter(prefix="/files", tags=["Files"])


@router.get("/{path:path}")
def download(path: str, token: str = Query(min_length=1), storage: FileStorage = Depends(get_storage)):
    target = storage.open_signed(path, token)
    media_type = "application/pdf" if target.suffix == ".pdf" else "application/octet-stream"
    return FileResponse(target, media_type=media_type, filename=target.name)
