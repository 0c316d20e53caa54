"""GET /storage/{token}: serve objects from the local storage backend.

Tokens are issued by ``LocalObjectStore.presign_get`` and expire after
``STORAGE_PRESIGN_TTL_SECONDS``.  With the S3 backend, links point at the
bucket directly and this route answers 404.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from app.api.deps import get_object_store
from app.storage.object_store import LocalObjectStore, ObjectNotFoundError, ObjectStore

router = APIRouter(prefix="/storage", tags=["storage"])

_MEDIA_TYPES = {
    ".pdf": "application/pdf",
    ".zip": "application/zip",
}


@router.get("/{token}", summary="Download a stored object by signed token")
def download(token: str, store: ObjectStore = Depends(get_object_store)):
    if not isinstance(store, LocalObjectStore):
        raise HTTPException(status_code=404, detail="Not found")
    try:
        path = store.resolve_token(token)
    except ObjectNotFoundError:
        raise HTTPException(status_code=404, detail="Link expired or object missing")
    return FileResponse(
        path,
        media_type=_MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream"),
        filename=path.name,
    )
