from fastapi import APIRouter, Depends, File, UploadFile, status

from citymaid.api.errors import http_error
from citymaid.core.config import Settings, get_settings
from citymaid.schemas.common import ApiResponse
from citymaid.schemas.uploads import UploadOut
from citymaid.services.storage import PHOTO_CONTENT_TYPES, RECEIPT_CONTENT_TYPES, StorageError, get_storage, read_upload

router = APIRouter()


async def _store(
    *,
    file: UploadFile,
    bucket: str,
    prefix: str,
    allowed_types: frozenset[str],
    max_bytes: int,
    storage,
) -> UploadOut:
    content = await read_upload(file, max_bytes=max_bytes)
    try:
        stored = await storage.save_upload(
            bucket=bucket,
            prefix=prefix,
            filename=file.filename,
            content_type=file.content_type,
            content=content,
            allowed_types=allowed_types,
            max_bytes=max_bytes,
        )
    except StorageError as exc:
        raise http_error(exc) from exc
    return UploadOut(
        url=stored.public_url,
        bucket=stored.bucket,
        path=stored.path,
        size=stored.size,
        content_type=stored.content_type,
    )


@router.post("/receipts", response_model=ApiResponse[UploadOut], status_code=status.HTTP_201_CREATED)
async def upload_receipt(
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    storage=Depends(get_storage),
) -> ApiResponse[UploadOut]:
    uploaded = await _store(
        file=file,
        bucket=settings.storage_receipts_bucket,
        prefix="receipt",
        allowed_types=RECEIPT_CONTENT_TYPES,
        max_bytes=settings.upload_max_bytes,
        storage=storage,
    )
    return ApiResponse(data=uploaded)


@router.post("/photos", response_model=ApiResponse[UploadOut], status_code=status.HTTP_201_CREATED)
async def upload_photo(
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    storage=Depends(get_storage),
) -> ApiResponse[UploadOut]:
    uploaded = await _store(
        file=file,
        bucket=settings.storage_photos_bucket,
        prefix="photo",
        allowed_types=PHOTO_CONTENT_TYPES,
        max_bytes=settings.upload_max_bytes,
        storage=storage,
    )
    return ApiResponse(data=uploaded)
