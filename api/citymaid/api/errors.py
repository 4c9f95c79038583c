from fastapi import HTTPException, status

from citymaid.services.repository import (
    RepositoryConflictError,
    RepositoryError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)
from citymaid.services.storage import StorageError, StorageUnavailableError, UploadValidationError

_STATUS_BY_ERROR: tuple[tuple[type[Exception], int], ...] = (
    (RepositoryUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (RepositoryNotFoundError, status.HTTP_404_NOT_FOUND),
    (RepositoryConflictError, status.HTTP_409_CONFLICT),
    (RepositoryValidationError, status.HTTP_400_BAD_REQUEST),
    (UploadValidationError, status.HTTP_400_BAD_REQUEST),
    (StorageUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StorageError, status.HTTP_502_BAD_GATEWAY),
)


def http_error(exc: RepositoryError | StorageError) -> HTTPException:
    """Translate a service-layer error into the HTTP error the routes raise."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal error")
