"""Error taxonomy for ingestion, credential resolution, and persistence.

Every error carries a machine-readable ``kind`` and the HTTP status the API
layer maps it to.  Messages are safe to echo: they never contain credential
material or raw exception text from lower layers.
"""

from __future__ import annotations

from typing import Any

from fastapi import status
from fastapi.responses import JSONResponse


class VitalSyncError(Exception):
    """Base class for all domain errors."""

    kind: str = "Error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message}

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class Unauthenticated(VitalSyncError):
    """No credential was presented."""

    kind = "Unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidCredential(VitalSyncError):
    """A credential was presented but maps to no user."""

    kind = "InvalidCredential"
    status_code = status.HTTP_401_UNAUTHORIZED


class MalformedInput(VitalSyncError):
    kind = "MalformedInput"
    status_code = status.HTTP_400_BAD_REQUEST


class OutOfRange(VitalSyncError):
    """A numeric field is present but outside its physiological bounds."""

    kind = "OutOfRange"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(f"{field}={value!r} is outside the accepted range.")
        self.field = field
        self.value = value


class StorageError(VitalSyncError):
    kind = "StorageError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Storage failure.") -> None:
        super().__init__(message)


class PublishError(VitalSyncError):
    """Delivery to a live subscriber failed.  Logged by the hub, never raised to callers."""

    kind = "PublishError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
