"""Error taxonomy shared by every component.

Each public operation fails with exactly one of these kinds. The transport
layer (see main.py) maps them to HTTP status codes and a JSON body of the
form {"error": <message>, "code": <kind>}.
"""

from typing import Any


class TenantDBError(Exception):
    """Base class for all expected failures."""

    status_code = 500
    code = "internal"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class UnauthorizedError(TenantDBError):
    """Missing or invalid capability (admin token or project API key)."""

    status_code = 401
    code = "unauthorized"


class NotFoundError(TenantDBError):
    """Project, table, column, row, bucket, file or user is absent."""

    status_code = 404
    code = "not_found"


class ConflictError(TenantDBError):
    """Duplicate name within its scope."""

    status_code = 409
    code = "conflict"


class ValidationError(TenantDBError):
    """Missing required field or attempt to mutate the primary column."""

    status_code = 400
    code = "validation"


class InternalError(TenantDBError):
    """Persistence failure."""

    status_code = 500
    code = "internal"
