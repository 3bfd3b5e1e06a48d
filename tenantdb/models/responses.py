"""Request and response models for API endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status: 'healthy' or 'unhealthy'")
    version: str = Field(description="API version")
    storage_backend: str = Field(description="Document store backend")
    storage_available: bool = Field(description="Whether the document store answers queries")


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(description="Error message")
    code: str = Field(description="Error kind: unauthorized, not_found, conflict, validation, internal")
    details: dict | None = Field(default=None, description="Additional error details")


# ============================================
# Admin auth models
# ============================================


class LoginRequest(BaseModel):
    """Administrator login."""

    password: str = Field(description="Administrator password")


class LoginResponse(BaseModel):
    """Issued admin session token."""

    token: str = Field(description="Admin session token, send as X-Admin-Token")
    account_id: str = Field(description="Administrator account ID")
    account_name: str = Field(description="Administrator account name")


class VerifyResponse(BaseModel):
    """Admin session token check."""

    valid: bool = Field(description="Whether the token is valid")
    account_id: str = Field(description="Administrator account ID")
    account_name: str = Field(description="Administrator account name")


class SuccessResponse(BaseModel):
    success: bool = True


# ============================================
# Project models
# ============================================


class ProjectCreate(BaseModel):
    """Request to create a new project."""

    name: str = Field(description="Human-readable project name")


class ProjectResponse(BaseModel):
    """Project information, including its API keys."""

    id: str = Field(description="Project identifier")
    name: str = Field(description="Project name")
    owner_id: str = Field(description="Owning administrator account ID")
    url: str = Field(description="Base URL of the project's client API")
    anon_key: str = Field(description="Public API key for client applications")
    service_key: str = Field(description="Privileged API key for trusted servers")
    created_at: str = Field(description="Creation timestamp (ISO)")


class ProjectListResponse(BaseModel):
    """List of projects response."""

    projects: list[ProjectResponse] = Field(description="List of projects")
    total: int = Field(description="Total number of projects")


class ProjectDeleteResponse(BaseModel):
    """Result of a cascading project delete."""

    project_id: str = Field(description="Deleted project ID")
    deleted: dict[str, int] = Field(description="Number of deleted records per collection")


# ============================================
# Table models
# ============================================


class ColumnInfo(BaseModel):
    """Column declaration."""

    name: str = Field(description="Column name")
    type: str = Field(description="Opaque type label (text, int, uuid, ...)")
    primary: bool = Field(default=False, description="True for the primary key column")


class TableCreate(BaseModel):
    """Request to create a new table."""

    name: str = Field(description="Table name, unique within the project")


class TableResponse(BaseModel):
    """Table information response."""

    id: str = Field(description="Table ID")
    project_id: str = Field(description="Owning project ID")
    name: str = Field(description="Table name")
    columns: list[ColumnInfo] = Field(description="Columns in declaration order")
    row_count: int = Field(description="Number of rows in table")
    created_at: str = Field(description="Creation timestamp (ISO)")

    @classmethod
    def from_table(cls, table: dict[str, Any]) -> "TableResponse":
        return cls(
            id=table["id"],
            project_id=table["project_id"],
            name=table["name"],
            columns=[ColumnInfo(**column) for column in table["columns"]],
            row_count=len(table["rows"]),
            created_at=table["created_at"],
        )


class TableListResponse(BaseModel):
    """List of tables response."""

    tables: list[TableResponse] = Field(description="List of tables")
    total: int = Field(description="Total number of tables")


class AddColumnRequest(BaseModel):
    """Request to add a column to a table."""

    name: str = Field(description="Column name")
    type: str = Field(description="Opaque type label")


class AlterColumnRequest(BaseModel):
    """Request to rename and/or retype a column."""

    new_name: str | None = Field(default=None, description="New column name (for rename)")
    new_type: str | None = Field(default=None, description="New type label")


# ============================================
# Auth user models
# ============================================


class AuthUserCreate(BaseModel):
    """Email/password credentials of a project end user."""

    email: str = Field(description="User email, unique within the project")
    password: str = Field(description="User password (stored as a bcrypt hash)")


class AuthUserResponse(BaseModel):
    id: str
    email: str
    created_at: str


class AuthUserListResponse(BaseModel):
    users: list[AuthUserResponse] = Field(description="Users in creation order")
    total: int = Field(description="Total number of users")


class ClientUser(BaseModel):
    id: str
    email: str


class ClientAuthResponse(BaseModel):
    """Result of end-user signup or login."""

    user: ClientUser
    token: str = Field(description="Opaque session token for the client application")


# ============================================
# Storage models
# ============================================


class BucketCreate(BaseModel):
    """Request to create a new bucket."""

    name: str = Field(description="Bucket name, unique within the project")
    public: bool = Field(default=False, description="Whether files are publicly readable")


class BucketResponse(BaseModel):
    id: str
    project_id: str
    name: str
    public: bool
    created_at: str


class BucketListResponse(BaseModel):
    buckets: list[BucketResponse] = Field(description="Buckets in creation order")
    total: int = Field(description="Total number of buckets")


class FileRegisterRequest(BaseModel):
    """Request to register file metadata in a bucket."""

    name: str = Field(description="File name")
    path: str = Field(description="Where the payload is stored")
    size: int = Field(ge=0, description="Payload size in bytes")
    mime_type: str = Field(description="MIME type of the payload")


class FileResponse(BaseModel):
    id: str
    project_id: str
    bucket_id: str
    name: str
    path: str
    size: int
    mime_type: str
    created_at: str


class FileListResponse(BaseModel):
    files: list[FileResponse] = Field(description="Files in registration order")
    total: int = Field(description="Total number of files")
