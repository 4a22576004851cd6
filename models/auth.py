"""Auth, token-usage and column-discovery DTOs."""

from __future__ import annotations

from pydantic import Field

from models.base import CamelModel


class User(CamelModel):
    id: int
    login: str
    is_active: bool = True
    date_creation: str | None = None
    date_modification: str | None = None


class LoginRequest(CamelModel):
    login: str
    password: str


class LoginResponse(CamelModel):
    success: bool
    message: str = ""
    user: User | None = None
    token: str | None = None


class TokenStats(CamelModel):
    """Per-user token consumption."""

    id_user: int
    total_tokens_consumed: int = 0
    max_tokens_allowed: int = 0
    remaining_tokens: int = 0
    usage_percentage: float = 0.0
    quota_exceeded: bool = False


class ColumnInfo(CamelModel):
    id: str  # TABLE.COLUMN
    column_name: str
    data_type: str = ""
    description: str | None = None
    not_null: bool = False


class TableWithColumns(CamelModel):
    table_name: str
    table_description: str | None = None
    columns: list[ColumnInfo] = Field(default_factory=list)


class ColumnDiscoveryRequest(CamelModel):
    question: str
    user_id: int | None = None
    session_id: str | None = None


class ColumnDiscoveryResponse(CamelModel):
    success: bool
    error_message: str | None = None
    question: str | None = None
    detected_intent: str | None = None
    tables: list[TableWithColumns] = Field(default_factory=list)
