"""
Pydantic schemas for the lorekeeper HTTP API.

Request field names follow the JSON the existing clients already send
(``articleJSON``, ``svgBase64``, ...).
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class _PasswordPayload(BaseModel):
    password: Optional[str] = None

    @field_validator("password", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # Clients sometimes send numeric PINs.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ArticleCreateRequest(_PasswordPayload):
    articleJSON: Optional[dict] = None


class ArticleUpdateRequest(_PasswordPayload):
    articleJSON: Optional[dict] = None


class ArticleDeleteRequest(_PasswordPayload):
    pass


class CategoryCreateRequest(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None


class CardPayload(BaseModel):
    name: Optional[str] = None
    svgBase64: Optional[str] = None
    pngBase64: Optional[str] = None


class DeckUploadRequest(BaseModel):
    title: Optional[str] = None
    cards: Optional[list[CardPayload]] = None


class MessageResponse(BaseModel):
    status: Literal["ok"] = "ok"
    message: str


class ArticleWriteResponse(MessageResponse):
    id: str
    version: int


class ArticleSummaryResponse(BaseModel):
    id: str
    content: Any


class CategoryResponse(BaseModel):
    id: str
    name: str


class CardLinkResponse(BaseModel):
    name: str
    url: str


class DeckResponse(BaseModel):
    title: str
    cards: list[CardLinkResponse]


class DeckFilesResponse(BaseModel):
    files: list[str]


class DeckUploadResponse(MessageResponse):
    uploaded: int
    files: list[str] = Field(default_factory=list)


class DeckDeleteResponse(MessageResponse):
    deleted: int
