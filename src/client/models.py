"""Response models for the Codicent HTTP API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """A chat message returned by the service.

    Fields the service adds beyond these are kept as extras.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    id: str
    content: str = ""
    created_at: datetime | None = Field(default=None, alias="createdAt")
    parent_id: str | None = Field(default=None, alias="parentId")
    type: str | None = None
    nickname: str | None = None


class FileInfo(BaseModel):
    """Metadata of an uploaded file."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    id: str
    filename: str
    created_at: datetime | None = Field(default=None, alias="createdAt")
    content_type: str | None = Field(default=None, alias="contentType")
