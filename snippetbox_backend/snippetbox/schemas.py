from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

PERMITTED_EXPIRY_DAYS = (1, 7, 365)


class SnippetBase(BaseModel):
    title: str = Field(..., description="Short snippet title.")
    content: str = Field(..., description="Snippet body.")


class SnippetCreate(SnippetBase):
    """Schema for the create form."""
    title: str = Field(..., min_length=1, max_length=100, description="Short snippet title (1-100 chars).")
    content: str = Field(..., min_length=1, description="Snippet body (non-empty, stored verbatim).")
    expires: int = Field(..., description="Expiry window in days (1, 7 or 365).")

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("This field cannot be blank")
        return value

    @field_validator("content", mode="before")
    @classmethod
    def _content_not_blank(cls, value):
        if isinstance(value, str) and not value.strip():
            raise ValueError("This field cannot be blank")
        return value

    @field_validator("expires")
    @classmethod
    def _permitted_expiry(cls, value: int) -> int:
        if value not in PERMITTED_EXPIRY_DAYS:
            raise ValueError("This field must equal 1, 7 or 365")
        return value


class SnippetOut(SnippetBase):
    """Schema returned by the store for a snippet; rows are taken as stored."""
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Database ID of the snippet.")
    created: datetime
    expires: datetime
