from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.core.datetime_utils import is_valid_timezone


def _check_timezone(v: str) -> str:
    if not is_valid_timezone(v):
        raise ValueError(f"Invalid timezone: {v}")
    return v


def _check_birthday(v: str) -> str:
    try:
        date.fromisoformat(v)
    except ValueError as e:
        raise ValueError("Invalid birthday format. Expected YYYY-MM-DD") from e
    return v


class Location(BaseModel):
    """Where the user lives."""

    city: str = Field(min_length=1, max_length=100)
    province: str = Field(min_length=1, max_length=100)
    lat: float | None = None
    lng: float | None = None


class UserCreate(BaseModel):
    """Request body for registering a user."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    birthday: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    timezone: str = Field(min_length=1, max_length=64)
    location: Location

    @field_validator("birthday")
    @classmethod
    def validate_birthday(cls, v: str) -> str:
        return _check_birthday(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _check_timezone(v)


class UserUpdate(BaseModel):
    """Request body for a partial user update. At least one field is required."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    birthday: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    timezone: str | None = Field(default=None, min_length=1, max_length=64)
    location: Location | None = None

    @field_validator("birthday")
    @classmethod
    def validate_birthday(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _check_birthday(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _check_timezone(v)

    @model_validator(mode="after")
    def require_one_field(self) -> "UserUpdate":
        if not self.model_dump(exclude_none=True):
            raise ValueError("At least one field must be provided for update")
        return self


class UserResponse(BaseModel):
    """User as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    birthday: date
    timezone: str
    location: Location
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: object) -> str:
        return str(v)
