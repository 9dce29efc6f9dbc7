from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _require_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("must not be blank")
    return cleaned


class MovieBase(BaseModel):
    title: str
    genre: str
    director: str
    year: int
    description: Optional[str] = None
    image_url: Optional[str] = None


class MovieCreate(MovieBase):
    year: int = Field(gt=0)
    description: str

    @field_validator("title", "genre", "director", "description")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _require_text(value)


class MovieUpdate(BaseModel):
    title: Optional[str] = None
    genre: Optional[str] = None
    director: Optional[str] = None
    year: Optional[int] = Field(default=None, gt=0)
    description: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("title", "genre", "director", "description")
    @classmethod
    def not_blank(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("must not be null")
        return _require_text(value)

    @field_validator("year")
    @classmethod
    def year_not_null(cls, value: Optional[int]) -> int:
        if value is None:
            raise ValueError("must not be null")
        return value


class MovieResponse(MovieBase):
    id: int

    class Config:
        from_attributes = True


class CopyResponse(BaseModel):
    id: int
    movie_id: int
    user_id: Optional[int] = None
    status: str
    medium: str

    class Config:
        from_attributes = True


class RentedCopyResponse(CopyResponse):
    movie: MovieResponse


class MovieDetailResponse(MovieResponse):
    copies: List[CopyResponse] = []
    available_copies: int = 0


class UserResponse(BaseModel):
    id: int
    username: str
    is_admin: bool
    assigned_copy: Optional[RentedCopyResponse] = None

    class Config:
        from_attributes = True


class CopyCreate(BaseModel):
    medium: str = "DVD"

    @field_validator("medium")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _require_text(value)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class LoginResponse(BaseModel):
    token: str
    user: UserResponse
