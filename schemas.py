from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from forms import AMOUNT_MAX, normalize_date_time

ALL = "all"


@dataclass(frozen=True)
class AuthContext:
    client_id: int
    username: str
    roles: tuple[str, ...] = field(default_factory=tuple)


class ExpenseIn(BaseModel):
    amount: int = Field(..., ge=0, le=AMOUNT_MAX)
    date_time: str
    description: Optional[str] = Field(default=None, max_length=500)
    category: str = Field(..., min_length=1, max_length=100)

    @field_validator("date_time")
    @classmethod
    def _normalize_date_time(cls, value: str) -> str:
        return normalize_date_time(value)


class ExpenseOut(BaseModel):
    id: int
    amount: int
    date_time: str
    description: Optional[str]
    category_name: str
    date: str
    time: str


class FilterCriteria(BaseModel):
    category: str = ALL
    amount_from: int = Field(default=0, ge=0, le=AMOUNT_MAX)
    amount_to: int = Field(default=AMOUNT_MAX, ge=0, le=AMOUNT_MAX)
    year: str = ALL
    month: str = ALL


class RegistrationIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=1, max_length=50)
    password: str = Field(..., min_length=1, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    email: str = Field(
        ..., max_length=120, pattern=r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$"
    )

    @field_validator("password")
    @classmethod
    def _password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes")
        return value


class LoginIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
