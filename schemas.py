from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class RegisterIn(BaseModel):
    username: Optional[str] = Field(default=None, max_length=150)
    password: Optional[str] = None
    email: Optional[str] = Field(default=None, max_length=255)


class LoginIn(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdateIn(BaseModel):
    password: Optional[str] = None


class UserOut(BaseModel):
    id: int
    username: str
    role: str
    email: Optional[str] = None


class AuthOut(BaseModel):
    token: str
    user: UserOut


class MessageOut(BaseModel):
    message: str


# Category and month stay plain strings here; the service layer validates them
# so that bad values surface as a 400 with a readable message.
class BudgetIn(BaseModel):
    category: str
    amount: Decimal
    month: str


class BudgetPatchIn(BaseModel):
    category: Optional[str] = None
    amount: Optional[Decimal] = None
    month: Optional[str] = None


class BudgetOut(BaseModel):
    id: int
    category: str
    amount: float
    month: str


class ReportRowOut(BaseModel):
    month: str
    category: str
    total: float


class MonthTotalOut(BaseModel):
    month: str
    total: float


class CategoryTotalOut(BaseModel):
    category: str
    total: float


class ReportSummaryOut(BaseModel):
    months: list[MonthTotalOut]
    categories: list[CategoryTotalOut]
    total: float
