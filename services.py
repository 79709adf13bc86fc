from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import (
    AuthError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from models import BudgetCategory, BudgetEntry, User
from months import month_in_range, month_sort_key, normalize_month_label
from oauth import GoogleProfile
from schemas import BudgetIn, BudgetPatchIn, LoginIn, RegisterIn
from security import (
    Principal,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MIN_AMOUNT = Decimal("0.01")
MAX_AMOUNT = Decimal("1000000000")
USERNAME_MAX_LENGTH = 150
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def clean_category(value: object) -> BudgetCategory:
    try:
        return BudgetCategory(value)
    except ValueError as exc:
        raise ValidationError("Invalid category") from exc


def amount_to_cents(value: object) -> int:
    """Convert a wire amount to whole cents, rounding half-up.

    Booleans, non-finite numbers, anything below 0.01 and anything above
    MAX_AMOUNT are rejected.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("Amount must be a positive number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError("Amount must be a positive number") from exc
    if not amount.is_finite() or amount < MIN_AMOUNT:
        raise ValidationError("Amount must be a positive number")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_amount(cents: int) -> float:
    return cents / 100


def _check_password(password: Optional[str]) -> str:
    if not password:
        raise ValidationError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    return password


@dataclass(frozen=True)
class AuthResult:
    token: str
    user: User


@dataclass(frozen=True)
class ReportRow:
    month: str
    category: BudgetCategory
    total_cents: int

    @property
    def total(self) -> float:
        return cents_to_amount(self.total_cents)


@dataclass(frozen=True)
class ReportSummary:
    months: list[tuple[str, int]]
    categories: list[tuple[BudgetCategory, int]]
    total_cents: int


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _issue(self, user: User) -> AuthResult:
        return AuthResult(token=create_access_token(user.id, user.role), user=user)

    def register(self, data: RegisterIn) -> AuthResult:
        username = (data.username or "").strip()
        if not username or not data.password:
            raise ValidationError("Username and password are required")
        password = _check_password(data.password)
        email = (data.email or "").strip() or None

        clauses = [User.username == username]
        if email is not None:
            clauses.append(User.email == email)
        if self.session.scalar(select(User.id).where(or_(*clauses))) is not None:
            raise ConflictError("Username or email already exists")

        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("Username or email already exists") from exc
        self.session.refresh(user)
        logger.info(f"user_registered: user_id={user.id}")
        return self._issue(user)

    def login(self, data: LoginIn) -> AuthResult:
        if not data.username or not data.password:
            raise ValidationError("Username and password are required")
        user = self.session.scalar(
            select(User).where(User.username == data.username.strip())
        )
        password_ok = verify_password(
            data.password, user.password_hash if user else None
        )
        if user is None or not password_ok:
            logger.info("login_failed: reason=invalid_credentials")
            raise InvalidCredentialsError("Invalid credentials")
        logger.info(f"login_succeeded: user_id={user.id}")
        return self._issue(user)

    def _unique_username(self, email: str) -> str:
        base = email.split("@", 1)[0][: USERNAME_MAX_LENGTH - 8] or "user"
        for _ in range(10):
            suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
            candidate = f"{base}{suffix}"
            taken = self.session.scalar(
                select(User.id).where(User.username == candidate)
            )
            if taken is None:
                return candidate
        raise ConflictError("Could not allocate a username")

    def federated_login(self, profile: GoogleProfile) -> AuthResult:
        if not profile.email:
            raise AuthError("No email provided by Google profile")

        user = self.session.scalar(select(User).where(User.google_id == profile.id))
        if user is not None:
            logger.info(f"oauth_login: user_id={user.id} created=false")
            return self._issue(user)

        if self.session.scalar(select(User.id).where(User.email == profile.email)):
            raise ConflictError("An account with this email already exists")

        user = User(
            username=self._unique_username(profile.email),
            email=profile.email,
            google_id=profile.id,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("An account with this email already exists") from exc
        self.session.refresh(user)
        logger.info(f"oauth_login: user_id={user.id} created=true")
        return self._issue(user)

    def verify_session(self, token: str) -> Principal:
        principal = decode_access_token(token)
        # tokens outlive deleted accounts
        if self.session.get(User, principal.user_id) is None:
            raise AuthError("Token is not valid")
        return principal

    def get_profile(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def update_password(self, user_id: int, new_password: Optional[str]) -> User:
        user = self.get_profile(user_id)
        if user.is_federated_only:
            raise ValidationError("Password cannot be set for Google accounts")
        user.password_hash = hash_password(_check_password(new_password))
        self.session.commit()
        logger.info(f"password_updated: user_id={user.id}")
        return user

    def delete_account(self, user_id: int) -> None:
        user = self.get_profile(user_id)
        try:
            result = self.session.execute(
                delete(BudgetEntry).where(BudgetEntry.user_id == user_id)
            )
            self.session.delete(user)
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception(f"account_delete_failed: user_id={user_id}")
            raise
        logger.info(
            f"account_deleted: user_id={user_id} entries_removed={result.rowcount}"
        )


class BudgetService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list(self, owner_id: int) -> list[BudgetEntry]:
        stmt = (
            select(BudgetEntry)
            .where(BudgetEntry.user_id == owner_id)
            .order_by(BudgetEntry.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, owner_id: int, entry_id: int) -> BudgetEntry:
        entry = self.session.get(BudgetEntry, entry_id)
        if not entry or entry.user_id != owner_id:
            raise NotFoundError("Budget not found")
        return entry

    def add(self, owner_id: int, data: BudgetIn) -> BudgetEntry:
        entry = BudgetEntry(
            user_id=owner_id,
            category=clean_category(data.category),
            amount_cents=amount_to_cents(data.amount),
            month=normalize_month_label(data.month),
        )
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        logger.info(f"budget_added: user_id={owner_id} entry_id={entry.id}")
        return entry

    def update(self, owner_id: int, entry_id: int, data: BudgetPatchIn) -> BudgetEntry:
        entry = self.get(owner_id, entry_id)

        # validate everything before touching the row
        changes: dict[str, object] = {}
        if data.category is not None:
            changes["category"] = clean_category(data.category)
        if data.amount is not None:
            changes["amount_cents"] = amount_to_cents(data.amount)
        if data.month is not None:
            changes["month"] = normalize_month_label(data.month)

        for field, value in changes.items():
            setattr(entry, field, value)
        self.session.commit()
        self.session.refresh(entry)
        logger.info(
            f"budget_updated: user_id={owner_id} entry_id={entry.id} "
            f"fields={sorted(changes)}"
        )
        return entry

    def delete(self, owner_id: int, entry_id: int) -> None:
        entry = self.get(owner_id, entry_id)
        self.session.delete(entry)
        self.session.commit()
        logger.info(f"budget_deleted: user_id={owner_id} entry_id={entry_id}")


class ReportService:
    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def _resolve_range(
        start: Optional[str], end: Optional[str]
    ) -> tuple[Optional[str], Optional[str]]:
        start_label = normalize_month_label(start) if start else None
        end_label = normalize_month_label(end) if end else None
        if (
            start_label
            and end_label
            and month_sort_key(start_label) > month_sort_key(end_label)
        ):
            raise ValidationError("Start month must not be after end month")
        return start_label, end_label

    def generate(
        self,
        owner_id: int,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[ReportRow]:
        start_label, end_label = self._resolve_range(start, end)
        stmt = (
            select(
                BudgetEntry.month,
                BudgetEntry.category,
                func.sum(BudgetEntry.amount_cents).label("total_cents"),
            )
            .where(BudgetEntry.user_id == owner_id)
            .group_by(BudgetEntry.month, BudgetEntry.category)
        )
        rows = [
            ReportRow(
                month=row.month,
                category=row.category,
                total_cents=int(row.total_cents or 0),
            )
            for row in self.session.execute(stmt)
            if month_in_range(row.month, start_label, end_label)
        ]
        rows.sort(key=lambda r: (month_sort_key(r.month), r.category.value))
        return rows

    def summary(
        self,
        owner_id: int,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> ReportSummary:
        rows = self.generate(owner_id, start, end)

        by_month: dict[str, int] = {}
        by_category: dict[BudgetCategory, int] = {c: 0 for c in BudgetCategory}
        for row in rows:
            by_month[row.month] = by_month.get(row.month, 0) + row.total_cents
            by_category[row.category] += row.total_cents

        return ReportSummary(
            months=list(by_month.items()),
            categories=list(by_category.items()),
            total_cents=sum(by_month.values()),
        )
