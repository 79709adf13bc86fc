from datetime import timedelta

import pytest
from jose import jwt
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from config import get_settings
from database import Base
from errors import (
    AuthError,
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from models import BudgetEntry, User
from oauth import GoogleProfile
from schemas import BudgetIn, LoginIn, RegisterIn
from security import create_access_token, decode_access_token
from services import AuthService, BudgetService


def test_register_hashes_password_and_issues_token() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        result = AuthService(session).register(
            RegisterIn(username="alice", password="secret1", email="alice@example.com")
        )

        assert result.user.username == "alice"
        assert result.user.role == "user"
        assert result.user.password_hash != "secret1"
        assert decode_access_token(result.token).user_id == result.user.id


@pytest.mark.parametrize(
    "data",
    [
        RegisterIn(username="", password="secret1"),
        RegisterIn(username="alice", password=None),
        RegisterIn(username="alice", password="short"),
    ],
)
def test_register_validates_input(data: RegisterIn) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValidationError):
            AuthService(session).register(data)


def test_register_rejects_duplicate_username_or_email() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        auth.register(
            RegisterIn(username="alice", password="secret1", email="a@example.com")
        )

        with pytest.raises(ConflictError):
            auth.register(RegisterIn(username="alice", password="secret2"))
        with pytest.raises(ConflictError):
            auth.register(
                RegisterIn(username="alicia", password="secret2", email="a@example.com")
            )


def test_users_without_email_do_not_conflict() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        auth.register(RegisterIn(username="alice", password="secret1"))
        auth.register(RegisterIn(username="bob", password="secret1", email=" "))

        emails = session.scalars(select(User.email)).all()
        assert emails == [None, None]


def test_login_round_trips_through_verify_session() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        registered = auth.register(RegisterIn(username="alice", password="secret1"))

        result = auth.login(LoginIn(username="alice", password="secret1"))
        principal = auth.verify_session(result.token)

        assert principal.user_id == registered.user.id
        assert principal.role == "user"


@pytest.mark.parametrize(
    "username,password", [("alice", "wrong-password"), ("nobody", "secret1")]
)
def test_login_rejects_bad_credentials(username: str, password: str) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        auth.register(RegisterIn(username="alice", password="secret1"))

        with pytest.raises(AuthError):
            auth.login(LoginIn(username=username, password=password))


def test_login_requires_both_fields() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(ValidationError):
            AuthService(session).login(LoginIn(username="alice"))


def test_federated_user_cannot_log_in_with_password() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        result = auth.federated_login(
            GoogleProfile(id="g-1", email="gina@example.com", name="Gina")
        )

        with pytest.raises(InvalidCredentialsError):
            auth.login(LoginIn(username=result.user.username, password="anything"))


def test_expired_and_tampered_tokens_are_rejected() -> None:
    expired = create_access_token(1, "user", expires_in=timedelta(seconds=-5))
    with pytest.raises(AuthError, match="expired"):
        decode_access_token(expired)

    forged = jwt.encode({"sub": "1", "role": "admin"}, "not-the-secret", "HS256")
    with pytest.raises(AuthError):
        decode_access_token(forged)

    with pytest.raises(AuthError):
        decode_access_token("not.a.token")


def test_tokens_expire_after_configured_lifetime() -> None:
    settings = get_settings()
    token = create_access_token(7, "user")
    claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

    assert claims["sub"] == "7"
    assert claims["exp"] - claims["iat"] == settings.token_ttl_secs


def test_federated_login_creates_user_once() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        profile = GoogleProfile(id="g-42", email="gina@example.com", name="Gina")

        first = auth.federated_login(profile)
        second = auth.federated_login(profile)

        assert first.user.id == second.user.id
        assert first.user.username.startswith("gina")
        assert len(first.user.username) > len("gina")
        assert first.user.password_hash is None
        assert first.user.email == "gina@example.com"
        assert decode_access_token(second.token).user_id == first.user.id


def test_federated_login_requires_email() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        with pytest.raises(AuthError):
            AuthService(session).federated_login(GoogleProfile(id="g-1", email=None))


def test_federated_login_requires_email_for_returning_users() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        auth.federated_login(GoogleProfile(id="g-1", email="gina@example.com"))

        with pytest.raises(AuthError):
            auth.federated_login(GoogleProfile(id="g-1", email=None))


def test_federated_login_does_not_take_over_existing_email() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        auth.register(
            RegisterIn(username="gina", password="secret1", email="gina@example.com")
        )

        with pytest.raises(ConflictError):
            auth.federated_login(GoogleProfile(id="g-9", email="gina@example.com"))


def test_verify_session_rejects_tokens_of_deleted_accounts() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        result = auth.register(RegisterIn(username="alice", password="secret1"))
        assert auth.verify_session(result.token).user_id == result.user.id

        auth.delete_account(result.user.id)

        with pytest.raises(AuthError):
            auth.verify_session(result.token)


def test_update_password_rehashes() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        user = auth.register(RegisterIn(username="alice", password="secret1")).user

        with pytest.raises(ValidationError):
            auth.update_password(user.id, "short")

        auth.update_password(user.id, "another-secret")
        with pytest.raises(AuthError):
            auth.login(LoginIn(username="alice", password="secret1"))
        assert auth.login(LoginIn(username="alice", password="another-secret"))


def test_update_password_rejected_for_federated_accounts() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        user = auth.federated_login(GoogleProfile(id="g-1", email="g@example.com")).user

        with pytest.raises(ValidationError):
            auth.update_password(user.id, "long-enough")
        assert auth.get_profile(user.id).password_hash is None


def test_delete_account_cascades_to_budget_entries() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        auth = AuthService(session)
        alice = auth.register(RegisterIn(username="alice", password="secret1")).user
        bob = auth.register(RegisterIn(username="bob", password="secret1")).user
        budgets = BudgetService(session)
        budgets.add(alice.id, BudgetIn(category="Food", amount=5, month="May 2025"))
        budgets.add(alice.id, BudgetIn(category="Rent", amount=7, month="May 2025"))
        budgets.add(bob.id, BudgetIn(category="Rent", amount=9, month="May 2025"))
        alice_id = alice.id

        auth.delete_account(alice_id)

        assert budgets.list(alice_id) == []
        with pytest.raises(NotFoundError):
            auth.get_profile(alice_id)
        remaining = session.scalars(select(BudgetEntry.user_id)).all()
        assert remaining == [bob.id]
