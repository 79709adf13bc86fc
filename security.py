import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer
from jose import ExpiredSignatureError, JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from config import get_settings
from errors import AuthError

OAUTH_STATE_MAX_AGE_SECS = 600


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str


def hash_password(password: str) -> str:
    return generate_password_hash(password)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return generate_password_hash("not-a-real-password")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Compare ``password`` against a stored hash.

    A missing hash is still checked against a throwaway hash so unknown users
    and federated accounts take as long to reject as a wrong password.
    """
    if not password_hash:
        check_password_hash(_dummy_hash(), password)
        return False
    return check_password_hash(password_hash, password)


def create_access_token(
    user_id: int, role: str, expires_in: Optional[timedelta] = None
) -> str:
    settings = get_settings()
    if expires_in is None:
        expires_in = timedelta(seconds=settings.token_ttl_secs)
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except ExpiredSignatureError as exc:
        raise AuthError("Token has expired") from exc
    except JWTError as exc:
        raise AuthError("Token is not valid") from exc

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthError("Token is not valid") from exc
    return Principal(user_id=user_id, role=str(payload.get("role") or "user"))


def _state_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.jwt_secret, salt="oauth-state")


def generate_oauth_state(nonce: str) -> str:
    return _state_serializer().dumps({"n": nonce})


def validate_oauth_state(
    state: Optional[str],
    nonce: Optional[str],
    max_age_secs: int = OAUTH_STATE_MAX_AGE_SECS,
) -> bool:
    if not state or not nonce:
        return False
    try:
        data = _state_serializer().loads(state, max_age=max_age_secs)
    except BadSignature:
        return False
    if not isinstance(data, dict):
        return False
    return hmac.compare_digest(str(data.get("n", "")), nonce)
