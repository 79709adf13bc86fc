import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        jwt_secret: str,
        jwt_algorithm: str,
        token_ttl_secs: int,
        google_client_id: str,
        google_client_secret: str,
        google_callback_url: str,
        frontend_url: str,
        cors_origins: list[str],
        http_timeout_secs: float,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.token_ttl_secs = token_ttl_secs
        self.google_client_id = google_client_id
        self.google_client_secret = google_client_secret
        self.google_callback_url = google_callback_url
        self.frontend_url = frontend_url
        self.cors_origins = cors_origins
        self.http_timeout_secs = http_timeout_secs
        self.log_level = log_level

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("BUDGET_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'budget.db'}"
    jwt_secret = os.getenv(
        "BUDGET_JWT_SECRET",
        "5f0c2a9e81d4b7736c1e0f4a92b8d3e6a7c5f19024e8b6d3c0a1f7e29b4d8c61",
    )
    cors_raw = os.getenv("BUDGET_CORS_ORIGINS", "http://localhost:3000")
    return Settings(
        database_url=database_url,
        jwt_secret=jwt_secret,
        jwt_algorithm=os.getenv("BUDGET_JWT_ALGORITHM", "HS256"),
        token_ttl_secs=int(os.getenv("BUDGET_TOKEN_TTL_SECS", "3600")),
        google_client_id=os.getenv("BUDGET_GOOGLE_CLIENT_ID", ""),
        google_client_secret=os.getenv("BUDGET_GOOGLE_CLIENT_SECRET", ""),
        google_callback_url=os.getenv(
            "BUDGET_GOOGLE_CALLBACK_URL", "http://localhost:5000/auth/google/callback"
        ),
        frontend_url=os.getenv("BUDGET_FRONTEND_URL", "http://localhost:3000").rstrip(
            "/"
        ),
        cors_origins=[o.strip() for o in cors_raw.split(",") if o.strip()],
        http_timeout_secs=float(os.getenv("BUDGET_HTTP_TIMEOUT_SECS", "10")),
        log_level=os.getenv("BUDGET_LOG_LEVEL", "INFO").upper(),
    )
