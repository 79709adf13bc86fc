import logging
import os
import secrets
from typing import Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import SessionLocal, init_db
from errors import AuthError, BudgetAppError
from models import BudgetEntry, User
from oauth import GoogleOAuthClient
from schemas import (
    AuthOut,
    BudgetIn,
    BudgetOut,
    BudgetPatchIn,
    LoginIn,
    MessageOut,
    ProfileUpdateIn,
    RegisterIn,
    ReportRowOut,
    ReportSummaryOut,
    UserOut,
)
from security import Principal, generate_oauth_state, validate_oauth_state
from services import (
    AuthResult,
    AuthService,
    BudgetService,
    ReportService,
    cents_to_amount,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

OAUTH_NONCE_COOKIE = "oauth_nonce"

app = FastAPI(title="Budget Tracker")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(BudgetAppError)
def handle_app_error(request: Request, exc: BudgetAppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"request_failed: path={request.url.path} error={exc}")
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc)})


@app.exception_handler(RequestValidationError)
def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(StarletteHTTPException)
def handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"unhandled_error: path={request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Server error"})


@app.on_event("startup")
def startup_event():
    init_db()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_oauth_client() -> GoogleOAuthClient:
    return GoogleOAuthClient()


bearer_scheme = HTTPBearer(auto_error=False)


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise AuthError("No token, authorization denied")
    return AuthService(db).verify_session(credentials.credentials)


def user_out(user: User) -> UserOut:
    return UserOut(id=user.id, username=user.username, role=user.role, email=user.email)


def auth_out(result: AuthResult) -> AuthOut:
    return AuthOut(token=result.token, user=user_out(result.user))


def entry_out(entry: BudgetEntry) -> BudgetOut:
    return BudgetOut(
        id=entry.id,
        category=entry.category.value,
        amount=entry.amount,
        month=entry.month,
    )


def _frontend_redirect(path: str, params: dict[str, str]) -> RedirectResponse:
    response = RedirectResponse(
        url=f"{settings.frontend_url}{path}?{urlencode(params)}", status_code=302
    )
    # the token travels in the query string; keep it out of caches and referrers
    response.headers["Cache-Control"] = "no-store"
    response.headers["Referrer-Policy"] = "no-referrer"
    response.delete_cookie(OAUTH_NONCE_COOKIE)
    return response


@app.get("/health")
def health_check():
    return {"status": "OK", "message": "Server is running"}


@app.post("/auth/register", response_model=AuthOut, status_code=201)
def register(data: RegisterIn, db: Session = Depends(get_db)):
    return auth_out(AuthService(db).register(data))


@app.post("/auth/login", response_model=AuthOut)
def login(data: LoginIn, db: Session = Depends(get_db)):
    return auth_out(AuthService(db).login(data))


@app.get("/auth/google")
def google_login(oauth: GoogleOAuthClient = Depends(get_oauth_client)):
    nonce = secrets.token_urlsafe(24)
    url = oauth.authorization_url(generate_oauth_state(nonce))
    response = RedirectResponse(url=url, status_code=302)
    response.set_cookie(
        OAUTH_NONCE_COOKIE,
        nonce,
        max_age=600,
        httponly=True,
        samesite="lax",
        secure=settings.google_callback_url.startswith("https://"),
    )
    return response


@app.get("/auth/google/callback")
def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: Session = Depends(get_db),
    oauth: GoogleOAuthClient = Depends(get_oauth_client),
):
    if error or not code:
        logger.info(f"oauth_callback_rejected: reason={error or 'missing_code'}")
        return _frontend_redirect("/login", {"error": "Google login failed"})
    if not validate_oauth_state(state, request.cookies.get(OAUTH_NONCE_COOKIE)):
        logger.warning("oauth_callback_rejected: reason=invalid_state")
        return _frontend_redirect("/login", {"error": "Google login failed"})

    try:
        profile = oauth.fetch_profile(code)
        result = AuthService(db).federated_login(profile)
    except BudgetAppError as exc:
        logger.warning(f"oauth_callback_failed: error={exc}")
        return _frontend_redirect("/login", {"error": str(exc)})
    return _frontend_redirect("/dashboard", {"token": result.token})


@app.get("/auth/me", response_model=UserOut)
def me(principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return user_out(AuthService(db).get_profile(principal.user_id))


@app.put("/auth/profile", response_model=MessageOut)
def update_profile(
    data: ProfileUpdateIn,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    service = AuthService(db)
    if data.password is not None:
        service.update_password(principal.user_id, data.password)
    else:
        service.get_profile(principal.user_id)
    return MessageOut(message="Profile updated successfully")


@app.delete("/auth/profile", response_model=MessageOut)
def delete_profile(
    principal: Principal = Depends(get_principal), db: Session = Depends(get_db)
):
    AuthService(db).delete_account(principal.user_id)
    return MessageOut(message="Account deleted successfully")


@app.get("/budget", response_model=list[BudgetOut])
def list_budgets(
    principal: Principal = Depends(get_principal), db: Session = Depends(get_db)
):
    return [entry_out(e) for e in BudgetService(db).list(principal.user_id)]


@app.post("/budget", response_model=BudgetOut, status_code=201)
def add_budget(
    data: BudgetIn,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return entry_out(BudgetService(db).add(principal.user_id, data))


@app.get("/budget/report", response_model=list[ReportRowOut])
def budget_report(
    start: Optional[str] = None,
    end: Optional[str] = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    rows = ReportService(db).generate(principal.user_id, start, end)
    return [
        ReportRowOut(month=r.month, category=r.category.value, total=r.total)
        for r in rows
    ]


@app.get("/budget/report/summary", response_model=ReportSummaryOut)
def budget_report_summary(
    start: Optional[str] = None,
    end: Optional[str] = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    summary = ReportService(db).summary(principal.user_id, start, end)
    return {
        "months": [
            {"month": month, "total": cents_to_amount(cents)}
            for month, cents in summary.months
        ],
        "categories": [
            {"category": category.value, "total": cents_to_amount(cents)}
            for category, cents in summary.categories
        ],
        "total": cents_to_amount(summary.total_cents),
    }


@app.put("/budget/{entry_id}", response_model=BudgetOut)
def update_budget(
    entry_id: int,
    data: BudgetPatchIn,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return entry_out(BudgetService(db).update(principal.user_id, entry_id, data))


@app.delete("/budget/{entry_id}", response_model=MessageOut)
def delete_budget(
    entry_id: int,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    BudgetService(db).delete(principal.user_id, entry_id)
    return MessageOut(message="Budget deleted")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
