from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.error import URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from config import Settings, get_settings
from errors import AuthError, ServerError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


@dataclass(frozen=True)
class GoogleProfile:
    id: str
    email: Optional[str]
    name: Optional[str] = None


class GoogleOAuthClient:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def _require_configured(self) -> None:
        if not self.settings.google_enabled:
            raise ServerError("Google login is not configured")

    def authorization_url(self, state: str) -> str:
        self._require_configured()
        params = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.google_callback_url,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def fetch_profile(self, code: str) -> GoogleProfile:
        self._require_configured()
        token_payload = _fetch_json(
            Request(
                GOOGLE_TOKEN_URL,
                data=urlencode(
                    {
                        "code": code,
                        "client_id": self.settings.google_client_id,
                        "client_secret": self.settings.google_client_secret,
                        "redirect_uri": self.settings.google_callback_url,
                        "grant_type": "authorization_code",
                    }
                ).encode("utf-8"),
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                method="POST",
            ),
            timeout=self.settings.http_timeout_secs,
        )
        access_token = token_payload.get("access_token")
        if not access_token:
            raise AuthError("Google did not return an access token")

        userinfo = _fetch_json(
            Request(
                GOOGLE_USERINFO_URL,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {access_token}",
                },
            ),
            timeout=self.settings.http_timeout_secs,
        )
        return profile_from_userinfo(userinfo)


def profile_from_userinfo(payload: dict) -> GoogleProfile:
    subject = payload.get("sub")
    if not subject:
        raise AuthError("Google profile is missing an id")
    email = payload.get("email") or None
    # unverified addresses are treated as absent
    if email and payload.get("email_verified") is False:
        email = None
    return GoogleProfile(id=str(subject), email=email, name=payload.get("name"))


def _fetch_json(req: Request, *, timeout: float) -> dict:
    try:
        with urlopen(req, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        logger.warning(f"google_oauth_request_failed: url={req.full_url} error={exc}")
        raise AuthError("Google login failed") from exc
    if not isinstance(payload, dict):
        raise AuthError("Unexpected response from Google")
    return payload
