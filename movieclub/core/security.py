import hashlib
import hmac
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from movieclub.core.config import get_settings

ADMIN_SESSION_MAX_AGE = 12 * 3600


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="movieclub-admin-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_cookie(payload: dict[str, Any]) -> str:
    serializer = get_session_serializer()
    return serializer.dumps(payload)


def load_session_cookie(cookie_value: str, max_age_seconds: int = ADMIN_SESSION_MAX_AGE) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(cookie_value, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None


def check_admin_password(candidate: str) -> bool:
    """Constant-time compare against ADMIN_PASSWORD; an unset password never matches."""
    expected = get_settings().admin_password
    if not expected:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), (candidate or "").encode("utf-8"))
