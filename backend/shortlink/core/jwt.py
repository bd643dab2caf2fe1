"""JWT helper utilities.

Tokens are minted by the identity provider after OAuth login; this service
only verifies them and resolves the acting account.
"""
from __future__ import annotations

import datetime as dt
import uuid
from typing import TypedDict, cast

from jose import JWTError, jwt  # type: ignore[import-untyped]

from shortlink.core.config import get_settings

ACCESS_TOKEN_TTL = dt.timedelta(minutes=15)


class TokenPayload(TypedDict, total=False):
    sub: str
    role: str
    jti: str
    exp: int
    iat: int
    token_version: int


def create_access_token(
    subject: str,
    *,
    role: str,
    token_version: int,
    expires_in: dt.timedelta = ACCESS_TOKEN_TTL,
) -> str:
    """Create a signed access token for the given identity."""

    settings = get_settings()
    now = dt.datetime.now(dt.timezone.utc)
    payload: TokenPayload = {
        "sub": subject,
        "role": role,
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
        "token_version": token_version,
    }
    return cast(str, jwt.encode(payload, settings.jwt_secret.get_secret_value(), algorithm=settings.jwt_algorithm))


def decode_token(token: str) -> TokenPayload:
    """Decode a JWT token and validate signature and expiry."""

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret.get_secret_value(), algorithms=[settings.jwt_algorithm])
        return cast(TokenPayload, payload)
    except JWTError as exc:  # pragma: no cover - specific error message not needed in tests
        raise ValueError("Invalid token.") from exc
