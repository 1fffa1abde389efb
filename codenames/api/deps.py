from __future__ import annotations

import hashlib
import hmac

from fastapi import Depends, HTTPException, Request, status

from codenames.runtime import ServerContext


ADMIN_SESSION_COOKIE = "admin_session"
ADMIN_SESSION_MAX_AGE = 60 * 60 * 24


def get_server(request: Request) -> ServerContext:
    return request.app.state.server


def admin_session_token(*, secret: str, password: str) -> str:
    # Rotating either the password or the secret invalidates issued cookies.
    return hmac.new(secret.encode(), f"admin:{password}".encode(), hashlib.sha256).hexdigest()


def verify_admin_password(server: ServerContext, password: str) -> bool:
    return hmac.compare_digest(password.encode(), server.settings.admin_password.encode())


def expected_admin_token(server: ServerContext) -> str:
    s = server.settings
    return admin_session_token(secret=s.session_secret, password=s.admin_password)


def require_admin(request: Request, server: ServerContext = Depends(get_server)) -> None:
    token = request.cookies.get(ADMIN_SESSION_COOKIE)
    if not token or not hmac.compare_digest(token, expected_admin_token(server)):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
