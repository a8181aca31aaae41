from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tldev.config import settings

bearer_scheme = HTTPBearer(auto_error=False)


def _matches(given: str | None, expected: str) -> bool:
    return bool(given) and hmac.compare_digest(given, expected)


async def require_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    if not settings.cron_secret:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cron secret not configured")
    token = credentials.credentials if credentials else None
    if not _matches(token, settings.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")


async def require_cron_or_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    x_admin_key: str | None = Header(None),
) -> None:
    if not settings.cron_secret and not settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No credentials configured")
    token = credentials.credentials if credentials else None
    if settings.cron_secret and _matches(token, settings.cron_secret):
        return
    if settings.admin_api_key and _matches(x_admin_key, settings.admin_api_key):
        return
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")


async def require_admin_key(x_admin_key: str | None = Header(None)) -> None:
    if not settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin key not configured")
    if not _matches(x_admin_key, settings.admin_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin key")
