"""Request dependencies: the database client and the admin/cron guards."""

import os
from typing import Optional

from fastapi import Header, Query

from faloclaro import constants
from faloclaro.services.errors import ConfigurationError, ServiceError
from faloclaro.utils.supabase_client import Client, get_supabase_admin


class UnauthorizedError(ServiceError):
    status_code = 401


def get_db() -> Client:
    """Service-role Supabase client shared by every request."""
    try:
        return get_supabase_admin()
    except ValueError as e:
        raise ConfigurationError("Database is not configured") from e


def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    """Check ``X-Admin-Key`` when ``ADMIN_API_KEY`` is configured."""
    if constants.ADMIN_API_KEY and x_admin_key != constants.ADMIN_API_KEY:
        raise UnauthorizedError("Unauthorized")


def require_cron(
    x_cron_secret: Optional[str] = Header(None),
    x_vercel_cron: Optional[str] = Header(None),
    secret: Optional[str] = Query(None),
) -> None:
    """Cron calls carry the shared secret (header or query), or come from Vercel cron.

    Vercel cron is trusted only when no secret is configured.
    """
    expected = constants.CRON_EMAIL_SECRET
    if expected:
        if expected in (x_cron_secret, secret):
            return
    elif os.getenv("VERCEL") and x_vercel_cron:
        return
    raise UnauthorizedError("Unauthorized", success=False)
