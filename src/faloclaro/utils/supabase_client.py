"""Supabase client construction and small query helpers."""

import logging
import os
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any, Optional

from postgrest.exceptions import APIError
from supabase import Client, create_client

logger = logging.getLogger(__name__)

__all__ = [
    "APIError",
    "Client",
    "add_days",
    "add_hours",
    "fetch_all",
    "fetch_one",
    "get_supabase_admin",
    "is_unique_violation",
    "now_iso",
    "parse_timestamp",
]

# Postgres error code for unique constraint violations
UNIQUE_VIOLATION = "23505"


@lru_cache(maxsize=1)
def get_supabase_admin(
    url: Optional[str] = None, service_role_key: Optional[str] = None
) -> Client:
    """Return the process-wide service-role Supabase client.

    Args:
        url: Project URL (or SUPABASE_URL / NEXT_PUBLIC_SUPABASE_URL env var)
        service_role_key: Service role key (or SUPABASE_SERVICE_ROLE_KEY env var)

    Returns:
        Supabase client that bypasses row level security

    Raises:
        ValueError: If the URL or key is not configured
    """
    url = url or os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
    service_role_key = service_role_key or os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not url or not service_role_key:
        raise ValueError(
            "Supabase credentials required: SUPABASE_URL and "
            "SUPABASE_SERVICE_ROLE_KEY env vars or function params"
        )

    client = create_client(url, service_role_key)
    logger.info(f"Supabase admin client created for {url}")
    return client


def fetch_one(query) -> Optional[dict]:
    """Execute a select builder and return its first row, or None."""
    response = query.limit(1).execute()
    rows = response.data or []
    return rows[0] if rows else None


def fetch_all(query) -> list[dict]:
    """Execute a builder and return its rows (never None)."""
    response = query.execute()
    return list(response.data or [])


def is_unique_violation(error: APIError) -> bool:
    return getattr(error, "code", None) == UNIQUE_VIOLATION


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def add_days(days: float, start: Optional[datetime] = None) -> str:
    return ((start or datetime.now(UTC)) + timedelta(days=days)).isoformat()


def add_hours(hours: float, start: Optional[datetime] = None) -> str:
    return ((start or datetime.now(UTC)) + timedelta(hours=hours)).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamptz value coming back from PostgREST.

    Naive values are treated as UTC. Unparseable values return None.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable timestamp: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
