"""
Database Configuration

Supabase client for REST API access (already pooled via PostgREST).

The leaderboard engine only reads from Supabase:
- challenges, enrolments, checkins and users tables
- no computed totals or ranks are ever written back
"""

from typing import Optional

from supabase import create_client, Client
from fitboard.core.config import settings


_supabase: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get Supabase client instance.

    The client is created on first use so that importing the app does not
    require Supabase credentials (tests and local tooling run without them).
    """
    global _supabase

    if _supabase is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be configured"
            )
        _supabase = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)

    return _supabase
