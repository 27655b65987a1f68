"""
Supabase client - Auth + schema helpers.

Provides:
- ``get_supabase_client()``  - Supabase REST/Auth client
- ``resolve_user_id()``      - bearer token → user id (Supabase Auth)
- ``init_advisor_schema()``  - apply the advisor DDL
- ``check_read_tables()``    - verify the context tables are reachable

The canonical SQLAlchemy engine/session lives in ``sql_client.py``.
"""

import os
from loguru import logger
from typing import Dict, Optional
from sqlalchemy import text
from supabase import create_client, Client

from .schema import OWNED_TABLES, READ_TABLES, generate_advisor_schema
from .sql_client import get_sql_engine

_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get or create Supabase REST client (used for Auth).

    Returns:
        Supabase Client instance
    """
    global _supabase_client

    if _supabase_client is not None:
        return _supabase_client

    supabase_url = os.getenv("SUPABASE_URL")
    supabase_key = os.getenv("SUPABASE_ANON_KEY")

    if not supabase_url or not supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_ANON_KEY must be set in .env file"
        )

    _supabase_client = create_client(supabase_url, supabase_key)
    logger.info(f"Supabase client created: {supabase_url}")

    return _supabase_client


def resolve_user_id(token: str) -> Optional[str]:
    """
    Resolve a Supabase access token to its user id.

    Returns:
        The user id, or None when the token is invalid or expired.
    """
    try:
        response = get_supabase_client().auth.get_user(token)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        return None
    user = getattr(response, "user", None)
    return user.id if user else None


def init_advisor_schema() -> None:
    """Create the advisor tables, indexes and RLS flags."""
    engine = get_sql_engine()
    try:
        with engine.begin() as conn:
            conn.execute(text(generate_advisor_schema()))
        logger.info(f"Advisor schema initialised ({', '.join(OWNED_TABLES)})")
    except Exception as e:
        logger.error(f"Failed to initialise schema: {e}")
        raise


def check_read_tables() -> Dict[str, bool]:
    """
    Check which context tables exist.

    Missing tables are not fatal: the context loader degrades each
    missing source to an empty section.
    """
    engine = get_sql_engine()
    status: Dict[str, bool] = {}
    with engine.connect() as conn:
        for table in READ_TABLES + OWNED_TABLES:
            exists = conn.execute(
                text("SELECT to_regclass(:name) IS NOT NULL"),
                {"name": f"public.{table}"},
            ).scalar()
            status[table] = bool(exists)
            if exists:
                logger.info(f"   {table}: present")
            else:
                logger.warning(f"   {table}: MISSING")
    return status
