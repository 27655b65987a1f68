"""
Database clients for the advisor.

Everything lives in Supabase PostgreSQL:
    Owned  - advisor_conversations, advisor_messages, specialist_insights
    Read   - profiles, reactions, routines, learning aggregates
"""

from .sql_client import get_sql_engine, create_tables, get_session, test_connection
from .supabase_client import (
    get_supabase_client,
    resolve_user_id,
    init_advisor_schema,
    check_read_tables,
)
from .schema import generate_advisor_schema, OWNED_TABLES, READ_TABLES

__all__ = [
    "get_sql_engine",
    "get_session",
    "create_tables",
    "test_connection",
    "get_supabase_client",
    "resolve_user_id",
    "init_advisor_schema",
    "check_read_tables",
    "generate_advisor_schema",
    "OWNED_TABLES",
    "READ_TABLES",
]
