"""
Advisor schema DDL for Supabase PostgreSQL.

Only the tables the advisor writes are created here. The context tables
it reads (profiles, reactions, routines, learning aggregates) belong to
other flows; ``READ_TABLES`` lists them for connectivity checks.
"""

# Tables read by memory/context_store.py
READ_TABLES = (
    "user_profiles",
    "user_product_reactions",
    "user_routines",
    "routine_products",
    "products",
    "ingredients",
    "ingredient_effectiveness",
    "learning_patterns",
    "trend_signals",
)

OWNED_TABLES = (
    "advisor_conversations",
    "advisor_messages",
    "specialist_insights",
)


def generate_advisor_schema() -> str:
    """
    Generate the advisor DDL.

    Returns:
        SQL DDL string (idempotent; safe to re-run)
    """
    return """-- ============================================================================
-- Advisor Schema: conversations, append-only message log, specialist insights
-- PostgreSQL 15+
-- ============================================================================

CREATE EXTENSION IF NOT EXISTS "pgcrypto";

-- ============================================================================
-- CONVERSATIONS
-- ============================================================================

CREATE TABLE IF NOT EXISTS advisor_conversations (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL,
    title TEXT,
    specialist_type TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_advisor_conversations_user
    ON advisor_conversations (user_id, updated_at DESC);

COMMENT ON COLUMN advisor_conversations.title IS 'Set once after the first exchange; never overwritten';

-- ============================================================================
-- MESSAGES (append-only; seq is the replay order)
-- ============================================================================

CREATE TABLE IF NOT EXISTS advisor_messages (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    seq BIGINT GENERATED ALWAYS AS IDENTITY UNIQUE,
    conversation_id UUID NOT NULL REFERENCES advisor_conversations(id),
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    image_urls TEXT[] NOT NULL DEFAULT '{}',
    specialist_type TEXT,
    status TEXT NOT NULL DEFAULT 'complete' CHECK (status IN ('complete', 'partial')),
    created_at TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);

CREATE INDEX IF NOT EXISTS idx_advisor_messages_conversation
    ON advisor_messages (conversation_id, seq);

-- ============================================================================
-- SPECIALIST INSIGHTS (written by background extraction)
-- ============================================================================

CREATE TABLE IF NOT EXISTS specialist_insights (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    conversation_id UUID NOT NULL REFERENCES advisor_conversations(id),
    specialist_type TEXT NOT NULL,
    insight_type TEXT NOT NULL,
    data JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_specialist_insights_conversation
    ON specialist_insights (conversation_id);
CREATE INDEX IF NOT EXISTS idx_specialist_insights_type
    ON specialist_insights (specialist_type, created_at DESC);

-- ============================================================================
-- ROW LEVEL SECURITY (the service role bypasses these)
-- ============================================================================

ALTER TABLE advisor_conversations ENABLE ROW LEVEL SECURITY;
ALTER TABLE advisor_messages ENABLE ROW LEVEL SECURITY;
ALTER TABLE specialist_insights ENABLE ROW LEVEL SECURITY;
"""
