"""
Application configuration - loads from the YAML param file.

CONFIGURATION POLICY:
====================
Tunables are loaded from config/param.yaml.
Secrets (API keys, database URLs) live ONLY in .env and are loaded via os.getenv().

Two model roles, both reached through the OpenRouter unified API:
- Primary:    user-facing streamed answers
- Background: conversation titles and specialist insight extraction
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import os
import yaml
from loguru import logger

# ========================================
# Project Paths
# ========================================

# Get project root (parent of src/infrastructure/)
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_CONFIG_DIR = _PROJECT_ROOT / "config"

# ========================================
# YAML Config Loading
# ========================================

def _load_yaml(filename: str) -> Dict[str, Any]:
    """Load a YAML config file."""
    filepath = _CONFIG_DIR / filename
    if not filepath.exists():
        return {}
    with open(filepath, "r") as f:
        return yaml.safe_load(f) or {}


def _get_nested(d: Dict, *keys, default=None):
    """Get nested dictionary value safely."""
    for key in keys:
        if isinstance(d, dict):
            d = d.get(key, default)
        else:
            return default
    return d if d is not None else default


_PARAMS = _load_yaml("param.yaml")

# ========================================
# Provider Configuration
# ========================================

PROVIDER = _get_nested(_PARAMS, "provider", "default", default="openrouter")
OPENROUTER_BASE_URL = _get_nested(_PARAMS, "provider", "openrouter_base_url",
                                   default="https://openrouter.ai/api/v1")

# ========================================
# Models
# ========================================
#   Primary:    streamed advisor answers (quality matters most)
#   Background: titles + insight extraction (cheap, short outputs)

PRIMARY_MODEL = _get_nested(_PARAMS, "models", "primary",
                            default="anthropic/claude-sonnet-4.5")
BACKGROUND_MODEL = _get_nested(_PARAMS, "models", "background",
                               default="anthropic/claude-haiku-4.5")

CHAT_MAX_TOKENS = _get_nested(_PARAMS, "llm", "chat_max_tokens", default=2048)
TITLE_MAX_TOKENS = _get_nested(_PARAMS, "llm", "title_max_tokens", default=50)
INSIGHT_MAX_TOKENS = _get_nested(_PARAMS, "llm", "insight_max_tokens", default=300)
LLM_TEMPERATURE = _get_nested(_PARAMS, "llm", "temperature", default=0.7)
INSIGHT_STRUCTURED_OUTPUT = _get_nested(_PARAMS, "llm", "insight_structured_output",
                                        default=True)

# ========================================
# Conversation Limits
# ========================================

HISTORY_LIMIT = _get_nested(_PARAMS, "conversation", "history_limit", default=50)
CONVERSATION_LIST_LIMIT = _get_nested(_PARAMS, "conversation", "list_limit", default=20)
MESSAGE_MAX_LENGTH = _get_nested(_PARAMS, "conversation", "message_max_length", default=10000)

# ========================================
# User Context (memory) Limits
# ========================================

RECENT_CONVERSATIONS_LIMIT = _get_nested(_PARAMS, "context", "recent_conversations", default=10)
PRODUCT_REACTIONS_LIMIT = _get_nested(_PARAMS, "context", "product_reactions", default=50)
PROMPT_TOPICS_LIMIT = _get_nested(_PARAMS, "context", "prompt_topics", default=5)
EFFECTIVENESS_LIMIT = _get_nested(_PARAMS, "context", "effectiveness_limit", default=5)
EFFECTIVENESS_MIN_SAMPLE = _get_nested(_PARAMS, "context", "effectiveness_min_sample", default=5)
TREND_LIMIT = _get_nested(_PARAMS, "context", "trend_limit", default=3)

# ========================================
# Specialist Router
# ========================================

ROUTER_MIN_SCORE = _get_nested(_PARAMS, "router", "min_score", default=2)
ROUTER_STRONG_KEYWORD_LENGTH = _get_nested(_PARAMS, "router", "strong_keyword_length", default=5)

# ========================================
# Background Jobs (titles, insight extraction)
# ========================================

BACKGROUND_MAX_CONCURRENCY = _get_nested(_PARAMS, "background", "max_concurrency", default=4)
BACKGROUND_RETRY_ATTEMPTS = _get_nested(_PARAMS, "background", "retry_attempts", default=3)
BACKGROUND_BACKOFF_MIN = _get_nested(_PARAMS, "background", "backoff_min_seconds", default=1.0)
BACKGROUND_BACKOFF_MAX = _get_nested(_PARAMS, "background", "backoff_max_seconds", default=10.0)

# ========================================
# Images
# ========================================

MAX_IMAGES = _get_nested(_PARAMS, "images", "max_images", default=4)
TRUSTED_IMAGE_HOSTS: List[str] = _get_nested(
    _PARAMS, "images", "trusted_hosts",
    default=["images.unsplash.com", "supabase.co", "storage.googleapis.com"],
)

# ========================================
# Logging
# ========================================

LOG_LEVEL = _get_nested(_PARAMS, "logging", "level", default="INFO")
LOG_FILE = _get_nested(_PARAMS, "logging", "file", default=None)

# ========================================
# Database (Supabase PostgreSQL)
# ========================================

SUPABASE_URL = os.getenv("SUPABASE_URL", None)
SUPABASE_DB_URL = os.getenv("SUPABASE_DB_URL", None)

# ========================================
# Helper Functions
# ========================================

def get_api_key(provider: Optional[str] = None) -> Optional[str]:
    """Get API key for the specified provider."""
    provider = provider or PROVIDER
    key_map = {
        "openrouter": "OPENROUTER_API_KEY",
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
    }
    env_var = key_map.get(provider, f"{provider.upper()}_API_KEY")
    return os.getenv(env_var)


def validate() -> None:
    """
    Validate that required secrets are present.

    Raises:
        ValueError: If a required secret is missing
    """
    api_key = get_api_key()
    if not api_key:
        key_name = "OPENROUTER_API_KEY" if PROVIDER == "openrouter" else f"{PROVIDER.upper()}_API_KEY"
        raise ValueError(
            f"Missing required secret: {key_name}\n"
            f"Please add it to your .env file."
        )
    if not os.getenv("SUPABASE_DB_URL"):
        raise ValueError(
            "Missing required secret: SUPABASE_DB_URL\n"
            "Please add it to your .env file."
        )


def dump() -> None:
    """Log all active non-secret configuration values for debugging."""
    logger.info("=" * 60)
    logger.info("CONFIGURATION (NON-SECRETS ONLY)")
    logger.info("=" * 60)

    logger.info("Models:")
    logger.info(f"   Provider: {PROVIDER}")
    logger.info(f"   Primary: {PRIMARY_MODEL} (max_tokens={CHAT_MAX_TOKENS})")
    logger.info(f"   Background: {BACKGROUND_MODEL}")
    logger.info(f"   Structured insight output: {INSIGHT_STRUCTURED_OUTPUT}")

    logger.info("Conversation:")
    logger.info(f"   History limit: {HISTORY_LIMIT}")
    logger.info(f"   Max message length: {MESSAGE_MAX_LENGTH}")

    logger.info("User context:")
    logger.info(f"   Recent conversations: {RECENT_CONVERSATIONS_LIMIT}")
    logger.info(f"   Product reactions: {PRODUCT_REACTIONS_LIMIT}")
    logger.info(f"   Effectiveness: top {EFFECTIVENESS_LIMIT} (min sample {EFFECTIVENESS_MIN_SAMPLE})")
    logger.info(f"   Trends: {TREND_LIMIT}")

    logger.info("Router:")
    logger.info(f"   Min score: {ROUTER_MIN_SCORE}")
    logger.info(f"   Strong keyword length: > {ROUTER_STRONG_KEYWORD_LENGTH}")

    logger.info("Background jobs:")
    logger.info(f"   Max concurrency: {BACKGROUND_MAX_CONCURRENCY}")
    logger.info(f"   Retry attempts: {BACKGROUND_RETRY_ATTEMPTS}")

    logger.info("Database:")
    logger.info(f"   DB URL: {'Set' if SUPABASE_DB_URL else 'Not set'}")
    logger.info(f"   Supabase URL: {'Set' if SUPABASE_URL else 'Not set'}")
    logger.info("=" * 60)


def get_config() -> Dict[str, Any]:
    """Return full config dictionary."""
    return _PARAMS
