"""
AI Chatbot Configuration Module
Configuration models for LLM providers and the query planner
"""
import os
from typing import Literal

from pydantic import BaseModel


class LLMProviderConfig(BaseModel):
    """Configuration for LLM providers"""

    default_provider: Literal["claude", "chatgpt"] = "chatgpt"

    # Claude Configuration
    claude_api_key: str = ""
    claude_model: str = "claude-haiku-4-5-20251001"
    claude_max_tokens: int = 2000
    claude_base_url: str = "https://api.anthropic.com"

    # OpenAI Configuration
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 2000
    openai_base_url: str = "https://api.openai.com"
    embedding_model: str = "text-embedding-3-small"

    request_timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "LLMProviderConfig":
        defaults = cls()
        return cls(
            default_provider=os.getenv("LLM_PROVIDER", defaults.default_provider),
            claude_api_key=os.getenv("CLAUDE_API_KEY", ""),
            claude_model=os.getenv("CLAUDE_MODEL", defaults.claude_model),
            claude_base_url=os.getenv("CLAUDE_BASE_URL", defaults.claude_base_url),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", defaults.openai_model),
            openai_base_url=os.getenv("OPENAI_BASE_URL", defaults.openai_base_url),
            embedding_model=os.getenv("EMBEDDING_MODEL", defaults.embedding_model),
        )


class QueryPlannerConfig(BaseModel):
    """Limits and thresholds for turning questions into snapshot selections"""

    # Hard ceiling on rows returned by any strategy
    max_sql_results: int = 24

    # Semantic fallback
    match_count: int = 6
    coverage_min: float = 0.6
    semantic_lookback_years: int = 2
    recent_months: int = 3

    # Security settings
    allowed_sql_operations: list[str] = ["SELECT"]
    blocked_sql_keywords: list[str] = [
        "DROP", "DELETE", "UPDATE", "INSERT", "ALTER",
        "CREATE", "TRUNCATE", "EXEC", "EXECUTE", "GRANT", "UNION"
    ]

    @classmethod
    def from_env(cls) -> "QueryPlannerConfig":
        defaults = cls()
        return cls(
            max_sql_results=int(os.getenv("MAX_SQL_ROWS", defaults.max_sql_results)),
            match_count=int(os.getenv("MATCH_COUNT", defaults.match_count)),
            coverage_min=float(os.getenv("COVERAGE_MIN", defaults.coverage_min)),
            semantic_lookback_years=int(
                os.getenv("SEMANTIC_LOOKBACK_YEARS", defaults.semantic_lookback_years)
            ),
            recent_months=int(os.getenv("RECENT_MONTHS", defaults.recent_months)),
        )
