"""
SQL Query Generation and Validation Module
Converts a financial question into one bounded SELECT over monthly snapshots
"""
import json
import logging
import re
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.reporting.periods import PeriodPair, resolve_period

from .config import QueryPlannerConfig
from .llm_providers import LLMProvider, TokenUsage

logger = logging.getLogger(__name__)

# Checked in order; more specific phrases first.
PERIOD_HINT_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("last_month", re.compile(r"\blast\s+month\b", re.IGNORECASE)),
    ("this_month", re.compile(r"\b(this\s+month|mtd|month[\s-]to[\s-]date)\b", re.IGNORECASE)),
    ("last_quarter", re.compile(r"\blast\s+quarter\b", re.IGNORECASE)),
    ("this_quarter", re.compile(r"\b(this\s+quarter|qtd|quarter[\s-]to[\s-]date)\b", re.IGNORECASE)),
    ("last_year", re.compile(r"\blast\s+year\b", re.IGNORECASE)),
    ("ytd", re.compile(r"\b(ytd|this\s+year|year[\s-]to[\s-]date)\b", re.IGNORECASE)),
]


# The realm filter must be the first WHERE condition, ANDed with the rest.
REALM_SCOPED_SOURCE = re.compile(
    r"\bFROM\s+monthly_snapshot\s+WHERE\s+realm_id\s*=\s*:realm_id\s+(AND|ORDER|GROUP|LIMIT)\b",
    re.IGNORECASE,
)


def _outside_parentheses(sql: str) -> str:
    """Blank out parenthesised text so only top-level clauses remain"""
    depth = 0
    kept = []
    for char in sql:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SQLValidationError("Unbalanced parentheses")
        kept.append(char if depth == 0 and char != ")" else " ")
    if depth:
        raise SQLValidationError("Unbalanced parentheses")
    return "".join(kept)


def detect_period_hint(question: str, today: date) -> Optional[PeriodPair]:
    """Resolve the first named period found in the question, if any"""
    for token, pattern in PERIOD_HINT_PATTERNS:
        if pattern.search(question or ""):
            return resolve_period(token, today)
    return None


class SQLValidationError(ValueError):
    """Generated SQL failed the structural safety checks"""


class SQLGenerator:
    """Generates and validates snapshot queries from natural language"""

    SNAPSHOT_SCHEMA = """
Authoritative Table (MariaDB/MySQL)
- monthly_snapshot: realm_id VARCHAR, year INT, month INT (1-12), data JSON
  data holds one calendar month of Profit & Loss figures, revenues and expenses positive:
  {"revenue": {"total": n}, "expenses": {"total": n, "by_account": {"<account name>": n}}, "net_income": n}
"""

    def __init__(
        self,
        provider: LLMProvider,
        planner_config: QueryPlannerConfig,
        database_schema: Optional[str] = None,
    ):
        """
        Initialize SQL Generator

        Args:
            provider: LLM provider used for generation
            planner_config: Row ceiling and blocked keywords
            database_schema: Custom schema description (uses default if None)
        """
        self.provider = provider
        self.config = planner_config
        self.database_schema = database_schema or self.SNAPSHOT_SCHEMA

    def build_system_prompt(self, today: date, period_hint: Optional[PeriodPair] = None) -> str:
        """Build system prompt with schema, date context and safety rules"""
        hint = ""
        if period_hint is not None:
            hint = (
                f"\nThe question refers to {period_hint.token.replace('_', ' ')}: "
                f"{period_hint.current.start_iso} to {period_hint.current.end_iso}. "
                "Select exactly the months overlapping that window."
            )

        return f"""You are a SQL query generator for a MariaDB/MySQL financial database.

{self.database_schema}
Today's date is {today.isoformat()}.{hint}

CRITICAL Rules:
1. Generate exactly ONE SELECT statement, no semicolons, no comments
2. Always select realm_id, year, month and data FROM monthly_snapshot, no joins or subqueries
3. The WHERE clause must start with realm_id = :realm_id (a bound parameter, never a literal),
   joined to further conditions with AND; put any OR inside parentheses
4. Filter months with year and month columns; the current month may be incomplete
5. ORDER BY year, month
6. Always end with LIMIT n where n is at most {self.config.max_sql_results}
7. Return results in JSON format with 'sql' and 'explanation' keys

Response format:
{{
    "sql": "SELECT realm_id, year, month, data FROM monthly_snapshot WHERE realm_id = :realm_id AND ... ORDER BY year, month LIMIT 12",
    "explanation": "Brief description of which months are selected"
}}"""

    async def generate_sql(
        self,
        question: str,
        today: date,
        usage: Optional[TokenUsage] = None,
    ) -> Dict[str, Any]:
        """
        Generate a validated snapshot query from a question

        Args:
            question: User's natural language question
            today: Caller's calendar date
            usage: Optional accumulator for provider token counts

        Returns:
            Dict with 'sql', 'explanation', 'provider', 'model'

        Raises:
            SQLValidationError: The model answered with an unsafe or malformed query
        """
        period_hint = detect_period_hint(question, today)
        response = await self.provider.query(
            system_prompt=self.build_system_prompt(today, period_hint),
            user_prompt=f"Question: {question}",
            json_mode=True,
        )
        if usage is not None:
            usage.add(response.get("usage"))

        content = response.get("content", "")
        try:
            result = json.loads(content)
        except json.JSONDecodeError:
            # Try to extract JSON from response
            json_match = re.search(r"\{.*\}", content, re.DOTALL)
            if not json_match:
                raise SQLValidationError("LLM did not return valid JSON")
            try:
                result = json.loads(json_match.group())
            except json.JSONDecodeError as exc:
                raise SQLValidationError("LLM did not return valid JSON") from exc
        if not isinstance(result, dict):
            raise SQLValidationError("LLM reply must be a JSON object with an 'sql' key")

        sql_query = self.validate_sql(str(result.get("sql") or ""))
        return {
            "sql": sql_query,
            "explanation": result.get("explanation", ""),
            "provider": response.get("provider"),
            "model": response.get("model"),
        }

    def validate_sql(self, sql: str) -> str:
        """
        Validate a generated query and return it normalised

        Args:
            sql: SQL query string

        Raises:
            SQLValidationError: If the query is not a bounded, realm-scoped SELECT
        """
        normalized = sql.strip()
        if normalized.endswith(";"):
            normalized = normalized[:-1].rstrip()
        sql_upper = normalized.upper()

        if not sql_upper.startswith("SELECT"):
            raise SQLValidationError("Only SELECT queries are allowed")
        if ";" in normalized:
            raise SQLValidationError("Multiple statements are not allowed")
        if "--" in normalized or "/*" in normalized:
            raise SQLValidationError("SQL comments are not allowed")

        for keyword in self.config.blocked_sql_keywords:
            if re.search(rf"\b{re.escape(keyword)}\b", sql_upper):
                raise SQLValidationError(f"Dangerous SQL keyword detected: {keyword}")

        if len(re.findall(r"\bSELECT\b", sql_upper)) != 1 or len(re.findall(r"\bFROM\b", sql_upper)) != 1:
            raise SQLValidationError("Subqueries are not allowed")
        if re.search(r"\bJOIN\b", sql_upper):
            raise SQLValidationError("Joins are not allowed")
        if not REALM_SCOPED_SOURCE.search(normalized):
            raise SQLValidationError(
                "Query must read FROM monthly_snapshot WHERE realm_id = :realm_id AND ..."
            )
        top_level = _outside_parentheses(sql_upper)
        if re.search(r"\b(OR|XOR)\b|\|\|", top_level):
            raise SQLValidationError("OR conditions must be parenthesised under the realm filter")

        limit_match = re.search(r"\bLIMIT\s+(\d+)\s*$", normalized, re.IGNORECASE)
        if not limit_match:
            raise SQLValidationError("Query must end with LIMIT n")
        limit = int(limit_match.group(1))
        if limit < 1 or limit > self.config.max_sql_results:
            raise SQLValidationError(
                f"LIMIT {limit} outside 1..{self.config.max_sql_results}"
            )
        return normalized

    def execute_sql(
        self,
        sql: str,
        db_session: Session,
        params: Optional[Dict[str, Any]] = None
    ) -> list:
        """
        Execute SQL query against database

        Args:
            sql: Validated SQL query string
            db_session: SQLAlchemy database session
            params: Bound parameters (must include realm_id)

        Returns:
            List of result rows as dictionaries
        """
        try:
            result = db_session.execute(text(sql), params or {})
            rows = result.fetchall()
        except Exception as e:
            logger.error(f"SQL execution failed: {str(e)}")
            raise ValueError(f"Database query failed: {str(e)}") from e

        columns = list(result.keys())
        return [self._normalize_row(dict(zip(columns, row))) for row in rows]

    def _normalize_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Convert Decimals to float and decode JSON returned as text"""
        normalized = {}
        for key, value in row.items():
            if isinstance(value, Decimal):
                value = float(value)
            elif key == "data" and isinstance(value, str):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError:
                    logger.debug("Snapshot data column is not JSON; keeping raw text")
            normalized[key] = value
        return normalized
