"""
Query Planner Module
Selects the monthly snapshots that answer a question, falling back through
direct SQL generation, the current month, semantic search and recent months
"""
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import MonthlySnapshot
from app.reporting.periods import shift_month

from .config import QueryPlannerConfig
from .llm_providers import EmbeddingClient, LLMProviderError, TokenUsage
from .sql_generator import SQLGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotRow:
    """One month of figures handed to the answer writer"""

    year: int
    month: int
    data: Dict[str, Any]

    @property
    def label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @classmethod
    def from_model(cls, snapshot: MonthlySnapshot) -> "SnapshotRow":
        return cls(year=snapshot.year, month=snapshot.month, data=dict(snapshot.data or {}))


@dataclass
class PlanningContext:
    """Per-request inputs shared by every strategy"""

    realm_id: str
    today: date
    session: Session
    config: QueryPlannerConfig
    usage: TokenUsage = field(default_factory=TokenUsage)
    coverage: float = 0.0


@dataclass
class QueryPlan:
    """Outcome of planning: the winning strategy and its rows"""

    rows: List[SnapshotRow]
    strategy: Optional[str]
    coverage: float

    @property
    def months(self) -> List[str]:
        return [row.label for row in self.rows]


class QueryStrategy(ABC):
    """One way of turning a question into snapshot rows"""

    name = "base"

    @abstractmethod
    async def try_resolve(
        self, question: str, context: PlanningContext
    ) -> Optional[List[SnapshotRow]]:
        """Return rows, or None/empty to let the next strategy try"""
        raise NotImplementedError


def _snapshot_query(realm_id: str):
    return select(MonthlySnapshot).where(MonthlySnapshot.realm_id == realm_id)


class DirectGenerationStrategy(QueryStrategy):
    """Ask the LLM for a bounded SELECT and run it"""

    name = "direct_sql"

    def __init__(self, generator: SQLGenerator):
        self.generator = generator

    async def try_resolve(self, question, context):
        try:
            generated = await self.generator.generate_sql(question, context.today, context.usage)
            raw_rows = self.generator.execute_sql(
                generated["sql"], context.session, {"realm_id": context.realm_id}
            )
        except (LLMProviderError, ValueError, SQLAlchemyError) as exc:
            logger.info(f"Direct generation unavailable, falling back: {exc}")
            return None

        scoped = [raw for raw in raw_rows if raw.get("realm_id") == context.realm_id]
        if len(scoped) != len(raw_rows):
            logger.warning(
                f"Generated query returned {len(raw_rows) - len(scoped)} rows outside the realm; dropped"
            )

        rows: List[SnapshotRow] = []
        for raw in scoped[: context.config.max_sql_results]:
            try:
                data = raw.get("data")
                rows.append(
                    SnapshotRow(
                        year=int(raw["year"]),
                        month=int(raw["month"]),
                        data=data if isinstance(data, dict) else {},
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.info("Generated query returned rows without year/month; discarding")
                return None
        return rows


class CurrentMonthStrategy(QueryStrategy):
    """The caller's current calendar month"""

    name = "current_month"

    async def try_resolve(self, question, context):
        stmt = (
            _snapshot_query(context.realm_id)
            .where(
                MonthlySnapshot.year == context.today.year,
                MonthlySnapshot.month == context.today.month,
            )
            .limit(context.config.max_sql_results)
        )
        return [SnapshotRow.from_model(s) for s in context.session.execute(stmt).scalars()]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0.0 for mismatched or zero vectors"""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class SemanticSearchStrategy(QueryStrategy):
    """Top-K snapshots by embedding similarity, when enough months are embedded"""

    name = "semantic"

    def __init__(self, embedder: Optional[EmbeddingClient]):
        self.embedder = embedder

    async def try_resolve(self, question, context):
        if self.embedder is None:
            return None
        if context.coverage < context.config.coverage_min:
            logger.info(
                f"Embedding coverage {context.coverage:.2f} below "
                f"{context.config.coverage_min:.2f}; skipping semantic search"
            )
            return None

        try:
            query_vector = await self.embedder.embed(question)
        except LLMProviderError as exc:
            logger.warning(f"Question embedding failed: {exc}")
            return None

        first_year = context.today.year - context.config.semantic_lookback_years
        stmt = _snapshot_query(context.realm_id).where(
            MonthlySnapshot.embedding.is_not(None),
            MonthlySnapshot.year * 100 + MonthlySnapshot.month
            >= first_year * 100 + context.today.month,
        )
        scored = [
            (cosine_similarity(query_vector, snapshot.embedding or []), snapshot)
            for snapshot in context.session.execute(stmt).scalars()
        ]
        scored.sort(key=lambda pair: pair[0], reverse=True)
        top_k = min(context.config.match_count, context.config.max_sql_results)
        best = [snapshot for _, snapshot in scored[:top_k]]
        best.sort(key=lambda s: (s.year, s.month))
        return [SnapshotRow.from_model(s) for s in best]


class RecentMonthsStrategy(QueryStrategy):
    """The complete months immediately before the current one"""

    name = "recent_months"

    async def try_resolve(self, question, context):
        count = min(context.config.recent_months, context.config.max_sql_results)
        months = [
            shift_month(context.today.year, context.today.month, -offset)
            for offset in range(count, 0, -1)
        ]
        stmt = (
            _snapshot_query(context.realm_id)
            .where(
                or_(
                    *(
                        and_(MonthlySnapshot.year == year, MonthlySnapshot.month == month)
                        for year, month in months
                    )
                )
            )
            .order_by(MonthlySnapshot.year, MonthlySnapshot.month)
            .limit(context.config.max_sql_results)
        )
        return [SnapshotRow.from_model(s) for s in context.session.execute(stmt).scalars()]


def embedding_coverage(session: Session, realm_id: str) -> float:
    """Fraction of the realm's snapshots that carry an embedding"""
    total, embedded = session.execute(
        select(
            func.count(MonthlySnapshot.id),
            func.count(MonthlySnapshot.embedding),
        ).where(MonthlySnapshot.realm_id == realm_id)
    ).one()
    return (embedded or 0) / total if total else 0.0


class QueryPlanner:
    """Runs the strategies in order and stops at the first non-empty result"""

    def __init__(self, strategies: Sequence[QueryStrategy]):
        self.strategies = list(strategies)

    @classmethod
    def default(
        cls, generator: Optional[SQLGenerator], embedder: Optional[EmbeddingClient]
    ) -> "QueryPlanner":
        strategies: List[QueryStrategy] = []
        if generator is not None:
            strategies.append(DirectGenerationStrategy(generator))
        strategies.extend(
            [CurrentMonthStrategy(), SemanticSearchStrategy(embedder), RecentMonthsStrategy()]
        )
        return cls(strategies)

    async def plan(self, question: str, context: PlanningContext) -> QueryPlan:
        context.coverage = embedding_coverage(context.session, context.realm_id)

        for strategy in self.strategies:
            rows = await strategy.try_resolve(question, context)
            if rows:
                logger.info(f"Strategy {strategy.name} resolved {len(rows)} month(s)")
                return QueryPlan(
                    rows=rows[: context.config.max_sql_results],
                    strategy=strategy.name,
                    coverage=context.coverage,
                )
            logger.debug(f"Strategy {strategy.name} returned no rows")

        return QueryPlan(rows=[], strategy=None, coverage=context.coverage)
