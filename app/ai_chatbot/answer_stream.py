"""
Answer Writing Module
Turns planned snapshot rows into an answer, streamed as server-sent events or
returned whole, and records every exchange through post-completion hooks
"""
import json
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from app.db.session import session_scope
from app.models import QueryLog

from .llm_providers import LLMProvider, LLMProviderError
from .query_planner import PlanningContext, QueryPlan, QueryPlanner, SnapshotRow

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = (
    "I couldn't find any synced data for this period. "
    "Try syncing your books or asking about a different month."
)
STREAM_ERROR_MESSAGE = "Something went wrong while generating the answer. Please try again."

ANSWER_SYSTEM_PROMPT = """You are a professional CFO financial advisor for a small business.
The data below are monthly Profit & Loss snapshots from the company's accounting system.
Revenues and expenses are positive amounts; net_income is revenue minus expenses.

Write a short, clear answer using ONLY the data provided. Mention the months you used.
Format currency with two decimals. If the data cannot answer the question, say so."""


def format_event(payload: Dict[str, Any]) -> str:
    """Frame one JSON payload as a server-sent event"""
    return f"data: {json.dumps(payload)}\n\n"


def build_answer_prompt(question: str, rows: Sequence[SnapshotRow]) -> str:
    data = [{"month": row.label, "data": row.data} for row in rows]
    return f"Question: {question}\n\nData:\n{json.dumps(data, indent=2, default=str)}"


@dataclass
class AnswerOutcome:
    """Everything the audit trail needs about one answered question"""

    user_id: str
    realm_id: str
    question: str
    streamed: bool
    answer: str = ""
    strategy: Optional[str] = None
    months: List[str] = field(default_factory=list)
    coverage: float = 0.0
    tokens_in: int = 0
    tokens_out: int = 0
    error: Optional[str] = None


class PostCompletionHook(ABC):
    """Runs after an answer is complete; failures never reach the caller"""

    @abstractmethod
    def record(self, outcome: AnswerOutcome) -> None:
        raise NotImplementedError


class QueryLogHook(PostCompletionHook):
    """Persist the exchange in the query_log table"""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory

    def record(self, outcome: AnswerOutcome) -> None:
        with session_scope(self.session_factory) as session:
            session.add(
                QueryLog(
                    user_id=outcome.user_id,
                    realm_id=outcome.realm_id,
                    question=outcome.question,
                    answer=outcome.answer,
                    strategy=outcome.strategy,
                    months=list(outcome.months),
                    tokens_in=outcome.tokens_in,
                    tokens_out=outcome.tokens_out,
                    streamed=outcome.streamed,
                    error=outcome.error,
                )
            )


def run_hooks(hooks: Sequence[PostCompletionHook], outcome: AnswerOutcome) -> None:
    for hook in hooks:
        try:
            hook.record(outcome)
        except Exception as exc:
            logger.warning(f"Post-completion hook {type(hook).__name__} failed: {exc}")


class _AnswerBase:
    def __init__(
        self,
        question: str,
        planner: QueryPlanner,
        context: PlanningContext,
        provider: Optional[LLMProvider],
        hooks: Sequence[PostCompletionHook] = (),
        *,
        user_id: str,
        streamed: bool,
    ):
        self.question = question
        self.planner = planner
        self.context = context
        self.provider = provider
        self.hooks = list(hooks)
        self.outcome = AnswerOutcome(
            user_id=user_id, realm_id=context.realm_id, question=question, streamed=streamed
        )

    async def _plan(self) -> QueryPlan:
        plan = await self.planner.plan(self.question, self.context)
        self.outcome.strategy = plan.strategy
        self.outcome.months = plan.months
        self.outcome.coverage = plan.coverage
        return plan

    def _require_provider(self) -> LLMProvider:
        if self.provider is None:
            raise LLMProviderError("No LLM provider configured")
        return self.provider

    def _capture_usage(self) -> None:
        self.outcome.tokens_in = self.context.usage.input_tokens
        self.outcome.tokens_out = self.context.usage.output_tokens


class StreamingAnswerEmitter(_AnswerBase):
    """Produces ``token`` events, then exactly one final ``done`` event.

    Any failure, including one raised mid-stream by the provider, is reported
    as an ``error`` event followed by ``done``. After a complete stream the
    caller runs :meth:`run_post_completion` once the response has been sent;
    a stream closed before ``done`` was consumed runs the hooks itself.
    """

    def __init__(self, *args: Any, **kwargs: Any):
        kwargs.setdefault("streamed", True)
        super().__init__(*args, **kwargs)
        self._hooks_ran = False

    async def events(self) -> AsyncIterator[str]:
        parts: List[str] = []
        finished = False
        try:
            try:
                async with aclosing(self._fragments()) as fragments:
                    async for fragment in fragments:
                        parts.append(fragment)
                        yield format_event({"type": "token", "content": fragment})
            except Exception as exc:
                logger.exception("Answer stream failed")
                self.outcome.error = str(exc) or type(exc).__name__
                yield format_event({"type": "error", "message": STREAM_ERROR_MESSAGE})
            yield format_event({"type": "done", "months": self.outcome.months})
            finished = True
        finally:
            self.outcome.answer = "".join(parts)
            self._capture_usage()
            if not finished:
                self.run_post_completion()

    async def _fragments(self) -> AsyncIterator[str]:
        plan = await self._plan()
        if not plan.rows:
            yield NO_DATA_MESSAGE
            return
        provider = self._require_provider()
        upstream = provider.stream(
            ANSWER_SYSTEM_PROMPT,
            build_answer_prompt(self.question, plan.rows),
            usage=self.context.usage,
        )
        async with aclosing(upstream) as fragments:
            async for fragment in fragments:
                yield fragment

    def run_post_completion(self) -> None:
        if self._hooks_ran:
            return
        self._hooks_ran = True
        run_hooks(self.hooks, self.outcome)


class AnswerWriter(_AnswerBase):
    """Non-streaming counterpart of :class:`StreamingAnswerEmitter`"""

    def __init__(self, *args: Any, **kwargs: Any):
        kwargs.setdefault("streamed", False)
        super().__init__(*args, **kwargs)

    async def answer(self) -> Dict[str, Any]:
        try:
            plan = await self._plan()
            if not plan.rows:
                self.outcome.answer = NO_DATA_MESSAGE
            else:
                response = await self._require_provider().query(
                    system_prompt=ANSWER_SYSTEM_PROMPT,
                    user_prompt=build_answer_prompt(self.question, plan.rows),
                    json_mode=False,
                )
                self.context.usage.add(response.get("usage"))
                self.outcome.answer = (response.get("content") or "").strip()
        except Exception as exc:
            self.outcome.error = str(exc) or type(exc).__name__
            raise
        finally:
            self._capture_usage()
            run_hooks(self.hooks, self.outcome)

        return {
            "response": self.outcome.answer,
            "rows_returned": len(self.outcome.months),
            "months": self.outcome.months,
            "tokens_in": self.outcome.tokens_in,
            "tokens_out": self.outcome.tokens_out,
            "coverage": self.outcome.coverage,
            "strategy": self.outcome.strategy,
        }
