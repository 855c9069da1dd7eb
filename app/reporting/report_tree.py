"""Flatten nested Profit & Loss report documents into account and period totals.

A report is a tree of sections. Each section may carry a header label, child
rows and a trailing summary row; data rows hold the leaf ledger accounts. The
payload is parsed once into the typed nodes below and every traversal goes
through :func:`classify_node`, which is the only place that interprets labels.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

ZERO = Decimal("0")

EXPENSE_SECTION_PATTERN = re.compile(r"expenses|cost of goods sold", re.IGNORECASE)
TOTAL_ROW_PATTERN = re.compile(r"^(total|subtotal)\s", re.IGNORECASE)
INCOME_SUMMARY_PATTERN = re.compile(r"^(total\s+)?income$", re.IGNORECASE)
OTHER_INCOME_SUMMARY_PATTERN = re.compile(r"^(total\s+)?other\s+income$", re.IGNORECASE)
NET_INCOME_SUMMARY_PATTERN = re.compile(r"^net\s+income$", re.IGNORECASE)
ACCOUNT_ID_PATTERN = re.compile(r"\d+")


@dataclass(frozen=True)
class SummaryRow:
    label: str
    amount: Decimal


@dataclass(frozen=True)
class DataRow:
    label: str
    raw_id: Optional[str]
    amount: Decimal

    @property
    def account_id(self) -> Optional[str]:
        """First run of digits in the row's id, or ``None`` when it has none."""

        if not self.raw_id:
            return None
        match = ACCOUNT_ID_PATTERN.search(self.raw_id)
        return match.group(0) if match else None


@dataclass(frozen=True)
class Section:
    label: str
    children: tuple["ReportNode", ...] = ()
    summary: Optional[SummaryRow] = None
    group: Optional[str] = None


ReportNode = Union[Section, DataRow, SummaryRow]


@dataclass(frozen=True)
class ReportDocument:
    """Parsed report with the metadata the dashboard echoes back."""

    rows: tuple[ReportNode, ...] = ()
    generated_at: Optional[str] = None
    start_period: Optional[str] = None
    end_period: Optional[str] = None


class NodeKind(str, Enum):
    EXPENSE_SECTION = "expense_section"
    SECTION = "section"
    LEAF = "leaf"
    TOTAL_ROW = "total_row"
    INCOME_SUMMARY = "income_summary"
    OTHER_INCOME_SUMMARY = "other_income_summary"
    NET_INCOME_SUMMARY = "net_income_summary"
    SUMMARY = "summary"


@dataclass(frozen=True)
class AccountTotal:
    name: str
    amount: Decimal


@dataclass(frozen=True)
class ExpenseBreakdown:
    grand_total: Decimal = ZERO
    categories: dict[str, AccountTotal] = field(default_factory=dict)


@dataclass(frozen=True)
class ReportTotals:
    revenue: Decimal = ZERO
    expenses: Decimal = ZERO
    net_income: Decimal = ZERO


@dataclass(frozen=True)
class CategoryTotal:
    name: str
    account_id: str
    current: Decimal
    previous: Decimal
    share: Decimal


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_amount(value: Any) -> Decimal:
    """Convert a report cell to ``Decimal``; blanks and garbage become zero."""

    if value is None:
        return ZERO
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    text = str(value).strip().replace(",", "")
    if not text:
        return ZERO
    try:
        return Decimal(text)
    except InvalidOperation:
        return ZERO


def _col_data(row: Mapping[str, Any] | None) -> list[Mapping[str, Any]]:
    if not isinstance(row, Mapping):
        return []
    cols = row.get("ColData")
    return [c for c in cols if isinstance(c, Mapping)] if isinstance(cols, list) else []


def _cell_label(cols: list[Mapping[str, Any]]) -> str:
    if not cols:
        return ""
    first = cols[0]
    return str(first.get("value") or first.get("id") or "").strip()


def _parse_summary(raw: Mapping[str, Any] | None) -> Optional[SummaryRow]:
    cols = _col_data(raw)
    if not cols:
        return None
    return SummaryRow(label=_cell_label(cols), amount=parse_amount(cols[-1].get("value")))


def _parse_node(raw: Mapping[str, Any]) -> Optional[ReportNode]:
    row_type = str(raw.get("type") or "").lower()
    nested = raw.get("Rows")
    is_section = row_type == "section" or (
        row_type != "data" and any(key in raw for key in ("Header", "Rows", "Summary"))
    )
    if is_section:
        children = _parse_rows(nested.get("Row") if isinstance(nested, Mapping) else None)
        return Section(
            label=_cell_label(_col_data(raw.get("Header"))),
            children=children,
            summary=_parse_summary(raw.get("Summary")),
            group=raw.get("group"),
        )

    cols = _col_data(raw)
    if not cols:
        return None
    first = cols[0]
    raw_id = first.get("id")
    return DataRow(
        label=_cell_label(cols),
        raw_id=str(raw_id) if raw_id is not None else None,
        amount=parse_amount(cols[-1].get("value")),
    )


def _parse_rows(rows: Any) -> tuple[ReportNode, ...]:
    if not isinstance(rows, list):
        return ()
    parsed = (_parse_node(row) for row in rows if isinstance(row, Mapping))
    return tuple(node for node in parsed if node is not None)


def parse_report(payload: Mapping[str, Any] | None) -> ReportDocument:
    """Build a :class:`ReportDocument` from the accounting API's JSON body."""

    if not isinstance(payload, Mapping):
        return ReportDocument()
    header = payload.get("Header") if isinstance(payload.get("Header"), Mapping) else {}
    rows = payload.get("Rows")
    return ReportDocument(
        rows=_parse_rows(rows.get("Row") if isinstance(rows, Mapping) else None),
        generated_at=header.get("Time"),
        start_period=header.get("StartPeriod"),
        end_period=header.get("EndPeriod"),
    )


# ---------------------------------------------------------------------------
# Classification and traversal
# ---------------------------------------------------------------------------


def classify_node(node: ReportNode) -> NodeKind:
    """Decide what role a node plays in aggregation."""

    if isinstance(node, Section):
        if EXPENSE_SECTION_PATTERN.search(node.label):
            return NodeKind.EXPENSE_SECTION
        return NodeKind.SECTION
    if isinstance(node, SummaryRow):
        label = node.label.strip()
        if NET_INCOME_SUMMARY_PATTERN.match(label):
            return NodeKind.NET_INCOME_SUMMARY
        if OTHER_INCOME_SUMMARY_PATTERN.match(label):
            return NodeKind.OTHER_INCOME_SUMMARY
        if INCOME_SUMMARY_PATTERN.match(label):
            return NodeKind.INCOME_SUMMARY
        return NodeKind.SUMMARY
    if TOTAL_ROW_PATTERN.match(node.label):
        return NodeKind.TOTAL_ROW
    return NodeKind.LEAF


def find_expense_sections(nodes: Iterable[ReportNode]) -> Iterator[Section]:
    """Yield the outermost sections labelled as expenses or cost of goods sold."""

    for node in nodes:
        if not isinstance(node, Section):
            continue
        if classify_node(node) is NodeKind.EXPENSE_SECTION:
            yield node
        else:
            yield from find_expense_sections(node.children)


def collect_leaf_rows(nodes: Iterable[ReportNode]) -> Iterator[DataRow]:
    """Yield every leaf account row beneath ``nodes``, at any depth."""

    for node in nodes:
        if isinstance(node, Section):
            yield from collect_leaf_rows(node.children)
        elif classify_node(node) is NodeKind.LEAF:
            yield node


def iter_summaries(nodes: Iterable[ReportNode]) -> Iterator[SummaryRow]:
    for node in nodes:
        if isinstance(node, SummaryRow):
            yield node
        elif isinstance(node, Section):
            yield from iter_summaries(node.children)
            if node.summary is not None:
                yield node.summary


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate(report: ReportDocument) -> ExpenseBreakdown:
    """Sum expense leaf rows per account id.

    Rows without a numeric account id are dropped; the first label seen for an
    account is kept as its display name.
    """

    names: dict[str, str] = {}
    amounts: dict[str, Decimal] = {}
    for section in find_expense_sections(report.rows):
        for row in collect_leaf_rows(section.children):
            account_id = row.account_id
            if account_id is None:
                continue
            names.setdefault(account_id, row.label)
            amounts[account_id] = amounts.get(account_id, ZERO) + row.amount

    categories = {
        account_id: AccountTotal(name=names[account_id], amount=amount)
        for account_id, amount in amounts.items()
    }
    grand_total = sum(amounts.values(), ZERO)
    return ExpenseBreakdown(grand_total=grand_total, categories=categories)


def report_totals(report: ReportDocument) -> ReportTotals:
    """Return revenue, expenses and net income from the report's summary rows.

    Revenue is Income plus Other Income. Expenses are derived as revenue minus
    net income so that every expense-like line (cost of goods sold, other
    expenses) is included.
    """

    income = other_income = net_income = ZERO
    for summary in iter_summaries(report.rows):
        kind = classify_node(summary)
        if kind is NodeKind.NET_INCOME_SUMMARY:
            net_income = summary.amount
        elif kind is NodeKind.OTHER_INCOME_SUMMARY:
            other_income = summary.amount
        elif kind is NodeKind.INCOME_SUMMARY:
            income = summary.amount

    revenue = income + other_income
    return ReportTotals(revenue=revenue, expenses=revenue - net_income, net_income=net_income)


def merge_categories(current: ExpenseBreakdown, previous: ExpenseBreakdown) -> list[CategoryTotal]:
    """Join two periods on account id and compute each account's share.

    Accounts missing from one side contribute zero there. The result is sorted
    by current amount, largest first.
    """

    account_ids = list(current.categories)
    account_ids.extend(a for a in previous.categories if a not in current.categories)

    merged: list[CategoryTotal] = []
    for account_id in account_ids:
        cur = current.categories.get(account_id)
        prev = previous.categories.get(account_id)
        cur_amount = cur.amount if cur else ZERO
        share = cur_amount / current.grand_total if current.grand_total > 0 else ZERO
        merged.append(
            CategoryTotal(
                name=(cur or prev).name,
                account_id=account_id,
                current=cur_amount,
                previous=prev.amount if prev else ZERO,
                share=share,
            )
        )
    merged.sort(key=lambda item: item.current, reverse=True)
    return merged
