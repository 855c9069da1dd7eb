from decimal import Decimal

import pytest

from app.reporting import (
    aggregate,
    merge_categories,
    parse_report,
    report_totals,
)
from app.reporting.report_tree import (
    DataRow,
    NodeKind,
    Section,
    SummaryRow,
    classify_node,
    find_expense_sections,
    parse_amount,
)

from fakes import data_row, fuel_report, profit_and_loss, section


def test_nested_leaf_is_counted_once_despite_total_rows() -> None:
    report = parse_report(fuel_report(500))

    breakdown = aggregate(report)

    assert breakdown.grand_total == Decimal("500.00")
    assert list(breakdown.categories) == ["7"]
    assert breakdown.categories["7"].name == "Fuel"
    assert breakdown.categories["7"].amount == Decimal("500.00")


def test_merge_yields_single_fuel_category() -> None:
    current = aggregate(parse_report(fuel_report(500)))
    previous = aggregate(parse_report(fuel_report(300)))

    merged = merge_categories(current, previous)

    assert len(merged) == 1
    fuel = merged[0]
    assert (fuel.name, fuel.account_id) == ("Fuel", "7")
    assert fuel.current == Decimal("500.00")
    assert fuel.previous == Decimal("300.00")
    assert fuel.share == Decimal("1")


def test_total_row_with_account_id_is_still_excluded() -> None:
    payload = profit_and_loss(
        revenue=1000,
        net_income=600,
        expenses=[
            data_row("Rent", 400, "12"),
            data_row("Total Rent", 400, "12"),
            data_row("Subtotal Rent", 400, "12"),
        ],
    )

    breakdown = aggregate(parse_report(payload))

    assert breakdown.categories["12"].amount == Decimal("400.00")


def test_aggregate_sums_accounts_across_expense_sections_and_keeps_first_label() -> None:
    payload = profit_and_loss(
        revenue=3000,
        net_income=1000,
        expenses=[
            section("Cost of Goods Sold", [data_row("Materials", 700, "30")]),
            data_row("Materials (legacy)", 300, "30"),
            data_row("Advertising", 1000, "44"),
            data_row("Uncategorized", 50),
        ],
    )

    breakdown = aggregate(parse_report(payload))

    assert breakdown.categories["30"].name == "Materials"
    assert breakdown.categories["30"].amount == Decimal("1000.00")
    assert breakdown.categories["44"].amount == Decimal("1000.00")
    assert breakdown.grand_total == Decimal("2000.00")


def test_aggregate_is_repeatable() -> None:
    report = parse_report(fuel_report(125))

    assert aggregate(report) == aggregate(report)


def test_report_totals_include_other_income() -> None:
    payload = profit_and_loss(
        revenue=1200,
        net_income=450,
        expenses=[data_row("Rent", 800, "12")],
        other_income=50,
    )

    totals = report_totals(parse_report(payload))

    assert totals.revenue == Decimal("1250.00")
    assert totals.net_income == Decimal("450.00")
    assert totals.expenses == totals.revenue - totals.net_income


def test_report_totals_of_empty_report_are_zero() -> None:
    totals = report_totals(parse_report({}))

    assert (totals.revenue, totals.expenses, totals.net_income) == (0, 0, 0)


def test_parse_report_keeps_header_metadata() -> None:
    payload = profit_and_loss(revenue=10, net_income=10)
    payload["Header"].update({"StartPeriod": "2024-05-01", "EndPeriod": "2024-05-31"})

    report = parse_report(payload)

    assert report.generated_at == "2024-06-15T09:30:00-07:00"
    assert (report.start_period, report.end_period) == ("2024-05-01", "2024-05-31")


def test_untyped_row_with_col_data_parses_as_data() -> None:
    report = parse_report(
        {"Rows": {"Row": [{"ColData": [{"value": "Postage", "id": "61"}, {"value": "12.5"}]}]}}
    )

    assert report.rows == (DataRow(label="Postage", raw_id="61", amount=Decimal("12.5")),)


def test_find_expense_sections_returns_outermost_match() -> None:
    report = parse_report(fuel_report(10))

    labels = [s.label for s in find_expense_sections(report.rows)]

    assert labels == ["Expenses"]


@pytest.mark.parametrize(
    "node, kind",
    [
        (Section(label="Other Expenses"), NodeKind.EXPENSE_SECTION),
        (Section(label="Cost of Goods Sold"), NodeKind.EXPENSE_SECTION),
        (Section(label="Income"), NodeKind.SECTION),
        (DataRow(label="Fuel", raw_id="7", amount=Decimal("1")), NodeKind.LEAF),
        (DataRow(label="Total Vehicle", raw_id=None, amount=Decimal("1")), NodeKind.TOTAL_ROW),
        (DataRow(label="Totals Ltd", raw_id="9", amount=Decimal("1")), NodeKind.LEAF),
        (SummaryRow(label="Total Income", amount=Decimal("1")), NodeKind.INCOME_SUMMARY),
        (SummaryRow(label="Income", amount=Decimal("1")), NodeKind.INCOME_SUMMARY),
        (SummaryRow(label="Total Other Income", amount=Decimal("1")), NodeKind.OTHER_INCOME_SUMMARY),
        (SummaryRow(label="Net Income", amount=Decimal("1")), NodeKind.NET_INCOME_SUMMARY),
        (SummaryRow(label="Net Operating Income", amount=Decimal("1")), NodeKind.SUMMARY),
    ],
)
def test_classify_node(node, kind) -> None:
    assert classify_node(node) is kind


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,234.56", Decimal("1234.56")),
        ("-80.00", Decimal("-80.00")),
        ("", Decimal("0")),
        (None, Decimal("0")),
        ("n/a", Decimal("0")),
        (12, Decimal("12")),
    ],
)
def test_parse_amount(raw, expected) -> None:
    assert parse_amount(raw) == expected


def test_account_id_is_first_digit_run() -> None:
    assert DataRow(label="x", raw_id="acct-42-b", amount=Decimal("0")).account_id == "42"
    assert DataRow(label="x", raw_id="none", amount=Decimal("0")).account_id is None


def test_merge_includes_accounts_only_seen_previously_and_sorts_by_current() -> None:
    current = aggregate(
        parse_report(
            profit_and_loss(
                revenue=1000,
                net_income=0,
                expenses=[data_row("Rent", 600, "1"), data_row("Fuel", 400, "7")],
            )
        )
    )
    previous = aggregate(
        parse_report(
            profit_and_loss(revenue=1000, net_income=800, expenses=[data_row("Legal", 200, "5")])
        )
    )

    merged = merge_categories(current, previous)

    assert [m.account_id for m in merged] == ["1", "7", "5"]
    assert merged[-1].current == 0
    assert merged[-1].previous == Decimal("200.00")
    assert sum(m.share for m in merged) == Decimal("1")


def test_merge_with_zero_total_has_zero_shares() -> None:
    previous = aggregate(
        parse_report(
            profit_and_loss(revenue=100, net_income=50, expenses=[data_row("Rent", 50, "1")])
        )
    )
    current = aggregate(parse_report(profit_and_loss(revenue=0, net_income=0)))

    merged = merge_categories(current, previous)

    assert [m.share for m in merged] == [Decimal("0")]
