import asyncio
from datetime import date
from decimal import Decimal

import pytest

from app.quickbooks import CredentialStore, TokenLifecycleManager, TransientUpstreamError
from app.services.dashboard_metrics import DashboardMetricsService, normalize_period

from fakes import USER_ID, data_row, profit_and_loss

TODAY = date(2024, 3, 20)


def _report(revenue, net_income):
    return profit_and_loss(
        revenue=revenue,
        net_income=net_income,
        expenses=[data_row("Rent", Decimal(str(revenue)) - Decimal(str(net_income)), "12")],
    )


@pytest.fixture()
def service(session, fake_qbo, settings):
    client = fake_qbo.client(settings.quickbooks)
    tokens = TokenLifecycleManager(CredentialStore(session), client)
    return DashboardMetricsService(tokens, client, today=lambda: TODAY)


@pytest.fixture()
def ytd_reports(fake_qbo):
    fake_qbo.reports.update(
        {
            ("2024-01-01", "2024-03-20"): _report(3000, 1200),
            ("2023-01-01", "2023-03-20"): _report(2500, 900),
            ("2024-01-01", "2024-01-31"): _report(1000, 400),
            ("2024-02-01", "2024-02-29"): _report(900, 300),
            ("2024-03-01", "2024-03-20"): _report(1100, 500),
        }
    )
    return fake_qbo


def test_ytd_metrics_compare_periods_and_build_series(service, link_realm, ytd_reports) -> None:
    link_realm()

    metrics = asyncio.run(service.get_metrics(USER_ID, "ytd"))

    assert metrics.connected is True
    assert metrics.revenue.current == Decimal("3000.00")
    assert metrics.revenue.previous == Decimal("2500.00")
    assert metrics.expenses.current == Decimal("1800.00")
    assert metrics.net_profit.current == Decimal("1200.00")
    assert metrics.net_profit.previous == Decimal("900.00")
    assert [p.name for p in metrics.ytd_series] == ["Jan", "Feb", "Mar"]
    assert metrics.ytd_series[1].expenses == Decimal("600.00")
    assert metrics.range.prev_end == "2023-03-20"
    assert metrics.last_sync_at is not None


def test_failed_month_is_dropped_from_series_in_order(service, link_realm, ytd_reports) -> None:
    link_realm()
    ytd_reports.reports[("2024-02-01", "2024-02-29")] = 503

    metrics = asyncio.run(service.get_metrics(USER_ID, "this_year"))

    assert [p.name for p in metrics.ytd_series] == ["Jan", "Mar"]
    assert metrics.revenue.current == Decimal("3000.00")


def test_comparator_failure_reports_zero_previous(service, link_realm, ytd_reports) -> None:
    link_realm()
    ytd_reports.reports[("2023-01-01", "2023-03-20")] = 500

    metrics = asyncio.run(service.get_metrics(USER_ID, "ytd"))

    assert metrics.revenue.current == Decimal("3000.00")
    assert metrics.revenue.previous == 0
    assert metrics.net_profit.previous == 0


def test_current_period_failure_propagates(service, link_realm, ytd_reports) -> None:
    link_realm()
    ytd_reports.reports[("2024-01-01", "2024-03-20")] = 502

    with pytest.raises(TransientUpstreamError):
        asyncio.run(service.get_metrics(USER_ID, "ytd"))


def test_month_periods_have_no_series(service, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.default_report = _report(100, 40)

    metrics = asyncio.run(service.get_metrics(USER_ID, "last_month"))

    assert metrics.ytd_series == []
    assert sorted(fake_qbo.report_ranges) == [("2024-01-01", "2024-01-31"), ("2024-02-01", "2024-02-29")]


def test_unlinked_user_gets_disconnected_metrics(service, fake_qbo) -> None:
    metrics = asyncio.run(service.get_metrics("nobody", "ytd"))

    assert metrics.connected is False
    assert metrics.revenue is None
    assert fake_qbo.requests == []


def test_invalid_period_falls_back_to_this_month(service, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.default_report = _report(100, 40)

    metrics = asyncio.run(service.get_metrics(USER_ID, "fortnight"))

    assert metrics.period == "this_month"
    assert metrics.range.start == "2024-03-01"
    assert normalize_period(None) == "this_month"


def test_metrics_serialize_with_wire_names(service, link_realm, ytd_reports) -> None:
    link_realm()

    body = asyncio.run(service.get_metrics(USER_ID, "ytd")).model_dump(by_alias=True)

    assert body["netProfit"] == {"current": 1200.0, "previous": 900.0}
    assert body["ytdSeries"][0] == {"name": "Jan", "revenue": 1000.0, "expenses": 600.0}
    assert set(body["range"]) == {"start", "end", "prevStart", "prevEnd"}
    assert "lastSyncAt" in body


def test_clock_is_read_once_per_request(session, fake_qbo, settings, link_realm) -> None:
    link_realm()
    fake_qbo.default_report = _report(100, 40)
    days = iter([date(2024, 3, 31), date(2024, 4, 1)])
    client = fake_qbo.client(settings.quickbooks)
    service = DashboardMetricsService(
        TokenLifecycleManager(CredentialStore(session), client), client, today=lambda: next(days)
    )

    metrics = asyncio.run(service.get_metrics(USER_ID, "ytd"))

    assert metrics.range.end == "2024-03-31"
    assert [p.name for p in metrics.ytd_series] == ["Jan", "Feb", "Mar"]
    assert ("2024-04-01", "2024-04-01") not in fake_qbo.report_ranges
