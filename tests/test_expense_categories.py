import asyncio
from datetime import date
from decimal import Decimal

import pytest

from app.quickbooks import CredentialStore, TokenLifecycleManager, TransientUpstreamError
from app.services.expense_categories import ExpenseCategoryService

from fakes import USER_ID, data_row, fuel_report, profit_and_loss

TODAY = date(2024, 6, 15)
MAY = ("2024-05-01", "2024-05-31")
APRIL = ("2024-04-01", "2024-04-30")


@pytest.fixture()
def service(session, fake_qbo, settings):
    client = fake_qbo.client(settings.quickbooks)
    tokens = TokenLifecycleManager(CredentialStore(session), client)
    return ExpenseCategoryService(tokens, client, today=lambda: TODAY)


def test_last_month_fuel_is_reported_once(service, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.reports[MAY] = fuel_report(500, generated_at="2024-06-01T08:00:00Z")
    fake_qbo.reports[APRIL] = fuel_report(350)

    result = asyncio.run(service.get_categories(USER_ID, "last_month"))

    body = result.model_dump(by_alias=True)
    assert body["categories"] == [
        {"name": "Fuel", "accountId": "7", "current": 500.0, "previous": 350.0, "share": 1.0}
    ]
    assert body["total"] == {"current": 500.0, "previous": 350.0}
    assert body["lastSyncAt"] == "2024-06-01T08:00:00Z"
    assert body["range"] == {
        "start": "2024-05-01",
        "end": "2024-05-31",
        "prevStart": "2024-04-01",
        "prevEnd": "2024-04-30",
    }


def test_categories_are_sorted_and_shares_sum_to_one(service, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.reports[MAY] = profit_and_loss(
        revenue=1000,
        net_income=0,
        expenses=[
            data_row("Fuel", 250, "7"),
            data_row("Rent", 750, "12"),
        ],
    )
    fake_qbo.reports[APRIL] = profit_and_loss(
        revenue=1000, net_income=900, expenses=[data_row("Legal", 100, "5")]
    )

    result = asyncio.run(service.get_categories(USER_ID, "last_month"))

    assert [c.account_id for c in result.categories] == ["12", "7", "5"]
    assert sum(c.share for c in result.categories) == Decimal("1")
    assert result.categories[-1].current == 0


def test_either_report_failing_propagates(service, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.reports[MAY] = fuel_report(500)
    fake_qbo.reports[APRIL] = 503

    with pytest.raises(TransientUpstreamError):
        asyncio.run(service.get_categories(USER_ID, "last_month"))


def test_unlinked_user_is_disconnected(service) -> None:
    result = asyncio.run(service.get_categories("nobody", "this_month"))

    assert result.connected is False
    assert result.categories == []
