"""HTTP-level tests for the dashboard, company and question endpoints."""
from __future__ import annotations

import json
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from app.ai_chatbot.answer_stream import NO_DATA_MESSAGE
from app.ai_chatbot.router import get_today
from app.core.security import SecurityProvider, get_security_provider
from app.dependencies import (
    get_app_settings,
    get_db_sessionmaker,
    get_embedder,
    get_llm_provider,
    get_quickbooks_client,
)
from app.main import create_app
from app.models import QboToken, QueryLog

from fakes import REALM_ID, USER_ID, ScriptedProvider, fuel_report

TODAY = date(2024, 6, 15)


@pytest.fixture()
def llm() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture()
def client(session_factory, fake_qbo, settings, llm):
    app = create_app()
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_db_sessionmaker] = lambda: session_factory
    app.dependency_overrides[get_quickbooks_client] = lambda: fake_qbo.client(settings.quickbooks)
    app.dependency_overrides[get_security_provider] = lambda: SecurityProvider(settings.auth)
    app.dependency_overrides[get_llm_provider] = lambda: llm
    app.dependency_overrides[get_embedder] = lambda: None
    app.dependency_overrides[get_today] = lambda: TODAY
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def auth_headers(settings) -> dict[str, str]:
    token = SecurityProvider(settings.auth).create_access_token(USER_ID)
    return {"Authorization": f"Bearer {token}"}


def _events(response) -> list[dict]:
    frames = [frame for frame in response.text.split("\n\n") if frame.strip()]
    return [json.loads(frame[len("data: "):]) for frame in frames]


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_missing_bearer_token_is_rejected(client: TestClient) -> None:
    response = client.post("/api/dashboard/metrics", json={"period": "ytd"})

    assert response.status_code == 401
    assert response.json() == {"detail": "no_authorization"}


def test_invalid_bearer_token_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/dashboard/metrics",
        json={"period": "ytd"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401
    assert response.json() == {"detail": "unauthorized"}


def test_metrics_for_unlinked_user_report_disconnected(client, auth_headers) -> None:
    response = client.post("/api/dashboard/metrics", json={"period": "ytd"}, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["connected"] is False
    assert body["period"] == "ytd"


def test_metrics_return_camel_case_comparison(client, auth_headers, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.default_report = fuel_report(500)

    response = client.post(
        "/api/dashboard/metrics", json={"period": "last_month", "nonce": "n-1"}, headers=auth_headers
    )

    assert response.status_code == 200
    body = response.json()
    assert body["connected"] is True
    assert body["revenue"] == {"current": 2000.0, "previous": 2000.0}
    assert body["netProfit"]["current"] == 1500.0
    assert body["expenses"]["current"] == 500.0
    assert body["ytdSeries"] == []


@pytest.mark.parametrize("path", ["/api/dashboard/metrics", "/api/dashboard/expense-categories"])
def test_numeric_nonce_is_accepted(client, auth_headers, link_realm, fake_qbo, path) -> None:
    link_realm()
    fake_qbo.default_report = fuel_report(500)

    response = client.post(path, json={"period": "ytd", "nonce": 1729}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["connected"] is True


def test_rejected_refresh_returns_reauth_payload(
    client, auth_headers, link_realm, fake_qbo, session
) -> None:
    link_realm(expires_in=timedelta(minutes=-5))
    fake_qbo.token_response = (400, {"error": "invalid_grant"})

    response = client.post("/api/dashboard/metrics", json={"period": "ytd"}, headers=auth_headers)

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "qbo_reauth_required"
    assert body["connected"] is False
    assert body["message"]
    session.expire_all()
    assert session.execute(select(QboToken)).scalars().all() == []


def test_upstream_failure_returns_502(client, auth_headers, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.default_report = 503

    response = client.post(
        "/api/dashboard/expense-categories", json={"period": "this_month"}, headers=auth_headers
    )

    assert response.status_code == 502
    assert response.json()["error"] == "upstream_unavailable"


def test_unreadable_report_body_returns_502(client, auth_headers, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.default_report = "<html>Scheduled maintenance</html>"

    response = client.post("/api/dashboard/metrics", json={"period": "ytd"}, headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["error"] == "upstream_unavailable"


def test_expense_categories_endpoint(client, auth_headers, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.default_report = fuel_report(500)

    response = client.post(
        "/api/dashboard/expense-categories", json={"period": "last_month"}, headers=auth_headers
    )

    assert response.status_code == 200
    body = response.json()
    assert [c["accountId"] for c in body["categories"]] == ["7"]
    assert body["categories"][0]["name"] == "Fuel"
    assert body["lastSyncAt"] == "2024-06-15T09:30:00-07:00"


def test_company_name(client, auth_headers, link_realm, fake_qbo) -> None:
    link_realm()
    fake_qbo.company = {"CompanyName": "", "LegalName": "Acme Books LLC"}

    response = client.post("/api/company", json={}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "connected": True,
        "companyName": "Acme Books LLC",
        "realmId": REALM_ID,
    }


def test_company_for_unlinked_user(client, auth_headers) -> None:
    response = client.post("/api/company", json={"realmId": "r-9"}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["connected"] is False


@pytest.mark.parametrize(
    "payload",
    [
        {"query": "How was June?", "userId": USER_ID},
        {"query": "", "realmId": REALM_ID, "userId": USER_ID},
        {"realmId": REALM_ID, "userId": USER_ID},
    ],
)
def test_query_validates_body(client, auth_headers, payload) -> None:
    response = client.post("/api/query", json=payload, headers=auth_headers)

    assert response.status_code == 422


def test_query_rejects_other_users(client, auth_headers, link_realm) -> None:
    link_realm()

    response = client.post(
        "/api/query",
        json={"query": "How was June?", "realmId": REALM_ID, "userId": "someone-else"},
        headers=auth_headers,
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "user_mismatch"}


def test_query_rejects_unlinked_realm(client, auth_headers, link_realm) -> None:
    link_realm()

    response = client.post(
        "/api/query",
        json={"query": "How was June?", "realmId": "realm-9", "userId": USER_ID},
        headers=auth_headers,
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "realm_not_linked"}


def test_streamed_answer(client, auth_headers, link_realm, add_snapshot, llm, session) -> None:
    link_realm()
    add_snapshot(2024, 6)
    llm.fragments = ["June ", "was ", "good."]

    response = client.post(
        "/api/query",
        json={"query": "How was June?", "realmId": REALM_ID, "userId": USER_ID, "stream": True},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    events = _events(response)
    assert [e["type"] for e in events] == ["token", "token", "token", "done"]
    assert events[-1]["months"] == ["2024-06"]
    session.expire_all()
    (entry,) = session.execute(select(QueryLog)).scalars().all()
    assert entry.answer == "June was good."
    assert entry.streamed is True


def test_streamed_answer_without_data(client, auth_headers, link_realm, llm) -> None:
    link_realm()

    response = client.post(
        "/api/query",
        json={"query": "How was June?", "realmId": REALM_ID, "userId": USER_ID, "stream": True},
        headers=auth_headers,
    )

    assert _events(response) == [
        {"type": "token", "content": NO_DATA_MESSAGE},
        {"type": "done", "months": []},
    ]
    assert llm.stream_calls == 0


def test_json_answer(client, auth_headers, link_realm, add_snapshot, llm) -> None:
    link_realm()
    add_snapshot(2024, 6)
    llm.replies = [
        {
            "sql": "SELECT realm_id, year, month, data FROM monthly_snapshot WHERE realm_id = :realm_id "
            "AND year = 2024 AND month = 6 ORDER BY year, month LIMIT 1",
            "explanation": "June 2024",
        },
        "Revenue was 1,000.00 in June.",
    ]

    response = client.post(
        "/api/query",
        json={"query": "How was June?", "realmId": REALM_ID, "userId": USER_ID},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "Revenue was 1,000.00 in June."
    assert body["months"] == ["2024-06"]
    assert body["strategy"] == "direct_sql"
    assert body["tokens_in"] == 20


def test_json_answer_provider_failure_is_502(client, auth_headers, link_realm, add_snapshot) -> None:
    link_realm()
    add_snapshot(2024, 6)

    response = client.post(
        "/api/query",
        json={"query": "How was June?", "realmId": REALM_ID, "userId": USER_ID},
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert response.json() == {"detail": "answer_generation_failed"}
