from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from kidledger.clock import ManualClock
from kidledger.ops import StructuredLogger
from kidledger.service import KidLedger
from kidledger.storage import MemoryStore
from kidledger.webapp import create_app


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger(clock: ManualClock) -> KidLedger:
    return KidLedger(MemoryStore(), clock=clock, logger=StructuredLogger())


@pytest.fixture
def client(ledger: KidLedger) -> TestClient:
    return TestClient(create_app(ledger, run_scheduler=False))


def onboard(client: TestClient, password: str = "2468") -> None:
    response = client.post(
        "/api/profile",
        data={"parent_name": "Sam", "child_name": "Mia", "parental_password": password},
    )
    assert response.status_code == 200
    assert response.json()["first_launch"] is False


def test_first_launch_onboarding_unlocks_parent(client: TestClient, ledger: KidLedger) -> None:
    assert client.get("/api/profile").json() == {"first_launch": True, "parent": False, "profile": None}
    onboard(client)
    body = client.get("/api/profile").json()
    assert body["parent"] is True
    assert body["profile"]["child_name"] == "Mia"
    assert "parental_password" not in body["profile"]
    assert ledger.verify_parental_password("2468")


def test_parent_only_routes_require_login(client: TestClient) -> None:
    onboard(client)
    client.post("/api/parent/logout")

    denied = client.post("/api/income", data={"amount": "20"})
    assert denied.status_code == 401
    assert denied.json()["error"] == "parent_required"

    wrong = client.post("/api/parent/login", data={"password": "0000"})
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Incorrect password. Please try again."

    assert client.post("/api/parent/login", data={"password": "2468"}).json() == {"parent": True}
    funded = client.post("/api/income", data={"amount": "20", "title": "Weekly"})
    assert funded.status_code == 200
    assert funded.json()["balance"] == 20.0
    assert funded.json()["transaction"]["title"] == "Weekly"


def test_deposit_flow_over_http(client: TestClient, clock: ManualClock) -> None:
    onboard(client)
    client.post("/api/income", data={"amount": "100"})

    created = client.post("/api/deposits", data={"amount": "60", "term_months": "1"})
    assert created.status_code == 200
    deposit = created.json()["deposit"]
    assert deposit["total_return"] == 60.5
    assert deposit["term_label"] == "1 month"
    assert created.json()["available_balance"] == 40.0
    assert created.json()["total_savings"] == 60.0

    clock.advance(days=30)
    checked = client.post("/api/deposits/check").json()
    assert checked["credited"] == 1
    assert checked["available_balance"] == 100.5
    assert client.post("/api/deposits/check").json()["credited"] == 0

    withdrawn = client.post(f"/api/deposits/{deposit['id']}/withdraw")
    assert withdrawn.json()["deposit"]["status"] == "withdrawn"
    assert withdrawn.json()["balance"] == 100.5

    listed = client.get("/api/deposits").json()["deposits"]
    assert [item["status"] for item in listed] == ["withdrawn"]


def test_validation_errors_map_to_translated_responses(client: TestClient, ledger: KidLedger) -> None:
    onboard(client)
    client.post("/api/income", data={"amount": "10"})

    too_much = client.post("/api/spend", data={"amount": "11", "category": "Food"})
    assert too_much.status_code == 400
    assert too_much.json() == {"error": "insufficient_funds", "message": "Not enough money for this."}

    ledger.set_language("zh-Hant")
    bad_term = client.post("/api/deposits", data={"amount": "5", "term_months": "-1"})
    assert bad_term.status_code == 400
    assert bad_term.json() == {"error": "invalid_term", "message": "請選擇有效的存款期。"}

    missing = client.post("/api/deposits/dep_missing/withdraw")
    assert missing.status_code == 404
    assert missing.json()["error"] == "deposit_not_found"

    assert client.get("/api/balance").json()["balance"] == 10.0


def test_rate_management(client: TestClient) -> None:
    onboard(client)
    updated = client.post("/api/rates", data={"rate_1": "12", "rate_0.25": "0", "default_rate": "4"})
    assert updated.status_code == 200
    rates = {row["term_months"]: row["rate"] for row in client.get("/api/rates").json()["rates"]}
    assert rates == {0.25: 0.0, 0.5: 7.0, 1.0: 12.0, 3.0: 15.0}

    rejected = client.post("/api/rates", data={"rate_1": "80"})
    assert rejected.status_code == 400
    assert rejected.json()["error"] == "invalid_rate"


def test_spending_summary_and_export(client: TestClient) -> None:
    onboard(client)
    client.post("/api/income", data={"amount": "50"})
    spent = client.post("/api/spend", data={"amount": "12.5", "category": "Food", "title": "Pizza"})
    assert spent.status_code == 200
    assert spent.json()["balance"] == 37.5

    summary = client.get("/api/summary").json()
    assert summary["month_spent"] == 12.5
    assert summary["top_categories"] == [["Food", 12.5, 100.0]]

    history = client.get("/api/transactions", params={"limit": 1}).json()["transactions"]
    assert [tx["title"] for tx in history] == ["Pizza"]

    csv_response = client.get("/api/transactions.csv")
    assert csv_response.headers["content-type"].startswith("text/csv")
    assert "Pizza" in csv_response.text


def test_reset_returns_to_onboarding(client: TestClient, ledger: KidLedger) -> None:
    onboard(client)
    client.post("/api/income", data={"amount": "5"})
    reset = client.post("/api/reset")
    assert reset.status_code == 200
    assert reset.json()["balance"] == 0.0
    assert ledger.is_first_launch
    assert client.get("/api/profile").json()["parent"] is False


def test_health_reports_store_state(client: TestClient) -> None:
    health = client.get("/health").json()
    assert health["store"] == "ok"
    assert health["saved"] is True
    assert health["scheduler"] == "stopped"


def test_parent_actions_are_audited(client: TestClient, clock: ManualClock) -> None:
    assert client.get("/api/audit").status_code == 401
    onboard(client)
    funded = client.post("/api/income", data={"amount": "20"})
    assert funded.json()["message"] == "HK$20.00 added."

    events = client.get("/api/audit").json()["events"]
    assert [event["action"] for event in events] == ["add_income", "update_profile"]
    assert events[0]["details"] == {"amount": "20.00"}
    assert events[0]["timestamp"] == clock().isoformat()


def test_oversized_numbers_are_client_errors(client: TestClient) -> None:
    onboard(client)
    client.post("/api/income", data={"amount": "10"})

    long_term = client.post("/api/deposits", data={"amount": "5", "term_months": "1000000"})
    assert long_term.status_code == 400
    assert long_term.json()["error"] == "invalid_term"

    huge = client.post("/api/spend", data={"amount": "1e30", "category": "Food"})
    assert huge.status_code == 400
    assert huge.json()["error"] == "invalid_amount"
    assert client.get("/api/deposits").json()["deposits"] == []
    assert client.get("/api/balance").json()["balance"] == 10.0


def test_rejected_rate_update_changes_nothing(client: TestClient, ledger: KidLedger) -> None:
    onboard(client)
    before = ledger.interest_rates()

    rejected = client.post("/api/rates", data={"default_rate": "8", "rate_2": "9"})
    assert rejected.status_code == 400
    assert rejected.json()["error"] == "invalid_term"

    rejected = client.post("/api/rates", data={"default_rate": "8", "rate_1": "51"})
    assert rejected.status_code == 400
    assert rejected.json()["error"] == "invalid_rate"

    assert ledger.profile.interest_rate == Decimal("5.0")
    assert ledger.interest_rates() == before
