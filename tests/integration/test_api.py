"""Integration tests for API endpoints"""

from datetime import timedelta
from unittest.mock import patch
from fastapi.testclient import TestClient
from collections_desk.config import settings
from conftest import TODAY


def create_case(client: TestClient, loan) -> dict:
    response = client.post("/v1/cases", json={"customerId": loan.customer_id, "loanId": loan.id})
    assert response.status_code == 201
    return response.json()


def assert_error(response, status_code: int, code: str) -> dict:
    assert response.status_code == status_code
    error = response.json()["error"]
    assert error["code"] == code
    assert error["message"]
    assert "details" in error
    assert error["timestamp"]
    assert error["requestId"] == response.headers["X-Request-ID"]
    return error


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient, make_loan):
    """Test Prometheus metrics endpoint"""
    create_case(client, make_loan())

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "collections_case_created_total" in response.text


def test_request_id_is_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_create_case_returns_camel_case_payload(client: TestClient, make_loan):
    """Test POST /v1/cases with the initial assignment decision"""
    loan = make_loan(days_past_due=12, risk_score=92)

    data = create_case(client, loan)

    assert data["status"] == "OPEN"
    assert data["stage"] == "HARD"
    assert data["assignmentGroup"] == "Tier2"
    assert data["assignedTo"] == "SeniorAgent"
    assert data["version"] == 1
    assert data["customer"]["riskScore"] == 92
    assert data["loan"]["dueDate"] == (TODAY - timedelta(days=12)).isoformat()
    assert data["actionLogs"] == []
    assert data["ruleDecisions"][0]["matchedRules"] == ["DPD_8_30", "RISK_GT_80_OVERRIDE"]
    assert data["ruleDecisions"][0]["reason"].startswith("DPD_8_30 (dpd=12)")


def test_create_full_case(client: TestClient):
    """Test POST /v1/cases/full creating customer, loan and case together"""
    payload = {
        "customer": {
            "name": "Ana Lopez",
            "phone": "+52-55-1234",
            "email": "ana@example.com",
            "country": "MX",
            "riskScore": 640,
        },
        "loan": {
            "principal": "1500.00",
            "outstanding": "900.00",
            "dueDate": (TODAY - timedelta(days=3)).isoformat(),
        },
    }

    response = client.post("/v1/cases/full", json=payload)
    assert response.status_code == 201
    assert response.json()["dpd"] == 3

    duplicate = client.post("/v1/cases/full", json=payload)
    assert_error(duplicate, 409, "CONFLICT")


def test_create_full_case_validates_body(client: TestClient):
    response = client.post(
        "/v1/cases/full",
        json={
            "customer": {"name": "X", "phone": "1", "email": "not-an-email", "country": "MX", "riskScore": 50},
            "loan": {"principal": "1", "outstanding": "1", "dueDate": TODAY.isoformat()},
        },
    )
    assert_error(response, 400, "BAD_REQUEST")


def test_create_case_error_mapping(client: TestClient, make_loan):
    loan = make_loan()
    other = make_loan()

    assert_error(client.post("/v1/cases", json={"customerId": 999, "loanId": loan.id}), 404, "NOT_FOUND")
    assert_error(
        client.post("/v1/cases", json={"customerId": loan.customer_id, "loanId": other.id}), 400, "BAD_REQUEST"
    )

    create_case(client, loan)
    duplicate = client.post("/v1/cases", json={"customerId": loan.customer_id, "loanId": loan.id})
    assert_error(duplicate, 409, "CONFLICT")


def test_get_case(client: TestClient, make_loan):
    case = create_case(client, make_loan())

    response = client.get(f"/v1/cases/{case['id']}")
    assert response.status_code == 200
    assert response.json()["id"] == case["id"]

    assert_error(client.get("/v1/cases/4242"), 404, "NOT_FOUND")


def test_list_cases(client: TestClient, make_loan):
    """Test GET /v1/cases with filters and pagination"""
    ids = [create_case(client, make_loan(days_past_due=dpd))["id"] for dpd in (3, 12, 15)]

    response = client.get("/v1/cases", params={"page": 1, "pageSize": 2, "dpdMin": 10})
    assert response.status_code == 200
    body = response.json()
    assert [c["id"] for c in body["data"]] == [ids[2], ids[1]]
    assert body["pagination"] == {"page": 1, "pageSize": 2, "total": 2, "totalPages": 1}

    by_stage = client.get("/v1/cases", params={"stage": "SOFT"}).json()
    assert [c["id"] for c in by_stage["data"]] == [ids[0]]


def test_list_cases_rejects_bad_query(client: TestClient):
    assert_error(client.get("/v1/cases", params={"pageSize": 500}), 400, "BAD_REQUEST")
    assert_error(client.get("/v1/cases", params={"dpdMin": 9, "dpdMax": 2}), 400, "BAD_REQUEST")


def test_list_cases_page_size_follows_settings(client: TestClient, make_loan):
    """Without pageSize the configured default applies, and the configured ceiling bounds it"""
    create_case(client, make_loan())

    response = client.get("/v1/cases")
    assert response.status_code == 200
    assert response.json()["pagination"]["pageSize"] == settings.default_page_size

    with patch.object(settings, "max_page_size", 200):
        widened = client.get("/v1/cases", params={"pageSize": 150})
    assert widened.status_code == 200
    assert widened.json()["pagination"]["pageSize"] == 150


def test_validation_errors_carry_details(client: TestClient):
    response = client.get("/v1/cases", params={"page": 0, "status": "PENDING"})

    error = assert_error(response, 400, "BAD_REQUEST")
    assert isinstance(error["details"], list)
    fields = {tuple(item["loc"]) for item in error["details"]}
    assert fields == {("query", "page"), ("query", "status")}
    assert all(item["msg"] for item in error["details"])


def test_domain_errors_have_no_details(client: TestClient):
    error = assert_error(client.get("/v1/cases/4242"), 404, "NOT_FOUND")
    assert error["details"] is None


def test_add_action_and_resolve(client: TestClient, make_loan):
    """Test POST /v1/cases/{id}/actions; PAID resolves the case"""
    case = create_case(client, make_loan())

    response = client.post(
        f"/v1/cases/{case['id']}/actions",
        json={"type": "CALL", "outcome": "PAID", "notes": " paid by transfer "},
    )
    assert response.status_code == 201
    assert response.json()["notes"] == "paid by transfer"

    resolved = client.get(f"/v1/cases/{case['id']}").json()
    assert resolved["status"] == "RESOLVED"
    assert resolved["resolvedAt"] is not None
    assert len(resolved["actionLogs"]) == 1

    again = client.post(f"/v1/cases/{case['id']}/actions", json={"type": "SMS", "outcome": "NO_ANSWER"})
    assert_error(again, 409, "CONFLICT")
    assert_error(client.post(f"/v1/cases/{case['id']}/assign"), 409, "CONFLICT")


def test_assign_case(client: TestClient, make_loan):
    """Test POST /v1/cases/{id}/assign is safe to repeat"""
    case = create_case(client, make_loan(days_past_due=12, risk_score=45))

    response = client.post(f"/v1/cases/{case['id']}/assign", json={"expectedVersion": 1})
    assert response.status_code == 200
    data = response.json()
    assert data["caseId"] == case["id"]
    assert data["stage"] == "HARD"
    assert data["assignedTo"] == "Tier2Queue"
    assert data["version"] == 1
    assert data["decision"]["matchedRules"] == ["DPD_8_30"]

    # No body at all is accepted as well
    repeat = client.post(f"/v1/cases/{case['id']}/assign")
    assert repeat.status_code == 200
    assert repeat.json() == data

    history = client.get(f"/v1/cases/{case['id']}").json()["ruleDecisions"]
    assert len(history) == 1


def test_assign_stale_version_is_conflict(client: TestClient, make_loan):
    case = create_case(client, make_loan())

    response = client.post(f"/v1/cases/{case['id']}/assign", json={"expectedVersion": 7})

    error = assert_error(response, 409, "CONFLICT")
    assert error["message"] == "Version mismatch. Expected 7, current version is 1."


def test_dashboard(client: TestClient, make_loan):
    for dpd in (10, 20):
        create_case(client, make_loan(days_past_due=dpd))

    response = client.get("/v1/dashboard")
    assert response.status_code == 200
    data = response.json()
    assert data["openCasesCount"] == 2
    assert data["resolvedTodayCount"] == 0
    assert data["avgOpenDpd"] == 15.0
