"""
Integration tests for the SecureBank API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from securebank.api import app
from securebank.api.dependencies import get_banking_system
from securebank.config import SecureBankConfig
from securebank.system import BankingSystem


ADMIN = {"X-User-Id": "1001", "X-User-Role": "Admin"}
STAFF = {"X-User-Id": "2001", "X-User-Role": "Staff"}


def client_headers(user_id):
    return {"X-User-Id": str(user_id), "X-User-Role": "Client"}


@pytest.fixture
def client():
    """Test client backed by a fresh in-memory banking system"""
    system = BankingSystem(config=SecureBankConfig(_env_file=None, database_url="memory://"))
    app.dependency_overrides[get_banking_system] = lambda: system
    yield TestClient(app)
    app.dependency_overrides.clear()
    system.close()


def signup(client, email, first_name="Test"):
    r = client.post("/users", json={
        "first_name": first_name,
        "last_name": "User",
        "email": email,
        "password": "password123"
    })
    assert r.status_code == 201
    return r.json()["id"]


@pytest.fixture
def customers(client):
    """Two clients with one funded Savings account each"""
    r = client.post("/accounts/types", json={"name": "Savings", "interest_rate": "0.03"}, headers=ADMIN)
    assert r.status_code == 201
    type_id = r.json()["id"]

    result = {}
    for name, deposit in (("alice", "500.00"), ("bob", "0.00")):
        user_id = signup(client, f"{name}@example.com", name.title())
        r = client.post("/accounts", json={
            "user_id": user_id, "type_id": type_id, "initial_deposit": deposit
        }, headers=client_headers(user_id))
        assert r.status_code == 201
        result[name] = {"user_id": user_id, **r.json()}
    return result


class TestHealthEndpoints:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"


class TestUserFlow:

    def test_self_signup_creates_client(self, client):
        r = client.post("/users", json={
            "first_name": "Dana", "last_name": "Lee", "email": "Dana@Example.com", "password": "password123"
        })
        assert r.status_code == 201
        data = r.json()
        assert data["id"] == 3001
        assert data["role"] == "Client"
        assert data["email"] == "dana@example.com"

    def test_self_signup_cannot_create_staff(self, client):
        r = client.post("/users", json={
            "first_name": "Eve", "last_name": "Lee", "email": "eve@example.com",
            "password": "password123", "role": "Staff"
        })
        assert r.status_code == 403
        assert r.json()["error"] == "permission_denied"

    def test_admin_creates_staff(self, client):
        r = client.post("/users", json={
            "first_name": "Sam", "last_name": "Ops", "email": "sam@example.com",
            "password": "password123", "role": "staff"
        }, headers=ADMIN)
        assert r.status_code == 201
        assert r.json()["id"] == 2001

    def test_duplicate_email(self, client):
        signup(client, "dup@example.com")
        r = client.post("/users", json={
            "first_name": "Dup", "last_name": "User", "email": "DUP@example.com", "password": "password123"
        })
        assert r.status_code == 422


class TestAccountFlow:

    def test_open_and_view_account(self, client, customers):
        alice = customers["alice"]
        assert alice["balance"] == "500.00"
        assert len(alice["account_number"]) == 10

        r = client.get(f"/accounts/{alice['account_id']}", headers=client_headers(alice["user_id"]))
        assert r.status_code == 200
        assert r.json()["balance"] == "500.00"

    def test_client_cannot_view_foreign_account(self, client, customers):
        alice, bob = customers["alice"], customers["bob"]
        r = client.get(f"/accounts/{alice['account_id']}", headers=client_headers(bob["user_id"]))
        assert r.status_code == 404
        assert r.json() == {
            "error": "invalid_account",
            "detail": f"Account {alice['account_id']} not found",
            "retryable": False
        }

    def test_missing_caller_headers(self, client, customers):
        r = client.get(f"/accounts/{customers['alice']['account_id']}")
        assert r.status_code == 403
        assert r.json()["error"] == "permission_denied"

    def test_list_account_types(self, client, customers):
        r = client.get("/accounts/types")
        assert [t["name"] for t in r.json()["account_types"]] == ["Savings"]

    def test_statement(self, client, customers):
        alice = customers["alice"]
        r = client.get(f"/accounts/{alice['account_id']}/statement", headers=STAFF)
        assert r.status_code == 200
        data = r.json()
        assert data["closing_balance"] == "500.00"
        assert [line["type"] for line in data["lines"]] == ["Deposit"]


class TestMoneyMovement:

    def test_deposit(self, client, customers):
        alice = customers["alice"]
        r = client.post("/transactions/deposit", json={
            "account_id": alice["account_id"], "amount": "25.50"
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 201
        assert r.json()["new_balance"] == "525.50"

    def test_transfer_with_fee(self, client, customers):
        alice, bob = customers["alice"], customers["bob"]
        r = client.post("/transactions/transfer", json={
            "source_account_id": alice["account_id"],
            "recipient_account_number": bob["account_number"],
            "amount": "100.00"
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 201
        data = r.json()
        assert data["new_source_balance"] == "399.50"
        assert data["fee_charged"] == "0.50"

        r = client.get(f"/accounts/{bob['account_id']}", headers=client_headers(bob["user_id"]))
        assert r.json()["balance"] == "100.00"

        r = client.get("/reports/reconcile", headers=STAFF)
        assert r.json() == {"consistent": True, "mismatches": []}

    def test_withdraw_insufficient_funds(self, client, customers):
        bob = customers["bob"]
        r = client.post("/transactions/withdraw", json={
            "account_id": bob["account_id"], "amount": "10.00", "method": "UPI", "recipient_info": "bob@upi"
        }, headers=client_headers(bob["user_id"]))
        assert r.status_code == 409
        assert r.json()["error"] == "insufficient_funds"
        assert r.json()["retryable"] is False

    def test_withdraw_pending_dispatch(self, client, customers):
        alice = customers["alice"]
        r = client.post("/transactions/withdraw", json={
            "account_id": alice["account_id"], "amount": "50.00", "method": "Bank Transfer"
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 201
        assert r.json()["status"] == "Pending Dispatch"
        assert r.json()["new_balance"] == "450.00"

    @pytest.mark.parametrize("amount", ["0", "-5.00", "abc"])
    def test_invalid_amount(self, client, customers, amount):
        alice = customers["alice"]
        r = client.post("/transactions/deposit", json={
            "account_id": alice["account_id"], "amount": amount
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"

    def test_malformed_body(self, client, customers):
        r = client.post("/transactions/deposit", json={"account_id": "x"}, headers=STAFF)
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"
        assert r.json()["retryable"] is False

    def test_self_transfer_rejected(self, client, customers):
        alice = customers["alice"]
        r = client.post("/transactions/transfer", json={
            "source_account_id": alice["account_id"],
            "recipient_account_number": alice["account_number"],
            "amount": "10.00"
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 404
        assert r.json()["error"] == "invalid_account"


class TestLoanFlow:

    def test_quote(self, client):
        r = client.get("/loans/quote", params={"amount": "10000.00", "annual_rate": "0.05", "term_months": 60})
        assert r.status_code == 200
        assert r.json()["monthly_payment"] == "188.71"

    def test_submit_approve_disburse(self, client, customers):
        alice = customers["alice"]
        r = client.post("/loans", json={
            "user_id": alice["user_id"], "amount": "10000.00", "term_months": 60, "annual_rate": "0.05"
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 201
        loan_id = r.json()["loan_id"]
        assert r.json()["monthly_payment"] == "188.71"

        r = client.post(f"/loans/{loan_id}/approve", headers=client_headers(alice["user_id"]))
        assert r.status_code == 403

        r = client.post(f"/loans/{loan_id}/approve", headers=STAFF)
        assert r.status_code == 200
        assert r.json()["disbursement_account_id"] == alice["account_id"]

        r = client.post(f"/loans/{loan_id}/approve", headers=STAFF)
        assert r.status_code == 409
        assert r.json()["error"] == "loan_not_pending"

        r = client.get(f"/accounts/{alice['account_id']}", headers=client_headers(alice["user_id"]))
        assert r.json()["balance"] == "10500.00"

        r = client.get(f"/loans/{loan_id}", headers=client_headers(alice["user_id"]))
        assert r.json()["status"] == "Active"
        assert len(r.json()["loan_account_number"]) == 10

    def test_reject(self, client, customers):
        bob = customers["bob"]
        r = client.post("/loans", json={
            "user_id": bob["user_id"], "amount": "500.00", "term_months": 12, "annual_rate": "0"
        }, headers=client_headers(bob["user_id"]))
        loan_id = r.json()["loan_id"]

        r = client.post(f"/loans/{loan_id}/reject", headers=ADMIN)
        assert r.status_code == 200
        assert r.json()["status"] == "Rejected"

    def test_loan_visibility(self, client, customers):
        alice, bob = customers["alice"], customers["bob"]
        r = client.post("/loans", json={
            "user_id": alice["user_id"], "amount": "1000.00", "term_months": 12, "annual_rate": "0.05"
        }, headers=client_headers(alice["user_id"]))
        loan_id = r.json()["loan_id"]

        assert client.get(f"/loans/{loan_id}", headers=client_headers(bob["user_id"])).status_code == 404
        assert client.get("/loans/999", headers=STAFF).status_code == 404

    def test_client_cannot_apply_for_another(self, client, customers):
        alice, bob = customers["alice"], customers["bob"]
        r = client.post("/loans", json={
            "user_id": bob["user_id"], "amount": "1000.00", "term_months": 12, "annual_rate": "0.05"
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 403


class TestReports:

    def test_summary_requires_staff(self, client, customers):
        alice = customers["alice"]
        r = client.get("/reports/summary", headers=client_headers(alice["user_id"]))
        assert r.status_code == 403

    def test_summary(self, client, customers):
        r = client.get("/reports/summary", params={"report_type": "deposit"}, headers=STAFF)
        assert r.status_code == 200
        data = r.json()
        assert data["report_type"] == "Deposit"
        assert data["transaction_count"] == 1
        assert data["total_volume"] == "500.00"

    def test_unknown_report_type(self, client, customers):
        r = client.get("/reports/summary", params={"report_type": "bogus"}, headers=STAFF)
        assert r.status_code == 422


class TestReportWindows:

    def test_statement_with_naive_window(self, client, customers):
        alice = customers["alice"]
        r = client.get(f"/accounts/{alice['account_id']}/statement",
                       params={"start": "2020-01-01T00:00:00", "end": "2999-01-01T00:00:00"},
                       headers=STAFF)
        assert r.status_code == 200
        assert r.json()["opening_balance"] == "0.00"
        assert r.json()["closing_balance"] == "500.00"
        assert len(r.json()["lines"]) == 1

    def test_summary_with_naive_window(self, client, customers):
        r = client.get("/reports/summary", params={"start": "2020-01-01T00:00:00"}, headers=STAFF)
        assert r.status_code == 200
        assert r.json()["transaction_count"] == 1

        r = client.get("/reports/summary", params={"start": "2999-01-01T00:00:00"}, headers=STAFF)
        assert r.status_code == 200
        assert r.json()["transaction_count"] == 0


class TestMalformedNumbers:

    @pytest.mark.parametrize("rate", ["abc", "NaN", "-0.05"])
    def test_quote_rejects_bad_rate(self, client, rate):
        r = client.get("/loans/quote", params={"amount": "1000", "annual_rate": rate, "term_months": 12})
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"

    def test_quote_with_negligible_rate(self, client):
        r = client.get("/loans/quote", params={"amount": "1200", "annual_rate": "1e-30", "term_months": 12})
        assert r.status_code == 200
        assert r.json()["monthly_payment"] == "100.00"

    @pytest.mark.parametrize("amount,rate", [("1000.00", "NaN"), ("1000.00", "abc"), ("1e30", "0.05")])
    def test_loan_application_rejects_bad_numbers(self, client, customers, amount, rate):
        alice = customers["alice"]
        r = client.post("/loans", json={
            "user_id": alice["user_id"], "amount": amount, "term_months": 12, "annual_rate": rate
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"

    @pytest.mark.parametrize("rate", ["abc", "NaN"])
    def test_account_type_rejects_bad_rate(self, client, rate):
        r = client.post("/accounts/types", json={"name": "Gold", "interest_rate": rate}, headers=ADMIN)
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"

    def test_deposit_beyond_precision(self, client, customers):
        alice = customers["alice"]
        r = client.post("/transactions/deposit", json={
            "account_id": alice["account_id"], "amount": "1e30"
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"

    def test_transfer_beyond_precision(self, client, customers):
        alice, bob = customers["alice"], customers["bob"]
        r = client.post("/transactions/transfer", json={
            "source_account_id": alice["account_id"],
            "recipient_account_number": bob["account_number"],
            "amount": "1e30"
        }, headers=client_headers(alice["user_id"]))
        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"


class TestAdministration:

    def test_admin_changes_role_and_id_is_kept(self, client):
        user_id = signup(client, "promote@example.com")
        r = client.post(f"/users/{user_id}/role", json={"role": "staff"}, headers=ADMIN)
        assert r.status_code == 200
        assert r.json() == {
            "id": user_id,
            "role": "Staff",
            "email": "promote@example.com",
            "full_name": "Test User",
            "is_active": True
        }

    def test_staff_cannot_change_roles(self, client):
        user_id = signup(client, "promote@example.com")
        r = client.post(f"/users/{user_id}/role", json={"role": "Admin"}, headers=STAFF)
        assert r.status_code == 403

    def test_unknown_role(self, client):
        user_id = signup(client, "promote@example.com")
        r = client.post(f"/users/{user_id}/role", json={"role": "Owner"}, headers=ADMIN)
        assert r.status_code == 422

    def test_deactivate_user(self, client):
        user_id = signup(client, "leaver@example.com")
        assert client.post(f"/users/{user_id}/deactivate", headers=client_headers(user_id)).status_code == 403

        r = client.post(f"/users/{user_id}/deactivate", headers=STAFF)
        assert r.status_code == 200
        assert r.json()["is_active"] is False

        assert client.post("/users/9999/deactivate", headers=STAFF).status_code == 422

    def test_delete_account_type(self, client, customers):
        r = client.get("/accounts/types")
        in_use = r.json()["account_types"][0]["id"]
        assert client.delete(f"/accounts/types/{in_use}", headers=ADMIN).status_code == 422

        spare = client.post("/accounts/types", json={"name": "Current"}, headers=ADMIN).json()["id"]
        assert client.delete(f"/accounts/types/{spare}", headers=STAFF).status_code == 403
        assert client.delete(f"/accounts/types/{spare}", headers=ADMIN).status_code == 204
        names = [t["name"] for t in client.get("/accounts/types").json()["account_types"]]
        assert names == ["Savings"]

    def test_deactivate_account(self, client, customers):
        alice = customers["alice"]
        r = client.post(f"/accounts/{alice['account_id']}/deactivate", headers=client_headers(alice["user_id"]))
        assert r.status_code == 403

        r = client.post(f"/accounts/{alice['account_id']}/deactivate", headers=STAFF)
        assert r.status_code == 200
        assert r.json()["is_active"] is False
        assert r.json()["balance"] == "500.00"

        r = client.post("/transactions/deposit", json={
            "account_id": alice["account_id"], "amount": "10.00"
        }, headers=STAFF)
        assert r.status_code == 404
        assert r.json()["error"] == "invalid_account"
