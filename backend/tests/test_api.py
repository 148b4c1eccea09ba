import unittest

import httpx
import psycopg
from fakes import InMemoryLedger, RecordingUsers, make_settings
from fastapi.testclient import TestClient

from expense_api.main import create_app
from expense_api.services.rates import RatesService


def unreachable_rates() -> RatesService:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    return RatesService(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class ApiTestCase(unittest.TestCase):
    settings_overrides: dict = {}

    def setUp(self):
        self.ledger = InMemoryLedger()
        self.users = RecordingUsers()
        self.app = create_app(
            make_settings(**self.settings_overrides),
            ledger=self.ledger,
            users=self.users,
            rates=unreachable_rates(),
        )
        self.client = TestClient(self.app)


class TransactionRouteTests(ApiTestCase):
    def test_create_then_summary(self):
        resp = self.client.post(
            "/transactions",
            json={"user_id": "u1", "title": "Coffee", "amount": -3.5, "category": "Food"},
        )
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertIsInstance(body["id"], int)
        self.assertEqual(body["amount"], -3.5)
        self.assertEqual(body["category"], "Food")
        self.assertIsNone(body["note"])
        self.assertIsNotNone(body["created_at"])

        summary = self.client.get("/transactions/summary/u1").json()
        self.assertEqual(summary, {"balance": -3.5, "income": 0, "expenses": -3.5})

    def test_summary_sums_by_sign(self):
        for title, amount in (("Salary", 1000), ("Rent", -400), ("Bonus", "250.5"), ("Lunch", -12.25)):
            self.client.post("/transactions", json={"user_id": "u2", "title": title, "amount": amount})
        self.client.post("/transactions", json={"user_id": "other", "title": "Noise", "amount": 99})

        summary = self.client.get("/transactions/summary/u2").json()
        self.assertEqual(summary, {"balance": 838.25, "income": 1250.5, "expenses": -412.25})

    def test_summary_without_rows_is_zero_not_null(self):
        self.assertEqual(
            self.client.get("/transactions/summary/empty").json(),
            {"balance": 0, "income": 0, "expenses": 0},
        )

    def test_created_entry_round_trips_through_list(self):
        payload = {"user_id": "u3", "title": "Book", "amount": -20, "note": "gift", "email": "a@b.c"}
        created = self.client.post("/transactions", json=payload).json()
        listed = self.client.get("/transactions/u3").json()

        self.assertEqual(listed, [created])
        for key in ("user_id", "title", "note", "email"):
            self.assertEqual(listed[0][key], payload[key])

    def test_list_is_newest_first_with_client_timestamps(self):
        self.client.post("/transactions", json={"user_id": "u4", "title": "old", "amount": 1, "created_at": "2024-01-01T00:00:00Z"})
        self.client.post("/transactions", json={"user_id": "u4", "title": "new", "amount": 1, "created_at": "2025-01-01T00:00:00Z"})
        titles = [row["title"] for row in self.client.get("/transactions/u4").json()]
        self.assertEqual(titles, ["new", "old"])

    def test_create_validation_names_fields_and_inserts_nothing(self):
        resp = self.client.post("/transactions", json={"title": "  ", "amount": "abc"})
        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertIn("error", body)
        self.assertEqual(body["fields"], ["user_id", "title", "amount"])
        self.assertEqual(self.ledger.rows, [])

    def test_create_rejects_malformed_timestamp_with_400(self):
        resp = self.client.post("/transactions", json={"user_id": "u1", "title": "x", "amount": 1, "created_at": "not-a-date"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["fields"], ["created_at"])

    def test_create_rejects_amount_too_large_to_report(self):
        resp = self.client.post("/transactions", json={"user_id": "u9", "title": "big", "amount": "1e400"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["fields"], ["amount"])
        self.assertEqual(self.ledger.rows, [])
        self.assertEqual(
            self.client.get("/transactions/summary/u9").json(),
            {"balance": 0, "income": 0, "expenses": 0},
        )

    def test_create_accepts_zero_amount(self):
        resp = self.client.post("/transactions", json={"user_id": "u1", "title": "zero", "amount": 0})
        self.assertEqual(resp.status_code, 201)

    def test_create_falls_back_to_requester_header(self):
        resp = self.client.post("/transactions", json={"title": "Tea", "amount": -2}, headers={"Authorization": "Bearer tok-user"})
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["user_id"], "tok-user")

    def test_me_routes_use_resolved_requester(self):
        headers = {"x-user-id": "me-user", "Authorization": "Bearer someone-else"}
        created = self.client.post("/transactions/me", json={"user_id": "ignored", "title": "Gym", "amount": -30}, headers=headers)
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["user_id"], "me-user")

        listed = self.client.get("/transactions/me", headers=headers).json()
        self.assertEqual([row["title"] for row in listed], ["Gym"])
        summary = self.client.get("/transactions/summary/me", headers=headers).json()
        self.assertEqual(summary["expenses"], -30)

    def test_me_routes_without_identity_are_bad_request_in_development(self):
        for method, path in (("get", "/transactions/me"), ("get", "/transactions/summary/me"), ("post", "/transactions/me")):
            kwargs = {"json": {"title": "x", "amount": 1}} if method == "post" else {}
            resp = getattr(self.client, method)(path, **kwargs)
            self.assertEqual(resp.status_code, 400, path)
            self.assertIn("x-user-id", resp.json()["error"])

    def test_delete_returns_deleted_row(self):
        created = self.client.post("/transactions", json={"user_id": "u5", "title": "Taxi", "amount": -8}).json()
        resp = self.client.delete(f"/transactions/{created['id']}")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"message": "Transaction deleted successfully", "deleted": created})
        self.assertEqual(self.client.get("/transactions/u5").json(), [])

    def test_delete_missing_is_404(self):
        resp = self.client.delete("/transactions/999999")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["message"], "Transaction not found")
        self.assertEqual(self.client.delete("/transactions/999999").status_code, 404)

    def test_delete_non_integer_is_400(self):
        self.assertEqual(self.client.delete("/transactions/abc").status_code, 400)

    def test_delete_is_not_scoped_to_requester_by_default(self):
        created = self.client.post("/transactions", json={"user_id": "owner", "title": "x", "amount": 1}).json()
        resp = self.client.delete(f"/transactions/{created['id']}", headers={"x-user-id": "intruder"})
        self.assertEqual(resp.status_code, 200)

    def test_debug_counts_in_development(self):
        for user in ("a", "a", "b"):
            self.client.post("/transactions", json={"user_id": user, "title": "t", "amount": 1})
        self.assertEqual(
            self.client.get("/transactions/__debug/users").json(),
            [{"user_id": "a", "cnt": 2}, {"user_id": "b", "cnt": 1}],
        )

    def test_unexpected_error_still_returns_json(self):
        self.ledger.fail_with = RuntimeError("unexpected")
        client = TestClient(self.app, raise_server_exceptions=False)
        with self.assertLogs("expense_api.main", level="ERROR"):
            resp = client.get("/transactions/u1")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Internal server error"})

    def test_store_failure_maps_to_500_with_details_outside_production(self):
        self.ledger.fail_with = psycopg.OperationalError("connection refused")
        resp = self.client.get("/transactions/u1")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Failed to get transactions", "details": "connection refused"})

    def test_api_prefix_mounts_the_same_routes(self):
        self.assertEqual(self.client.get("/api/transactions/summary/x").status_code, 200)
        self.assertEqual(self.client.get("/api/health").json(), {"status": "ok"})
        self.assertEqual(self.client.get("/transactions").json(), {"status": "ok"})


class ProductionModeTests(ApiTestCase):
    settings_overrides = {"environment": "production"}

    def test_me_routes_are_unauthorized_without_identity(self):
        resp = self.client.get("/transactions/me")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"error": "Unauthorized"})

    def test_debug_route_is_hidden(self):
        self.assertEqual(self.client.get("/transactions/__debug/users").status_code, 404)

    def test_store_error_details_are_suppressed(self):
        self.ledger.fail_with = psycopg.OperationalError("password authentication failed for user x")
        resp = self.client.get("/transactions/summary/u1")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Failed to get summary"})


class DeleteOwnershipTests(ApiTestCase):
    settings_overrides = {"delete_requires_owner": True}

    def test_only_the_owner_can_delete(self):
        created = self.client.post("/transactions", json={"user_id": "owner", "title": "x", "amount": 1}).json()
        path = f"/transactions/{created['id']}"

        self.assertEqual(self.client.delete(path).status_code, 400)
        self.assertEqual(self.client.delete(path, headers={"x-user-id": "intruder"}).status_code, 404)
        self.assertEqual(self.client.delete(path, headers={"x-user-id": "owner"}).status_code, 200)


class UserAndMiscRouteTests(ApiTestCase):
    def test_upsert_profile_accepts_numeric_contact(self):
        resp = self.client.post("/users/u2", json={"name": "Ben", "contact": 5551234})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.users.profiles["u2"]["contact"], "5551234")

    def test_upsert_profile_accepts_camel_case(self):
        resp = self.client.post("/users/u1", json={"name": "Ana", "imageUri": "file://a.png", "contact": "123"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"ok": True})
        self.assertEqual(self.users.profiles["u1"]["image_uri"], "file://a.png")
        self.assertIsNone(self.users.profiles["u1"]["address"])

    def test_avatar_requires_image_url(self):
        resp = self.client.post("/users/u1/avatar", json={})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["fields"], ["imageUrl"])

        ok = self.client.post("/users/u1/avatar", json={"imageUrl": "https://cdn/x.png"})
        self.assertEqual(ok.json(), {"ok": True})
        self.assertEqual(self.users.avatars["u1"], "https://cdn/x.png")

    def test_rates_all_upstreams_down_is_502(self):
        resp = self.client.get("/rates/latest/EUR")
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["error"], "Invalid response from upstream provider")

    def test_health_and_welcome(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})
        self.assertEqual(self.client.get("/").text, "Welcome to the Transactions API!")

    def test_cors_preflight_reflects_origin(self):
        resp = self.client.options(
            "/transactions",
            headers={
                "Origin": "http://localhost:8081",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "x-user-id, content-type",
            },
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["access-control-allow-origin"], "http://localhost:8081")
        self.assertEqual(resp.headers["access-control-allow-credentials"], "true")


if __name__ == "__main__":
    unittest.main()
