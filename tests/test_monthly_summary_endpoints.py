from __future__ import annotations

import os
import unittest
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient
from jose import jwt

from app.db import get_db
from app.main import app
from app.routers.monthly_summaries import get_bulk_orchestrator
from app.services.bulk import BulkOrchestrator
from app.settings import get_settings
from tests.support import SqliteDatabase, add_employee, add_pay_rate, add_ten_hour_days, fixed_engine

TEST_SECRET = "test-secret-for-monthly-summaries"
FINANCIAL_FIELDS = ("payment_type", "subtotal", "tax_percentage", "tax_amount", "total_amount", "invoice_number", "created_by")


def _token(subject: str, role: str, **claims) -> str:  # type: ignore[no-untyped-def]
    payload = {
        "sub": subject,
        "role": role,
        "iss": "sitepay",
        "aud": "sitepay-api",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
        **claims,
    }
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class MonthlySummaryEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        self.env = patch.dict(
            os.environ,
            {"JWT_SECRET": TEST_SECRET, "JWT_ISSUER": "sitepay", "JWT_AUDIENCE": "sitepay-api"},
            clear=False,
        )
        self.env.start()
        get_settings.cache_clear()

        self.database = SqliteDatabase()
        self.db = self.database.session()
        self.employee = add_employee(self.db, "Rahman Ali")
        add_pay_rate(self.db, self.employee.id)
        add_ten_hour_days(self.db, self.employee.id, [2, 3])

        def _override_get_db() -> Generator[object, None, None]:
            db = self.database.session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _override_get_db
        app.dependency_overrides[get_bulk_orchestrator] = lambda: BulkOrchestrator(
            self.database.session_factory,
            concurrency=2,
            engine_factory=fixed_engine,
        )
        self.engine_patch = patch("app.services.monthly_summaries.build_engine", side_effect=fixed_engine)
        self.engine_patch.start()
        self.client = TestClient(app)

        self.admin_headers = _auth(_token("admin-1", "admin"))
        self.super_admin_headers = _auth(_token("root", "admin", is_super_admin=True))
        self.staff_headers = _auth(_token("staff-1", "staff", employee_id=self.employee.id))

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.engine_patch.stop()
        self.db.close()
        self.database.close()
        self.env.stop()
        get_settings.cache_clear()

    def _generate(self) -> dict:
        response = self.client.post(
            "/api/admin/monthly-summaries/generate",
            json={"employee_id": self.employee.id, "month": 3, "year": 2026, "tax_percentage": "8.5"},
            headers=self.admin_headers,
        )
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def test_admin_generate_returns_financial_view(self) -> None:
        body = self._generate()

        self.assertEqual(body["status"], "DRAFT")
        self.assertEqual(body["total_working_days"], 2)
        self.assertEqual(body["payment_type"], "hourly")
        self.assertEqual(body["total_amount"], "477.40")
        self.assertIsNone(body["invoice_number"])

    def test_staff_view_hides_financial_fields(self) -> None:
        summary = self._generate()

        response = self.client.get(f"/api/staff/monthly-summaries/{summary['id']}", headers=self.staff_headers)

        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["total_worked_hours"], "16.00")
        for field_name in FINANCIAL_FIELDS:
            self.assertNotIn(field_name, body)

    def test_sign_then_approve_assigns_invoice(self) -> None:
        summary = self._generate()

        signed = self.client.post(
            f"/api/staff/monthly-summaries/{summary['id']}/sign",
            json={"signature": "Rahman Ali"},
            headers=self.staff_headers,
        )
        self.assertEqual(signed.status_code, 200, signed.text)
        self.assertEqual(signed.json()["status"], "SIGNED_BY_STAFF")

        approved = self.client.post(
            f"/api/admin/monthly-summaries/{summary['id']}/approve",
            json={"signature": "Site Admin", "remarks": "ok"},
            headers=self.admin_headers,
        )

        self.assertEqual(approved.status_code, 200, approved.text)
        body = approved.json()
        self.assertEqual(body["status"], "APPROVED")
        self.assertTrue(body["invoice_number"].startswith("INV-2026-03-"))
        self.assertEqual(body["admin_approved_by"], "admin-1")

    def test_approving_draft_returns_conflict_envelope(self) -> None:
        summary = self._generate()

        response = self.client.post(
            f"/api/admin/monthly-summaries/{summary['id']}/approve",
            json={"signature": "Site Admin"},
            headers={**self.admin_headers, "X-Request-Id": "req-approve-draft"},
        )

        self.assertEqual(response.status_code, 409)
        error = response.json()["error"]
        self.assertEqual(error["code"], "INVALID_TRANSITION")
        self.assertEqual(error["request_id"], "req-approve-draft")

    def test_missing_token_is_rejected(self) -> None:
        response = self.client.get("/api/admin/monthly-summaries")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")

    def test_token_with_wrong_secret_is_rejected(self) -> None:
        forged = jwt.encode(
            {
                "sub": "admin-1",
                "role": "admin",
                "iss": "sitepay",
                "aud": "sitepay-api",
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            },
            "another-secret",
            algorithm="HS256",
        )

        response = self.client.get("/api/admin/monthly-summaries", headers=_auth(forged))

        self.assertEqual(response.status_code, 401)

    def test_staff_token_cannot_use_admin_routes(self) -> None:
        response = self.client.post(
            "/api/admin/monthly-summaries/generate",
            json={"employee_id": self.employee.id, "month": 3, "year": 2026},
            headers=self.staff_headers,
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")

    def test_staff_cannot_read_another_employees_summary(self) -> None:
        summary = self._generate()
        other = _auth(_token("staff-2", "staff", employee_id=self.employee.id + 100))

        response = self.client.get(f"/api/staff/monthly-summaries/{summary['id']}", headers=other)

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "NOT_OWNER")

    def test_reopen_requires_super_admin(self) -> None:
        summary = self._generate()
        self.client.post(
            f"/api/staff/monthly-summaries/{summary['id']}/sign",
            json={"signature": "Rahman Ali"},
            headers=self.staff_headers,
        )

        denied = self.client.post(
            f"/api/admin/monthly-summaries/{summary['id']}/reopen",
            json={"reason": "wrong project"},
            headers=self.admin_headers,
        )
        allowed = self.client.post(
            f"/api/admin/monthly-summaries/{summary['id']}/reopen",
            json={"reason": "wrong project"},
            headers=self.super_admin_headers,
        )

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(allowed.status_code, 200, allowed.text)
        self.assertEqual(allowed.json()["status"], "DRAFT")
        self.assertIsNone(allowed.json()["staff_signature"])

    def test_approve_without_admin_signature_is_rejected(self) -> None:
        summary = self._generate()
        self.client.post(
            f"/api/staff/monthly-summaries/{summary['id']}/sign",
            json={"signature": "Rahman Ali"},
            headers=self.staff_headers,
        )

        single = self.client.post(
            f"/api/admin/monthly-summaries/{summary['id']}/approve",
            json={"remarks": "ok"},
            headers=self.admin_headers,
        )
        blank = self.client.post(
            f"/api/admin/monthly-summaries/{summary['id']}/approve",
            json={"signature": "   "},
            headers=self.admin_headers,
        )
        bulk = self.client.post(
            "/api/admin/monthly-summaries/bulk-approve",
            json={"summary_ids": [summary["id"]]},
            headers=self.admin_headers,
        )

        self.assertEqual(single.status_code, 422)
        self.assertEqual(blank.status_code, 422)
        self.assertEqual(blank.json()["error"]["code"], "VALIDATION_ERROR")
        self.assertEqual(bulk.status_code, 422)
        current = self.client.get(f"/api/admin/monthly-summaries/{summary['id']}", headers=self.admin_headers).json()
        self.assertEqual(current["status"], "SIGNED_BY_STAFF")
        self.assertIsNone(current["invoice_number"])

    def test_tax_percentage_above_hundred_is_rejected(self) -> None:
        response = self.client.post(
            "/api/admin/monthly-summaries/generate",
            json={"employee_id": self.employee.id, "month": 3, "year": 2026, "tax_percentage": 150},
            headers=self.admin_headers,
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_generate_for_empty_month_returns_conflict(self) -> None:
        response = self.client.post(
            "/api/admin/monthly-summaries/generate",
            json={"employee_id": self.employee.id, "month": 2, "year": 2026},
            headers=self.admin_headers,
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"]["code"], "NO_ATTENDANCE_DATA")

    def test_generate_all_reports_per_employee_outcomes(self) -> None:
        add_employee(self.db, "Idle Worker")

        response = self.client.post(
            "/api/admin/monthly-summaries/generate-all",
            json={"month": 3, "year": 2026},
            headers=self.admin_headers,
        )

        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(len(body["succeeded"]), 1)
        self.assertEqual(body["succeeded"][0]["employee_id"], self.employee.id)
        self.assertEqual([item["code"] for item in body["failed"]], ["NO_ATTENDANCE_DATA"])

    def test_staff_list_only_returns_own_rows(self) -> None:
        self._generate()
        other = add_employee(self.db, "Second Worker")
        add_ten_hour_days(self.db, other.id, [5])
        self.client.post(
            "/api/admin/monthly-summaries/generate",
            json={"employee_id": other.id, "month": 3, "year": 2026},
            headers=self.admin_headers,
        )

        staff_rows = self.client.get("/api/staff/monthly-summaries", headers=self.staff_headers).json()
        admin_rows = self.client.get("/api/admin/monthly-summaries?month=3&year=2026", headers=self.admin_headers).json()

        self.assertEqual([row["employee_id"] for row in staff_rows], [self.employee.id])
        self.assertEqual(len(admin_rows), 2)


if __name__ == "__main__":
    unittest.main()
