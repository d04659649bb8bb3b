from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import select

from app.errors import (
    AlreadyFinal,
    ConcurrentModification,
    EmployeeNotFound,
    InvalidTransition,
    NoAttendanceData,
    NotOwner,
    Unauthorized,
    ValidationError,
)
from app.models import AuditLog, LeaveStatus, MonthlySummary, SummaryStatus
from app.services import monthly_summaries, summary_store
from app.settings import get_settings
from tests.support import (
    ADMIN,
    SUPER_ADMIN,
    SqliteDatabase,
    add_employee,
    add_leave,
    add_pay_rate,
    add_project,
    add_shift,
    add_ten_hour_days,
    fixed_engine,
    reload_summary,
    staff_actor,
    status_of,
)


class SummaryWorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()
        self.database = SqliteDatabase()
        self.db = self.database.session()
        self.employee = add_employee(self.db, "Tan Wei Ming")
        add_pay_rate(self.db, self.employee.id, rate="20.00", ot_multiplier="1.5")
        add_ten_hour_days(self.db, self.employee.id, [2, 3])

    def tearDown(self) -> None:
        self.db.close()
        self.database.close()
        get_settings.cache_clear()

    def _generate(self, employee_id: int | None = None, tax_percentage: str | None = "8.5") -> MonthlySummary:
        return monthly_summaries.generate_summary(
            self.db,
            employee_id or self.employee.id,
            3,
            2026,
            ADMIN,
            tax_percentage,
            engine=fixed_engine(self.db),
        )

    def _sign(self, summary: MonthlySummary, employee_id: int | None = None) -> MonthlySummary:
        return monthly_summaries.staff_sign_summary(
            self.db,
            summary.id,
            staff_actor(employee_id or summary.employee_id),
            "data:image/png;base64,c2lnbmF0dXJl",
        )

    def _approve(self, summary: MonthlySummary) -> MonthlySummary:
        return monthly_summaries.admin_decide_summary(self.db, summary.id, ADMIN, "approve", signature="admin-sig")

    def test_generate_creates_priced_draft(self) -> None:
        summary = self._generate()

        self.assertEqual(summary.status, SummaryStatus.DRAFT)
        self.assertEqual(summary.total_working_days, 2)
        self.assertEqual(summary.total_worked_hours, Decimal("16.00"))
        self.assertEqual(summary.total_ot_hours, Decimal("4.00"))
        self.assertEqual(summary.absent_days, 20)
        self.assertEqual(summary.subtotal, Decimal("440.00"))
        self.assertEqual(summary.tax_amount, Decimal("37.40"))
        self.assertEqual(summary.total_amount, Decimal("477.40"))
        self.assertIsNone(summary.invoice_number)
        self.assertEqual(summary.created_by, ADMIN.actor_id)

        actions = self.db.scalars(select(AuditLog.action)).all()
        self.assertIn("SUMMARY_GENERATED", actions)

    def test_generate_breakdown_excludes_unassigned_spans(self) -> None:
        project = add_project(self.db, "Jurong Depot")
        add_ten_hour_days(self.db, self.employee.id, [4], project_id=project.id)

        summary = self._generate()

        self.assertEqual(summary.total_working_days, 3)
        self.assertEqual(
            summary.project_breakdown,
            [{"project_id": project.id, "project_name": "Jurong Depot", "days_worked": 1, "total_hours": 8.0, "ot_hours": 2.0}],
        )

    def test_generate_twice_updates_same_row(self) -> None:
        first = self._generate()
        add_ten_hour_days(self.db, self.employee.id, [4])

        second = self._generate()

        self.assertEqual(first.id, second.id)
        self.assertEqual(second.total_working_days, 3)
        count = len(self.db.scalars(select(MonthlySummary.id)).all())
        self.assertEqual(count, 1)

    def test_regenerate_is_idempotent(self) -> None:
        summary = self._generate()

        first = monthly_summaries.regenerate_summary(self.db, summary.id, ADMIN, engine=fixed_engine(self.db))
        first_totals = (first.subtotal, first.tax_percentage, first.tax_amount, first.total_amount)
        second = monthly_summaries.regenerate_summary(self.db, summary.id, ADMIN, engine=fixed_engine(self.db))
        second_totals = (second.subtotal, second.tax_percentage, second.tax_amount, second.total_amount)

        self.assertEqual(first_totals, second_totals)
        self.assertEqual(str(second.total_amount), "477.40")

    def test_no_attendance_data_leaves_no_summary(self) -> None:
        empty = add_employee(self.db, "Siti Rahmah")

        with self.assertRaises(NoAttendanceData):
            self._generate(empty.id)

        self.assertIsNone(
            summary_store.get_summary_for_period(self.db, employee_id=empty.id, month=3, year=2026)
        )

    def test_leave_only_employee_gets_summary(self) -> None:
        on_leave = add_employee(self.db, "Kumar Rajan")
        add_leave(self.db, on_leave.id, date(2026, 3, 2), date(2026, 3, 6), "5")

        summary = self._generate(on_leave.id)

        self.assertEqual(summary.approved_leaves, Decimal("5.00"))
        self.assertEqual(summary.subtotal, Decimal("0.00"))

    def test_pending_leave_is_not_counted(self) -> None:
        add_leave(self.db, self.employee.id, date(2026, 3, 9), date(2026, 3, 11), "3", status=LeaveStatus.PENDING)
        add_leave(self.db, self.employee.id, date(2026, 3, 16), date(2026, 3, 16), "1", status=LeaveStatus.REJECTED)

        summary = self._generate()

        self.assertEqual(summary.approved_leaves, Decimal("0.00"))
        self.assertEqual(summary.absent_days, 20)

    def test_pending_leave_only_month_has_no_data(self) -> None:
        waiting = add_employee(self.db, "Siti Aminah")
        add_leave(self.db, waiting.id, date(2026, 3, 2), date(2026, 3, 6), "5", status=LeaveStatus.PENDING)

        with self.assertRaises(NoAttendanceData):
            self._generate(waiting.id)

    def test_unknown_employee(self) -> None:
        with self.assertRaises(EmployeeNotFound):
            self._generate(9999)

    def test_staff_cannot_generate(self) -> None:
        with self.assertRaises(Unauthorized):
            monthly_summaries.generate_summary(self.db, self.employee.id, 3, 2026, staff_actor(self.employee.id))

    def test_invalid_month_rejected_before_any_write(self) -> None:
        with self.assertRaises(ValidationError):
            monthly_summaries.generate_summary(self.db, self.employee.id, 13, 2026, ADMIN)

    def test_generate_on_signed_summary_is_already_final(self) -> None:
        summary = self._sign(self._generate())

        with self.assertRaises(AlreadyFinal):
            self._generate()

        self.assertEqual(status_of(self.db, summary.id), SummaryStatus.SIGNED_BY_STAFF)

    def test_regenerate_on_approved_summary_is_invalid(self) -> None:
        summary = self._approve(self._sign(self._generate()))

        with self.assertRaises(InvalidTransition):
            monthly_summaries.regenerate_summary(self.db, summary.id, ADMIN, engine=fixed_engine(self.db))

    def test_staff_sign_requires_owner(self) -> None:
        summary = self._generate()
        other = add_employee(self.db, "Lim Hui Min")

        with self.assertRaises(NotOwner):
            self._sign(summary, employee_id=other.id)

    def test_staff_sign_requires_signature(self) -> None:
        summary = self._generate()

        with self.assertRaises(ValidationError):
            monthly_summaries.staff_sign_summary(self.db, summary.id, staff_actor(self.employee.id), "   ")

    def test_staff_sign_twice_is_invalid(self) -> None:
        summary = self._sign(self._generate())

        with self.assertRaises(InvalidTransition):
            self._sign(summary)

        self._approve(summary)
        with self.assertRaises(InvalidTransition):
            self._sign(summary)

    def test_approve_draft_is_invalid(self) -> None:
        summary = self._generate()

        with self.assertRaises(InvalidTransition):
            self._approve(summary)

        failed = self.db.scalars(select(AuditLog).where(AuditLog.success.is_(False))).all()
        self.assertEqual([row.action for row in failed], ["SUMMARY_APPROVED"])

    def test_approve_requires_admin_signature(self) -> None:
        summary = self._sign(self._generate())

        for signature in (None, "", "   "):
            with self.subTest(signature=signature):
                with self.assertRaises(ValidationError):
                    monthly_summaries.admin_decide_summary(self.db, summary.id, ADMIN, "approve", signature=signature)

        unchanged = reload_summary(self.db, summary.id)
        self.assertEqual(unchanged.status, SummaryStatus.SIGNED_BY_STAFF)
        self.assertIsNone(unchanged.invoice_number)
        self.assertIsNone(unchanged.admin_signature)

    def test_approve_assigns_invoice_number(self) -> None:
        summary = self._approve(self._sign(self._generate()))

        self.assertEqual(summary.status, SummaryStatus.APPROVED)
        self.assertEqual(summary.invoice_number, "INV-2026-03-0001")
        self.assertEqual(summary.admin_approved_by, ADMIN.actor_id)
        self.assertEqual(summary.admin_signature, "admin-sig")

    def test_invoice_numbers_are_distinct_across_approvals(self) -> None:
        invoices = [self._approve(self._sign(self._generate())).invoice_number]
        for name in ("Ahmad Faizal", "Chen Jia Hui", "Nur Aisyah"):
            employee = add_employee(self.db, name)
            add_ten_hour_days(self.db, employee.id, [9])
            invoices.append(self._approve(self._sign(self._generate(employee.id))).invoice_number)

        self.assertEqual(len(set(invoices)), 4)
        self.assertEqual(invoices[-1], "INV-2026-03-0004")

    def test_reapproving_approved_summary_keeps_invoice(self) -> None:
        summary = self._approve(self._sign(self._generate()))

        with self.assertRaises(InvalidTransition):
            self._approve(summary)

        self.assertEqual(reload_summary(self.db, summary.id).invoice_number, "INV-2026-03-0001")

    def test_invoice_collision_retries_allocation(self) -> None:
        first = self._approve(self._sign(self._generate()))
        employee = add_employee(self.db, "Wong Kar Fai")
        add_ten_hour_days(self.db, employee.id, [9])
        second = self._sign(self._generate(employee.id))

        with patch(
            "app.services.summary_store.next_invoice_number",
            side_effect=[first.invoice_number, "INV-2026-03-0002"],
        ) as allocator:
            approved = self._approve(second)

        self.assertEqual(allocator.call_count, 2)
        self.assertEqual(approved.invoice_number, "INV-2026-03-0002")

    def test_reject_then_regenerate_clears_signatures(self) -> None:
        summary = self._sign(self._generate())

        with self.assertLogs("app.monthly_summaries", level="WARNING"):
            rejected = monthly_summaries.admin_decide_summary(self.db, summary.id, ADMIN, "reject")
        self.assertEqual(rejected.status, SummaryStatus.REJECTED)
        self.assertIsNotNone(rejected.staff_signature)

        regenerated = monthly_summaries.regenerate_summary(
            self.db,
            summary.id,
            staff_actor(self.employee.id),
            engine=fixed_engine(self.db),
        )

        self.assertEqual(regenerated.status, SummaryStatus.DRAFT)
        self.assertIsNone(regenerated.staff_signature)
        self.assertIsNone(regenerated.staff_signed_at)
        self.assertIsNone(regenerated.admin_remarks)

    def test_reject_records_remarks(self) -> None:
        summary = self._sign(self._generate())

        rejected = monthly_summaries.admin_decide_summary(
            self.db, summary.id, ADMIN, "REJECT", remarks="Day 3 hours disputed by supervisor"
        )

        self.assertEqual(rejected.admin_remarks, "Day 3 hours disputed by supervisor")
        self.assertIsNone(rejected.invoice_number)

    def test_unknown_decision_is_rejected(self) -> None:
        summary = self._sign(self._generate())

        with self.assertRaises(ValidationError):
            monthly_summaries.admin_decide_summary(self.db, summary.id, ADMIN, "escalate")

    def test_staff_cannot_decide(self) -> None:
        summary = self._sign(self._generate())

        with self.assertRaises(Unauthorized):
            monthly_summaries.admin_decide_summary(self.db, summary.id, staff_actor(self.employee.id), "approve")

    def test_reopen_requires_super_admin(self) -> None:
        summary = self._approve(self._sign(self._generate()))

        with self.assertRaises(Unauthorized):
            monthly_summaries.reopen_summary(self.db, summary.id, ADMIN, "Payroll correction")

    def test_reopen_approved_keeps_invoice_and_allows_regeneration(self) -> None:
        summary = self._approve(self._sign(self._generate()))

        reopened = monthly_summaries.reopen_summary(self.db, summary.id, SUPER_ADMIN, "Late attendance import")
        self.assertEqual(reopened.status, SummaryStatus.DRAFT)
        self.assertEqual(reopened.invoice_number, "INV-2026-03-0001")
        self.assertIsNone(reopened.staff_signature)

        add_ten_hour_days(self.db, self.employee.id, [4])
        regenerated = monthly_summaries.regenerate_summary(self.db, summary.id, ADMIN, engine=fixed_engine(self.db))
        reapproved = self._approve(self._sign(regenerated))

        self.assertEqual(reapproved.total_working_days, 3)
        self.assertEqual(reapproved.invoice_number, "INV-2026-03-0001")

    def test_reopen_requires_reason(self) -> None:
        summary = self._approve(self._sign(self._generate()))

        with self.assertRaises(ValidationError):
            monthly_summaries.reopen_summary(self.db, summary.id, SUPER_ADMIN, " ")

    def test_racing_approvals_yield_one_concurrent_modification(self) -> None:
        summary = self._sign(self._generate())
        other_db = self.database.session()
        try:
            stale = summary_store.get_summary(other_db, summary.id)
            assert stale is not None

            winner = self._approve(summary)

            with patch("app.services.summary_store.get_summary", return_value=stale):
                with self.assertRaises(ConcurrentModification) as ctx:
                    monthly_summaries.admin_decide_summary(other_db, summary.id, ADMIN, "approve", signature="second-admin")
        finally:
            other_db.close()

        self.assertEqual(winner.status, SummaryStatus.APPROVED)
        self.assertEqual(ctx.exception.current_status, "APPROVED")
        final = reload_summary(self.db, summary.id)
        self.assertEqual(final.status, SummaryStatus.APPROVED)
        self.assertEqual(final.invoice_number, "INV-2026-03-0001")

    def test_list_summaries_scopes_staff_to_own_rows(self) -> None:
        self._generate()
        other = add_employee(self.db, "Farah Lee")
        add_shift(
            self.db,
            other.id,
            datetime(2026, 3, 10, 1, 0, tzinfo=timezone.utc),
            datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc),
        )
        self._generate(other.id)

        admin_rows = monthly_summaries.list_summaries(self.db, ADMIN, month=3, year=2026)
        staff_rows = monthly_summaries.list_summaries(self.db, staff_actor(other.id))

        self.assertEqual(len(admin_rows), 2)
        self.assertEqual([row.employee_id for row in staff_rows], [other.id])
        with self.assertRaises(NotOwner):
            monthly_summaries.list_summaries(self.db, staff_actor(other.id), employee_id=self.employee.id)

    def test_get_summary_hides_other_employees(self) -> None:
        summary = self._generate()
        other = add_employee(self.db, "Goh Boon Keat")

        with self.assertRaises(NotOwner):
            monthly_summaries.get_summary(self.db, summary.id, staff_actor(other.id))
        self.assertEqual(monthly_summaries.get_summary(self.db, summary.id, staff_actor(self.employee.id)).id, summary.id)


if __name__ == "__main__":
    unittest.main()
