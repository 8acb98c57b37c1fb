"""
Tests for report periods, dashboard figures, CSV export and top contributors.
"""
import csv
import io
from datetime import datetime, timedelta

import pytest

from db import Transaction, TransactionType, TransactionMethod, TransactionStatus, TransactionRepository
from services.report_service import ReportService, report_period
from utils.exceptions import ValidationException


async def _txn(user_id, amount, txn_type=TransactionType.IN, status=TransactionStatus.SUCCESS,
               method=TransactionMethod.MANUAL, when=None, **kwargs):
    when = when or datetime.utcnow()
    return await TransactionRepository.create(Transaction(
        user_id=user_id, type=txn_type, method=method, amount=amount, total_amount=amount,
        status=status, created_at=when, updated_at=when, **kwargs
    ))


@pytest.fixture
def reports():
    return ReportService()


class TestReportPeriod:

    def test_defaults_to_month_to_date(self):
        now = datetime(2026, 3, 17, 10, 30)
        start, end = report_period(None, None, now)
        assert start == datetime(2026, 3, 1)
        assert end == now

    def test_end_date_is_inclusive(self):
        start, end = report_period("2026-01-01", "2026-01-31")
        assert start == datetime(2026, 1, 1)
        assert end.date().isoformat() == "2026-01-31"
        assert (end.hour, end.minute, end.second) == (23, 59, 59)

    def test_invalid(self):
        with pytest.raises(ValidationException, match="YYYY-MM-DD"):
            report_period("17-03-2026", None)
        with pytest.raises(ValidationException, match="harus sebelum"):
            report_period("2026-02-01", "2026-01-01")


class TestFinancialReport:

    @pytest.mark.asyncio
    async def test_totals_count_success_only(self, reports, admin, member):
        await _txn(member.id, 30000)
        await _txn(member.id, 5000, txn_type=TransactionType.OUT, method=TransactionMethod.ADJUSTMENT)
        await _txn(member.id, 99000, status=TransactionStatus.PENDING)
        await _txn(member.id, 40000, is_deleted=True)
        await _txn(member.id, 70000, when=datetime.utcnow() - timedelta(days=400))

        report = await reports.financial_report(admin)

        assert report.total_income == 30000
        assert report.total_expense == 5000
        assert report.net == 25000
        data = report.to_dict()
        assert data["net"] == 25000
        # Listing shows every non-deleted status in range
        assert len(data["transactions"]) == 3

    @pytest.mark.asyncio
    async def test_member_scope(self, reports, member, other_member):
        await _txn(member.id, 10000)
        await _txn(other_member.id, 20000)

        report = await reports.financial_report(other_member)
        assert report.total_income == 20000
        assert {t.user_id for t in report.transactions} == {other_member.id}

    @pytest.mark.asyncio
    async def test_csv(self, reports, admin, member):
        await _txn(member.id, 15000, method=TransactionMethod.VA)
        report = await reports.financial_report(admin)

        rows = list(csv.reader(io.StringIO(reports.report_csv(report))))

        assert rows[0] == ["Tanggal", "Nama", "Tipe", "Metode", "Jumlah", "Status"]
        assert rows[1][1:] == ["Anggota Satu", "Masuk", "Virtual Account", "15000", "success"]


class TestDashboard:

    @pytest.mark.asyncio
    async def test_member_dashboard(self, reports, member):
        now = datetime.utcnow()
        await _txn(member.id, 12000, when=now)
        await _txn(member.id, 3000, txn_type=TransactionType.OUT, when=now)

        summary = await reports.dashboard_summary(member, now=now)

        assert summary["balance"] == 50000
        assert summary["monthIncome"] == 12000
        assert summary["monthExpense"] == 3000
        assert summary["totalTransactions"] == 2
        assert len(summary["recentTransactions"]) == 2

        chart = summary["chart"]
        assert len(chart) == 30
        assert chart[-1] == {"date": now.date().isoformat(), "income": 12000, "expense": 3000}
        assert all(point["income"] == 0 for point in chart[:-1])

    @pytest.mark.asyncio
    async def test_staff_dashboard_uses_total_balance(self, reports, admin, member, other_member):
        summary = await reports.dashboard_summary(admin)
        assert summary["balance"] == 50000


class TestTopSpenders:

    @pytest.mark.asyncio
    async def test_ranked_by_successful_income(self, reports, member, other_member):
        await _txn(member.id, 10000)
        await _txn(other_member.id, 25000)
        await _txn(other_member.id, 5000)
        await _txn(member.id, 90000, status=TransactionStatus.FAILED)

        top = await reports.top_spenders()

        assert [(row["name"], row["total"], row["count"]) for row in top] == [
            ("Anggota Dua", 30000, 2),
            ("Anggota Satu", 10000, 1),
        ]
