"""
Dashboard figures, period reports and top contributors.
Only successful, non-deleted transactions count; members see only their own.
"""
import csv
import io
from dataclasses import dataclass, field
from datetime import datetime, date, time, timedelta
from typing import Any, Dict, List, Optional

from db import User, Transaction, TransactionRepository, UserRepository
from utils.exceptions import ValidationException

METHOD_LABELS = {
    "qris": "QRIS",
    "va": "Virtual Account",
    "manual": "Transfer Manual",
    "adjustment": "Penyesuaian",
}


@dataclass
class FinancialReport:
    start: datetime
    end: datetime
    total_income: int
    total_expense: int
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def net(self) -> int:
        return self.total_income - self.total_expense

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start.date().isoformat(),
            "endDate": self.end.date().isoformat(),
            "totalIncome": self.total_income,
            "totalExpense": self.total_expense,
            "net": self.net,
            "transactions": [txn.to_dict() for txn in self.transactions]
        }


def _scope(user: User) -> Optional[str]:
    return None if user.is_staff else user.id


def _month_start(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1)


def _parse_date(value: Optional[str], label: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationException(f"Format {label} tidak valid (YYYY-MM-DD)")


def report_period(start: Optional[str], end: Optional[str], now: Optional[datetime] = None):
    """
    Resolve a report range. Defaults to the start of this month through now;
    an explicit end date includes that whole day.
    """
    now = now or datetime.utcnow()
    start_date = _parse_date(start, "tanggal mulai")
    end_date = _parse_date(end, "tanggal akhir")

    start_dt = datetime.combine(start_date, time.min) if start_date else _month_start(now)
    end_dt = datetime.combine(end_date, time.max) if end_date else now
    if start_dt > end_dt:
        raise ValidationException("Tanggal mulai harus sebelum tanggal akhir")
    return start_dt, end_dt


class ReportService:

    async def dashboard_summary(self, user: User, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        scope = _scope(user)

        month_income, month_expense = await TransactionRepository.sum_by_type(
            user_id=scope, start=_month_start(now), end=now
        )
        if scope:
            balance = (await UserRepository.get_by_id(user.id)).balance
        else:
            balance = await UserRepository.total_balance()

        since = datetime.combine((now - timedelta(days=29)).date(), time.min)
        rows = {row["day"]: row for row in await TransactionRepository.daily_totals(since, user_id=scope)}
        chart = []
        for offset in range(30):
            day = (since + timedelta(days=offset)).date().isoformat()
            row = rows.get(day, {})
            chart.append({
                "date": day,
                "income": row.get("income", 0),
                "expense": row.get("expense", 0)
            })

        recent = await TransactionRepository.find(user_id=scope, limit=5)
        return {
            "balance": balance,
            "monthIncome": month_income,
            "monthExpense": month_expense,
            "totalTransactions": len(await TransactionRepository.find(user_id=scope)),
            "chart": chart,
            "recentTransactions": [txn.to_dict() for txn in recent]
        }

    async def financial_report(
        self,
        user: User,
        start: Optional[str] = None,
        end: Optional[str] = None
    ) -> FinancialReport:
        start_dt, end_dt = report_period(start, end)
        scope = _scope(user)
        income, expense = await TransactionRepository.sum_by_type(user_id=scope, start=start_dt, end=end_dt)
        transactions = await TransactionRepository.find(user_id=scope, start=start_dt, end=end_dt)
        return FinancialReport(start_dt, end_dt, income, expense, transactions)

    def report_csv(self, report: FinancialReport) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["Tanggal", "Nama", "Tipe", "Metode", "Jumlah", "Status"])
        for txn in report.transactions:
            writer.writerow([
                txn.created_at.strftime("%Y-%m-%d %H:%M"),
                txn.user_name or "",
                "Masuk" if txn.type.value == "in" else "Keluar",
                METHOD_LABELS.get(txn.method.value, txn.method.value),
                txn.amount,
                txn.status.value
            ])
        return buffer.getvalue()

    async def top_spenders(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await TransactionRepository.top_contributors(limit=limit)


# Global service instance
report_service = ReportService()
