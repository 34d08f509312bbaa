"""
services/export_service.py
---------------------------
Generates CSV and Excel exports of marketplace data for admins.
"""

import io
from datetime import date
from typing import Optional

import pandas as pd
from dateutil.relativedelta import relativedelta

from repositories.company_repo import CompanyRepository
from repositories.sale_repo import SaleRepository
from repositories.user_repo import UserRepository
from utils.logger import get_logger

logger = get_logger(__name__)


def month_range(year: int, month: int) -> tuple[date, date]:
    """First and last day of a month."""
    start = date(year, month, 1)
    end = start + relativedelta(months=1) - relativedelta(days=1)
    return start, end


class ExportService:
    """Generates downloadable reports in CSV and Excel formats."""

    def __init__(
        self,
        user_repo: Optional[UserRepository] = None,
        company_repo: Optional[CompanyRepository] = None,
        sale_repo: Optional[SaleRepository] = None,
    ):
        self.users = user_repo or UserRepository()
        self.companies = company_repo or CompanyRepository()
        self.sales = sale_repo or SaleRepository()

    def export_users_csv(self) -> io.BytesIO:
        users = self.users.list_all()
        data = [
            {
                "telegram_id": u.telegram_id,
                "username": u.username or "",
                "first_name": u.first_name or "",
                "last_name": u.last_name or "",
                "coin_balance": float(u.coin_balance),
                "referral_balance": float(u.referral_balance),
                "is_admin": u.is_admin,
                "can_register_company": u.can_register_company,
                "banned": u.banned,
                "joined": u.created_at.isoformat() if u.created_at else "",
            }
            for u in users
        ]
        buffer = self._to_csv(data)
        logger.info(f"Exported {len(data)} users as CSV")
        return buffer

    def export_companies_csv(self) -> io.BytesIO:
        companies = self.companies.list_all()
        data = [
            {
                "id": c.id,
                "name": c.name,
                "owner_id": c.owner_id,
                "code_prefix": c.code_prefix,
                "status": c.status,
                "billing_balance": float(c.billing_balance),
                "email": c.email or "",
                "created": c.created_at.isoformat() if c.created_at else "",
            }
            for c in companies
        ]
        buffer = self._to_csv(data)
        logger.info(f"Exported {len(data)} companies as CSV")
        return buffer

    def export_sales_excel(self, year: int, month: int) -> io.BytesIO:
        """
        Export a month's sales as an Excel (.xlsx) file with a second
        sheet summarising each company.

        Args:
            year: Year number.
            month: Month number (1-12).

        Returns:
            A BytesIO buffer containing the Excel data.
        """
        start, end = month_range(year, month)
        rows = self.sales.list_between(start, end)

        money_cols = ["unit_price", "amount", "platform_fee", "referrer_bonus", "buyer_bonus", "seller_earnings"]
        data = []
        for r in rows:
            item = dict(r)
            item["created_at"] = r["created_at"].strftime("%Y-%m-%d %H:%M") if r["created_at"] else ""
            item["product"] = r["product"] or "(deleted)"
            item["referral_code"] = r["referral_code"] or ""
            for col in money_cols:
                item[col] = float(r[col])
            data.append(item)

        df = pd.DataFrame(data)

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Sales", index=False)

            # Add summary sheet
            if data:
                summary = df.groupby("company").agg(
                    sales=("id", "count"),
                    volume=("amount", "sum"),
                    platform_fees=("platform_fee", "sum"),
                    referrer_bonuses=("referrer_bonus", "sum"),
                    buyer_bonuses=("buyer_bonus", "sum"),
                    seller_earnings=("seller_earnings", "sum"),
                ).reset_index()
                summary.to_excel(writer, sheet_name="Summary", index=False)

        buffer.seek(0)
        logger.info(f"Exported {len(data)} sales for {month:02d}/{year} as Excel")
        return buffer

    @staticmethod
    def _to_csv(data: list[dict]) -> io.BytesIO:
        df = pd.DataFrame(data)
        buffer = io.BytesIO()
        df.to_csv(buffer, index=False, encoding="utf-8-sig")
        buffer.seek(0)
        return buffer
