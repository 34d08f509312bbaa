"""
services/chart_service.py
--------------------------
Generates chart images for the admin dashboard.
Uses matplotlib to create bar/pie charts and returns them as BytesIO buffers.
"""

import io
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for server use
import matplotlib.pyplot as plt

from config import CURRENCY_SYMBOL
from repositories.sale_repo import SaleRepository
from services.export_service import month_range
from utils.logger import get_logger

logger = get_logger(__name__)

plt.rcParams["font.family"] = "DejaVu Sans"
plt.rcParams["figure.facecolor"] = "#1a1a2e"
plt.rcParams["text.color"] = "#e0e0e0"
plt.rcParams["axes.facecolor"] = "#1a1a2e"

_SPLIT_COLORS = ["#FF6B6B", "#F7DC6F", "#45B7D1", "#4ECDC4"]


class ChartService:
    """Generates visual charts of sales data."""

    def __init__(self, sale_repo: Optional[SaleRepository] = None):
        self.repo = sale_repo or SaleRepository()

    def generate_daily_sales_bar(self, days: int = 14) -> Optional[io.BytesIO]:
        """
        Bar chart of sale volume per day for the last `days` days.

        Returns:
            BytesIO buffer with PNG image, or None if no data.
        """
        today = date.today()
        start = today - timedelta(days=days - 1)
        rows = self.repo.daily_volume(start, today)
        if not rows:
            return None

        daily = {start + timedelta(days=d): 0.0 for d in range(days)}
        for r in rows:
            if r["day"] in daily:
                daily[r["day"]] = float(r["volume"])

        day_list = list(daily.keys())
        amounts = list(daily.values())
        labels = [d.strftime("%a\n%d/%m") for d in day_list]

        fig, ax = plt.subplots(figsize=(10, 5))
        bars = ax.bar(
            range(len(day_list)), amounts,
            color=["#4ECDC4" if a > 0 else "#444" for a in amounts],
            edgecolor="#1a1a2e",
            linewidth=1.5,
            width=0.6,
            zorder=3,
        )
        for bar, amount in zip(bars, amounts):
            if amount > 0:
                ax.text(
                    bar.get_x() + bar.get_width() / 2, bar.get_height(),
                    f"{CURRENCY_SYMBOL}{amount:,.0f}",
                    ha="center", va="bottom",
                    color="#e0e0e0", fontsize=8, fontweight="bold",
                )

        ax.set_xticks(range(len(day_list)))
        ax.set_xticklabels(labels, fontsize=8, color="#e0e0e0")
        ax.set_ylabel(f"Volume ({CURRENCY_SYMBOL})", fontsize=11, color="#e0e0e0")
        ax.set_title(
            f"Daily sales, last {days} days\nTotal: {CURRENCY_SYMBOL}{sum(amounts):,.2f}",
            fontsize=13, fontweight="bold", pad=15,
        )
        ax.spines["top"].set_visible(False)
        ax.spines["right"].set_visible(False)
        ax.spines["left"].set_color("#444")
        ax.spines["bottom"].set_color("#444")
        ax.tick_params(colors="#e0e0e0")
        ax.grid(axis="y", alpha=0.2, color="#888")
        ax.set_axisbelow(True)

        logger.info(f"Generated daily sales bar chart ({days} days)")
        return self._to_png(fig)

    def generate_revenue_split_pie(self, year: Optional[int] = None, month: Optional[int] = None) -> Optional[io.BytesIO]:
        """
        Donut chart of where a month's sale volume went: platform fees,
        referrer rewards, buyer bonuses and seller earnings.

        Returns:
            BytesIO buffer with PNG image, or None if no sales that month.
        """
        today = date.today()
        y = year or today.year
        m = month or today.month
        start, end = month_range(y, m)
        totals = self.repo.totals(
            since=datetime.combine(start, time.min, tzinfo=timezone.utc),
            until=datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc),
        )
        if not totals["count"]:
            return None

        labels = ["Platform fees", "Referrer rewards", "Buyer bonuses", "Seller earnings"]
        values = [
            float(totals["platform_fees"]),
            float(totals["referrer_bonuses"]),
            float(totals["buyer_bonuses"]),
            float(totals["seller_earnings"]),
        ]
        pairs = [(l, v, c) for l, v, c in zip(labels, values, _SPLIT_COLORS) if v > 0]

        fig, ax = plt.subplots(figsize=(8, 6))
        wedges, _, autotexts = ax.pie(
            [v for _, v, _ in pairs],
            labels=None,
            autopct=lambda pct: f"{pct:.1f}%",
            colors=[c for _, _, c in pairs],
            startangle=90,
            pctdistance=0.82,
            wedgeprops=dict(width=0.5, edgecolor="#1a1a2e", linewidth=2),
        )
        for autotext in autotexts:
            autotext.set_color("white")
            autotext.set_fontsize(10)
            autotext.set_fontweight("bold")

        ax.legend(
            wedges, [f"{l}: {CURRENCY_SYMBOL}{v:,.2f}" for l, v, _ in pairs],
            loc="center left",
            bbox_to_anchor=(1, 0, 0.5, 1),
            fontsize=10,
            frameon=False,
        )
        ax.set_title(
            f"Revenue split {m:02d}/{y}\nVolume: {CURRENCY_SYMBOL}{float(totals['volume']):,.2f}",
            fontsize=14,
            fontweight="bold",
            pad=20,
        )

        logger.info(f"Generated revenue split pie for {m:02d}/{y}")
        return self._to_png(fig)

    @staticmethod
    def _to_png(fig) -> io.BytesIO:
        plt.tight_layout()
        buf = io.BytesIO()
        fig.savefig(buf, format="png", dpi=150, bbox_inches="tight",
                    facecolor=fig.get_facecolor())
        buf.seek(0)
        plt.close(fig)
        return buf
