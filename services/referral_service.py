"""
services/referral_service.py
-----------------------------
Issuing referral codes, looking them up, and referral statistics.
"""

from datetime import datetime, timezone
from typing import Optional

from models.referral import ReferralCode
from repositories.company_repo import CompanyRepository
from repositories.referral_repo import ReferralRepository
from repositories.user_repo import UserRepository
from utils.codes import looks_like_code, new_referral_code, normalize_code
from utils.errors import InvalidReferralCodeError, NotFoundError, ValidationError
from utils.formatting import display_name, md, money, short_date
from utils.logger import get_logger

logger = get_logger(__name__)

_MAX_CODE_ATTEMPTS = 10
_MEDALS = ["🥇", "🥈", "🥉"]


def month_start(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class ReferralService:
    """Handles referral codes and referral stats."""

    def __init__(
        self,
        referral_repo: Optional[ReferralRepository] = None,
        company_repo: Optional[CompanyRepository] = None,
        user_repo: Optional[UserRepository] = None,
    ):
        self.repo = referral_repo or ReferralRepository()
        self.companies = company_repo or CompanyRepository()
        self.users = user_repo or UserRepository()

    def generate_code(self, company_id: int, user_id: int) -> ReferralCode:
        """
        Issue a fresh single-use code for a user and company, and record
        that the user joined the company.

        Raises:
            NotFoundError: Unknown company.
            ValidationError: Company suspended.
            RuntimeError: No unique code found (practically unreachable).
        """
        company = self.companies.get(company_id)
        if not company:
            raise NotFoundError(f"❌ Company #{company_id} not found.")
        if not company.is_active():
            raise ValidationError(f"⛔ {md(company.name)} is not accepting referrals right now.")

        for _ in range(_MAX_CODE_ATTEMPTS):
            code = new_referral_code(company.code_prefix)
            if not self.repo.code_exists(code):
                break
        else:
            raise RuntimeError(f"Could not generate a unique referral code for company {company_id}")

        saved = self.repo.add_code(ReferralCode(code=code, user_id=user_id, company_id=company_id))
        saved.company_name = company.name
        self.users.join_company(user_id, company_id)
        return saved

    def codes_text(self, user_id: int) -> str:
        codes = self.repo.list_codes(user_id)
        if not codes:
            return (
                "🔗 You have no referral codes yet.\n"
                "Open a company from /browse and tap *Get referral code*."
            )
        lines = ["🔗 *Your referral codes*\n"]
        for c in codes:
            state = "🟢" if c.active else "⚪ used"
            lines.append(f"{state} `{c.code}` ({md(c.company_name)})")
        lines.append("\nEach code works once. Share it with a buyer before they pay.")
        return "\n".join(lines)

    def lookup_text(self, raw_code: str) -> str:
        """Describe a code: company, owner and whether it can still be used."""
        code_text = normalize_code(raw_code)
        if not looks_like_code(code_text):
            raise InvalidReferralCodeError(f"❌ {md(raw_code)} is not a referral code.")
        code = self.repo.get_code(code_text)
        if not code:
            raise InvalidReferralCodeError()
        owner = self.users.get(code.user_id)
        owner_name = owner.display_name if owner else f"User {code.user_id}"
        status = "🟢 Active, can be used once" if code.active else f"⚪ Used on {short_date(code.used_at)}"
        return (
            f"🔎 *Referral code* `{code.code}`\n\n"
            f"🏢 Company: {md(code.company_name)}\n"
            f"👤 Shared by: {md(owner_name)}\n"
            f"📌 Status: {status}\n\n"
            f"Tell the seller this code when you buy to receive a bonus."
        )

    def stats_text(self, user_id: int) -> str:
        stats = self.repo.stats(user_id, month_start())
        by_company = self.repo.earnings_by_company(user_id)
        msg = (
            f"📈 *Your referrals*\n\n"
            f"Total referrals: {stats['total_referrals']}\n"
            f"Total earnings: {money(stats['total_earnings'])}\n"
            f"This month: {money(stats['month_earnings'])}\n"
        )
        if by_company:
            msg += "\n*Withdrawable by company:*\n"
            for row in by_company:
                msg += (
                    f"• #{row['company_id']} {md(row['company_name'])}: "
                    f"{money(row['withdrawable'])} (earned {money(row['earned'])})\n"
                )
            msg += "\nUse /withdraw <company\\_id> \\[amount] to request a payout."
        return msg

    def leaderboard_text(self, period: str = "all", limit: int = 10) -> str:
        since = month_start() if period == "month" else None
        rows = self.repo.leaderboard(limit=limit, since=since)
        title = "this month" if since else "all time"
        if not rows:
            return f"🏆 No referrals yet ({title})."
        lines = [f"🏆 *Top referrers* ({title})\n"]
        for i, r in enumerate(rows):
            rank = _MEDALS[i] if i < len(_MEDALS) else f"{i + 1}."
            name = display_name(r["username"], r["first_name"], r["user_id"])
            lines.append(f"{rank} {md(name)}: {r['referrals']} referrals, {money(r['earnings'])}")
        return "\n".join(lines)
