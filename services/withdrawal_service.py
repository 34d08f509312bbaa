"""
services/withdrawal_service.py
-------------------------------
Referral payouts and company billing withdrawals.

Both kinds share one status machine:

    company_pending --(owner approves)--> approved --(admin confirms)--> processed
    company_pending --(owner declines)--> declined

Referral payouts stop at 'approved': the referrer's referral balance is
debited when the owner approves. Billing withdrawals are debited from the
company billing balance when an admin confirms the payout.
"""

from decimal import Decimal
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import MIN_PAYOUT_AMOUNT
from models.withdrawal import (
    KIND_BILLING,
    KIND_REFERRAL,
    STATUS_APPROVED,
    STATUS_DECLINED,
    STATUS_ICONS,
    STATUS_PENDING,
    STATUS_PROCESSED,
    Withdrawal,
)
from repositories.ledger_repo import LedgerRepository
from repositories.withdrawal_repo import WithdrawalRepository
from utils.errors import (
    BelowMinimumPayoutError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from utils.formatting import md, money, short_date, to_money
from utils.logger import get_logger

logger = get_logger(__name__)


class WithdrawalService:
    """Creates and moves withdrawal requests through their states."""

    def __init__(
        self,
        ledger: Optional[LedgerRepository] = None,
        withdrawal_repo: Optional[WithdrawalRepository] = None,
        min_payout: Optional[Decimal] = None,
    ):
        self.ledger = ledger or LedgerRepository()
        self.repo = withdrawal_repo or WithdrawalRepository()
        self.min_payout = to_money(min_payout if min_payout is not None else MIN_PAYOUT_AMOUNT)

    # ── REFERRAL PAYOUTS ──────────────────────────────────

    def request_payout(self, user_id: int, company_id: int, amount: Optional[Decimal] = None) -> Withdrawal:
        """
        Ask a company owner to pay out referral commissions.

        Args:
            amount: Requested amount; None requests everything withdrawable.

        Raises:
            NotFoundError: Unknown user or company.
            BelowMinimumPayoutError: Amount (or everything available) is
                below MIN_PAYOUT_AMOUNT.
            InsufficientBalanceError: More than the withdrawable commission.
        """
        with self.ledger.transaction() as tx:
            company = tx.lock_company(company_id)
            if not company:
                raise NotFoundError(f"❌ Company #{company_id} not found.")
            # Locking the user serializes concurrent requests of one referrer.
            if not tx.lock_user(user_id):
                raise NotFoundError("❌ User not found. Send /start first.")

            earned = tx.referral_earnings(user_id, company_id)
            reserved = tx.reserved_referral_withdrawals(user_id, company_id)
            withdrawable = max(to_money(earned - reserved), Decimal("0.00"))
            amount = to_money(amount) if amount is not None else withdrawable

            if amount <= 0:
                raise ValidationError(
                    f"⚠️ You have nothing to withdraw from {md(company.name)} yet."
                    if withdrawable <= 0 else "⚠️ The amount must be positive."
                )
            if amount < self.min_payout:
                raise BelowMinimumPayoutError(
                    f"❌ Minimum payout is {money(self.min_payout)}. "
                    f"You can withdraw {money(withdrawable)} from {md(company.name)}."
                )
            if amount > withdrawable:
                raise InsufficientBalanceError(
                    f"❌ You can withdraw at most {money(withdrawable)} from {md(company.name)}."
                )

            withdrawal = tx.insert_withdrawal(Withdrawal(
                kind=KIND_REFERRAL,
                user_id=user_id,
                company_id=company_id,
                amount=amount,
            ))
            withdrawal.company_name = company.name

        logger.info(f"Payout #{withdrawal.id} requested by {user_id} from company {company_id}: {amount}")
        return withdrawal

    # ── BILLING WITHDRAWALS ───────────────────────────────

    def request_billing(self, admin_id: int, company_id: int, amount: Decimal, reason: Optional[str] = None) -> Withdrawal:
        """
        Admin asks to withdraw from a company's billing balance.

        Raises:
            ValidationError: Amount not positive or below the minimum setting.
            InsufficientBalanceError: More than billing balance minus
                withdrawals already requested.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("⚠️ The amount must be positive.")

        with self.ledger.transaction() as tx:
            settings = tx.load_settings()
            if amount < settings.min_withdrawal_amount:
                raise ValidationError(
                    f"❌ Minimum withdrawal is {money(settings.min_withdrawal_amount)}."
                )
            company = tx.lock_company(company_id)
            if not company:
                raise NotFoundError(f"❌ Company #{company_id} not found.")
            available = company.billing_balance - tx.pending_billing_withdrawals(company_id)
            if amount > available:
                raise InsufficientBalanceError(
                    f"❌ {md(company.name)} has only {money(available)} available."
                )
            withdrawal = tx.insert_withdrawal(Withdrawal(
                kind=KIND_BILLING,
                user_id=admin_id,
                company_id=company_id,
                amount=amount,
                reason=reason,
            ))
            withdrawal.company_name = company.name

        logger.info(f"Billing withdrawal #{withdrawal.id} of {amount} requested by admin {admin_id} for company {company_id}")
        return withdrawal

    def confirm_billing(self, admin_id: int, withdrawal_id: int) -> Withdrawal:
        """
        Mark an approved billing withdrawal as paid out and debit the
        company billing balance.
        """
        with self.ledger.transaction() as tx:
            withdrawal = self._lock_or_raise(tx, withdrawal_id)
            if withdrawal.kind != KIND_BILLING:
                raise ValidationError("⚠️ Only billing withdrawals are confirmed by admins.")
            if withdrawal.status != STATUS_APPROVED:
                raise InvalidStateError(
                    f"❌ Withdrawal #{withdrawal.id} is {md(withdrawal.status)}, not approved."
                )
            company = tx.lock_company(withdrawal.company_id)
            if company.billing_balance < withdrawal.amount:
                raise InsufficientBalanceError(
                    f"❌ {md(company.name)} billing balance is only {money(company.billing_balance)}."
                )
            tx.debit_company(company.id, withdrawal.amount)
            withdrawal.status = STATUS_PROCESSED
            withdrawal.processed_by = admin_id
            withdrawal.processed_at = tx.now()
            tx.update_withdrawal(withdrawal)

        logger.info(f"Billing withdrawal #{withdrawal_id} processed by admin {admin_id}")
        return withdrawal

    # ── OWNER DECISIONS ───────────────────────────────────

    def approve(self, owner_id: int, withdrawal_id: int) -> Withdrawal:
        """
        Approve a pending request as the company owner.

        Referral payouts debit the referrer's referral balance here; the
        balance must cover the amount.
        """
        with self.ledger.transaction() as tx:
            withdrawal = self._lock_pending_for_owner(tx, owner_id, withdrawal_id)
            if withdrawal.kind == KIND_REFERRAL:
                user = tx.lock_user(withdrawal.user_id)
                if user is None or user.referral_balance < withdrawal.amount:
                    balance = user.referral_balance if user else Decimal("0.00")
                    raise InsufficientBalanceError(
                        f"❌ The referrer's balance ({money(balance)}) does not cover {money(withdrawal.amount)}."
                    )
                tx.debit_user(withdrawal.user_id, "referral_balance", withdrawal.amount)
            else:
                company = tx.lock_company(withdrawal.company_id)
                if company.billing_balance < withdrawal.amount:
                    raise InsufficientBalanceError(
                        f"❌ The billing balance ({money(company.billing_balance)}) does not cover {money(withdrawal.amount)}."
                    )
            withdrawal.status = STATUS_APPROVED
            withdrawal.decided_by = owner_id
            withdrawal.decided_at = tx.now()
            tx.update_withdrawal(withdrawal)

        logger.info(f"Withdrawal #{withdrawal_id} ({withdrawal.kind}) approved by owner {owner_id}")
        return withdrawal

    def decline(self, owner_id: int, withdrawal_id: int, reason: Optional[str] = None) -> Withdrawal:
        with self.ledger.transaction() as tx:
            withdrawal = self._lock_pending_for_owner(tx, owner_id, withdrawal_id)
            withdrawal.status = STATUS_DECLINED
            withdrawal.decided_by = owner_id
            withdrawal.decided_at = tx.now()
            withdrawal.denial_reason = reason
            tx.update_withdrawal(withdrawal)

        logger.info(f"Withdrawal #{withdrawal_id} declined by owner {owner_id}: {reason or '-'}")
        return withdrawal

    # ── LISTS / MESSAGES ──────────────────────────────────

    def get(self, withdrawal_id: int) -> Withdrawal:
        withdrawal = self.repo.get(withdrawal_id)
        if not withdrawal:
            raise NotFoundError(f"❌ Withdrawal #{withdrawal_id} not found.")
        return withdrawal

    def payouts_text(self, user_id: int) -> str:
        history = self.repo.list_for_user(user_id)
        if not history:
            return "💸 You have not requested any payouts yet. See /referrals."
        lines = ["💸 *Your payout requests*\n"]
        for w in history:
            lines.append(self._line(w))
        return "\n".join(lines)

    def pending_for_owner(self, owner_id: int) -> list[Withdrawal]:
        return self.repo.list_pending_for_owner(owner_id)

    def billing_text(self, statuses: Optional[tuple] = None) -> str:
        items = self.repo.list_billing(statuses)
        if not items:
            return "🏦 No billing withdrawals."
        lines = ["🏦 *Billing withdrawals*\n"]
        for w in items:
            lines.append(self._line(w))
        lines.append("\nConfirm a paid-out approved request with the button or /billing\\_withdrawals.")
        return "\n".join(lines)

    def list_billing(self, statuses: Optional[tuple] = None) -> list[Withdrawal]:
        return self.repo.list_billing(statuses)

    def stale_pending(self, hours: int = 24) -> dict[int, list[Withdrawal]]:
        """Pending requests older than `hours`, grouped by company owner."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        grouped: dict[int, list[Withdrawal]] = {}
        for owner_id, withdrawal in self.repo.list_stale_pending(cutoff):
            grouped.setdefault(owner_id, []).append(withdrawal)
        return grouped

    def request_text(self, w: Withdrawal, requester_name: str) -> str:
        """Message shown to the company owner for a pending request."""
        title = "Payout request" if w.kind == KIND_REFERRAL else "Billing withdrawal request"
        msg = (
            f"💸 *{title}* #{w.id}\n\n"
            f"🏢 Company: {md(w.company_name or w.company_id)}\n"
            f"👤 Requested by: {md(requester_name)}\n"
            f"💵 Amount: {money(w.amount)}\n"
        )
        if w.reason:
            msg += f"📝 Reason: {md(w.reason)}\n"
        return msg

    @staticmethod
    def _line(w: Withdrawal) -> str:
        icon = STATUS_ICONS.get(w.status, "•")
        line = f"{icon} #{w.id} {money(w.amount)} from {md(w.company_name or w.company_id)} ({md(w.status)}, {short_date(w.created_at)})"
        if w.denial_reason:
            line += f"\n    Reason: {md(w.denial_reason)}"
        return line

    # ── HELPERS ───────────────────────────────────────────

    @staticmethod
    def _lock_or_raise(tx, withdrawal_id: int) -> Withdrawal:
        withdrawal = tx.lock_withdrawal(withdrawal_id)
        if not withdrawal:
            raise NotFoundError(f"❌ Withdrawal #{withdrawal_id} not found.")
        return withdrawal

    def _lock_pending_for_owner(self, tx, owner_id: int, withdrawal_id: int) -> Withdrawal:
        withdrawal = self._lock_or_raise(tx, withdrawal_id)
        company = tx.lock_company(withdrawal.company_id)
        if company.owner_id != owner_id:
            raise PermissionDeniedError("⛔ Only the company owner can decide on this request.")
        if withdrawal.status != STATUS_PENDING:
            raise InvalidStateError(f"❌ Withdrawal #{withdrawal.id} is already {md(withdrawal.status)}.")
        withdrawal.company_name = company.name
        return withdrawal
