"""
In-memory stand-ins for the PostgreSQL repositories.

FakeStore holds every table as plain Python objects. FakeLedger gives the
same all-or-nothing guarantee as a database transaction: the store is
snapshotted on entry and restored if the block raises.
"""
import copy
from types import SimpleNamespace
from unittest.mock import AsyncMock
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from psycopg2.errors import UniqueViolation

from models.company import Company
from models.product import STATUS_OUT_OF_STOCK, Product
from models.referral import Referral, ReferralCode
from models.sale import Sale
from models.settings import PlatformSettings
from models.user import User
from models.withdrawal import KIND_BILLING, KIND_REFERRAL, STATUS_APPROVED, STATUS_PENDING, Withdrawal


def _now():
    return datetime.now(timezone.utc)


class FakeStore:
    def __init__(self):
        self.users: dict[int, User] = {}
        self.companies: dict[int, Company] = {}
        self.products: dict[int, Product] = {}
        self.codes: dict[str, ReferralCode] = {}
        self.referrals: list[Referral] = []
        self.sales: dict[str, Sale] = {}
        self.withdrawals: dict[int, Withdrawal] = {}
        self.items: dict[tuple[str, int], list[int]] = {}
        self.joined: set[tuple[int, int]] = set()
        self.settings = PlatformSettings(
            platform_fee_percent=Decimal("1.5"),
            referral_commission_percent=Decimal("2.5"),
            buyer_discount_percent=Decimal("1"),
            min_withdrawal_amount=Decimal("10.00"),
        )
        self._ids = {"company": 0, "product": 0, "code": 0, "referral": 0, "sale": 0, "withdrawal": 0}

    def next_id(self, table: str) -> int:
        self._ids[table] += 1
        return self._ids[table]

    # ── seeding helpers ──

    def add_user(self, telegram_id: int, **fields) -> User:
        user = User(telegram_id=telegram_id, first_name=fields.pop("first_name", f"User{telegram_id}"), **fields)
        user.created_at = _now()
        self.users[telegram_id] = user
        return user

    def add_company(self, owner_id: int, name: str, prefix: str, **fields) -> Company:
        company = Company(owner_id=owner_id, name=name, code_prefix=prefix, **fields)
        company.id = self.next_id("company")
        company.created_at = _now()
        self.companies[company.id] = company
        return company

    def add_product(self, company_id: int, title: str, price: Decimal, quantity: int, **fields) -> Product:
        product = Product(company_id=company_id, title=title, price=price, quantity=quantity, **fields)
        if quantity == 0:
            product.status = STATUS_OUT_OF_STOCK
        product.id = self.next_id("product")
        product.created_at = _now()
        self.products[product.id] = product
        return product

    def add_code(self, code: str, user_id: int, company_id: int, active: bool = True) -> ReferralCode:
        rc = ReferralCode(code=code, user_id=user_id, company_id=company_id, active=active)
        rc.id = self.next_id("code")
        rc.created_at = _now()
        self.codes[code] = rc
        return rc

    def add_withdrawal(self, kind: str, user_id: int, company_id: int, amount: Decimal, status: str = STATUS_PENDING, **fields) -> Withdrawal:
        w = Withdrawal(kind=kind, user_id=user_id, company_id=company_id, amount=amount, status=status, **fields)
        w.id = self.next_id("withdrawal")
        w.created_at = fields.get("created_at") or _now()
        self.withdrawals[w.id] = w
        return w

    # ── joined views ──

    def product_view(self, product_id: int) -> Optional[Product]:
        product = self.products.get(product_id)
        if not product:
            return None
        view = copy.copy(product)
        view.company_name = self.companies[product.company_id].name
        return view

    def code_view(self, code: str) -> Optional[ReferralCode]:
        rc = self.codes.get(code)
        if not rc:
            return None
        view = copy.copy(rc)
        view.company_name = self.companies[rc.company_id].name
        return view

    def withdrawal_view(self, withdrawal_id: int) -> Optional[Withdrawal]:
        w = self.withdrawals.get(withdrawal_id)
        if not w:
            return None
        view = copy.copy(w)
        view.company_name = self.companies[w.company_id].name
        return view


def _non_negative(value: Decimal, what: str) -> Decimal:
    # Mirrors the CHECK (... >= 0) constraints of the schema.
    if value < 0:
        raise ValueError(f"{what} would become negative")
    return value


class FakeLedgerTransaction:
    def __init__(self, store: FakeStore):
        self.store = store

    def find_sale(self, sale_key):
        sale = self.store.sales.get(sale_key)
        return copy.copy(sale) if sale else None

    def insert_sale(self, sale):
        if sale.sale_key in self.store.sales:
            raise UniqueViolation("duplicate key value violates unique constraint \"sales_sale_key_key\"")
        sale.id = self.store.next_id("sale")
        sale.created_at = _now()
        self.store.sales[sale.sale_key] = copy.copy(sale)
        return sale

    def lock_product(self, product_id):
        return self.store.product_view(product_id)

    def decrement_stock(self, product_id, quantity):
        product = self.store.products[product_id]
        product.quantity = int(_non_negative(Decimal(product.quantity - quantity), "quantity"))
        if product.quantity == 0:
            product.status = STATUS_OUT_OF_STOCK
        return product.quantity

    def lock_company(self, company_id):
        company = self.store.companies.get(company_id)
        return copy.copy(company) if company else None

    def credit_company(self, company_id, amount):
        company = self.store.companies[company_id]
        company.billing_balance += amount
        return company.billing_balance

    def debit_company(self, company_id, amount):
        company = self.store.companies[company_id]
        company.billing_balance = _non_negative(company.billing_balance - amount, "billing_balance")
        return company.billing_balance

    def load_settings(self, lock=False):
        return copy.copy(self.store.settings)

    def credit_platform(self, amount):
        self.store.settings.platform_balance += amount
        return self.store.settings.platform_balance

    def lock_user(self, telegram_id):
        user = self.store.users.get(telegram_id)
        return copy.copy(user) if user else None

    def credit_user(self, telegram_id, balance, amount):
        user = self.store.users[telegram_id]
        setattr(user, balance, getattr(user, balance) + amount)
        return getattr(user, balance)

    def debit_user(self, telegram_id, balance, amount):
        user = self.store.users[telegram_id]
        setattr(user, balance, _non_negative(getattr(user, balance) - amount, balance))
        return getattr(user, balance)

    def lock_referral_code(self, code):
        return self.store.code_view(code)

    def mark_code_used(self, code_id, buyer_id):
        for rc in self.store.codes.values():
            if rc.id == code_id:
                rc.active = False
                rc.used_by = buyer_id
                rc.used_at = _now()

    def insert_referral(self, referral):
        referral.id = self.store.next_id("referral")
        referral.created_at = _now()
        self.store.referrals.append(copy.copy(referral))
        return referral

    def referral_earnings(self, telegram_id, company_id):
        return sum(
            (r.commission for r in self.store.referrals
             if r.referrer_id == telegram_id and r.company_id == company_id),
            Decimal("0.00"),
        )

    def reserved_referral_withdrawals(self, telegram_id, company_id):
        return sum(
            (w.amount for w in self.store.withdrawals.values()
             if w.kind == KIND_REFERRAL and w.user_id == telegram_id and w.company_id == company_id
             and w.status in (STATUS_PENDING, STATUS_APPROVED)),
            Decimal("0.00"),
        )

    def pending_billing_withdrawals(self, company_id):
        return sum(
            (w.amount for w in self.store.withdrawals.values()
             if w.kind == KIND_BILLING and w.company_id == company_id
             and w.status in (STATUS_PENDING, STATUS_APPROVED)),
            Decimal("0.00"),
        )

    def insert_withdrawal(self, withdrawal):
        withdrawal.id = self.store.next_id("withdrawal")
        withdrawal.created_at = _now()
        self.store.withdrawals[withdrawal.id] = copy.copy(withdrawal)
        return withdrawal

    def lock_withdrawal(self, withdrawal_id):
        return self.store.withdrawal_view(withdrawal_id)

    def update_withdrawal(self, withdrawal):
        stored = copy.copy(withdrawal)
        stored.company_name = None
        self.store.withdrawals[withdrawal.id] = stored

    @staticmethod
    def now():
        return _now()


class FakeLedger:
    def __init__(self, store: FakeStore):
        self.store = store
        self.commits = 0
        self.rollbacks = 0

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy(self.store.__dict__)
        try:
            yield FakeLedgerTransaction(self.store)
        except Exception:
            self.store.__dict__.clear()
            self.store.__dict__.update(snapshot)
            self.rollbacks += 1
            raise
        self.commits += 1


class FakeUserRepo:
    def __init__(self, store: FakeStore):
        self.store = store

    def ensure_user(self, telegram_id, first_name=None, last_name=None, username=None):
        username = username.lower() if username else None
        if username:
            for other in self.store.users.values():
                if other.username == username and other.telegram_id != telegram_id:
                    other.username = None
        user = self.store.users.get(telegram_id)
        if user is None:
            user = self.store.add_user(telegram_id, first_name=first_name)
        user.first_name = first_name
        user.last_name = last_name
        user.username = username
        user.last_active = _now()
        return copy.copy(user)

    def get(self, telegram_id):
        user = self.store.users.get(telegram_id)
        return copy.copy(user) if user else None

    def get_by_username(self, username):
        username = (username or "").lstrip("@").lower()
        for user in self.store.users.values():
            if user.username == username:
                return copy.copy(user)
        return None

    def set_flag(self, telegram_id, flag, value):
        user = self.store.users.get(telegram_id)
        if not user:
            return False
        setattr(user, flag, value)
        return True

    def list_admin_ids(self):
        return [u.telegram_id for u in self.store.users.values() if u.is_admin]

    def list_page(self, offset, limit):
        users = sorted(self.store.users.values(), key=lambda u: (u.created_at, u.telegram_id), reverse=True)
        return [copy.copy(u) for u in users[offset:offset + limit]]

    def search(self, query, limit=10):
        query = query.strip().lstrip("@").lower()
        return [
            copy.copy(u) for u in self.store.users.values()
            if str(u.telegram_id) == query
            or any(query in (value or "").lower() for value in (u.username, u.first_name, u.last_name))
        ][:limit]

    def counts(self):
        users = self.store.users.values()
        return {"total": len(users), "banned": sum(1 for u in users if u.banned), "new_today": len(users)}

    def join_company(self, telegram_id, company_id):
        self.store.joined.add((telegram_id, company_id))

    def joined_company_count(self, telegram_id):
        return sum(1 for uid, _ in self.store.joined if uid == telegram_id)

    def add_item(self, table, telegram_id, product_id):
        items = self.store.items.setdefault((table, telegram_id), [])
        if product_id in items:
            return False
        items.append(product_id)
        return True

    def remove_item(self, table, telegram_id, product_id=None):
        items = self.store.items.get((table, telegram_id), [])
        if product_id is None:
            removed = len(items)
            items.clear()
            return removed
        if product_id in items:
            items.remove(product_id)
            return 1
        return 0

    def list_items(self, table, telegram_id):
        return [self.store.product_view(pid) for pid in self.store.items.get((table, telegram_id), [])]


class FakeCompanyRepo:
    def __init__(self, store: FakeStore):
        self.store = store

    def add(self, company):
        company.id = self.store.next_id("company")
        company.created_at = _now()
        self.store.companies[company.id] = copy.copy(company)
        return company

    def get(self, company_id):
        company = self.store.companies.get(company_id)
        return copy.copy(company) if company else None

    def list_by_owner(self, owner_id):
        return [copy.copy(c) for c in self.store.companies.values() if c.owner_id == owner_id]

    def prefix_exists(self, prefix):
        return any(c.code_prefix == prefix for c in self.store.companies.values())

    def name_exists(self, name, exclude_id=None):
        return any(c.name.lower() == name.lower() and c.id != exclude_id for c in self.store.companies.values())

    def set_status(self, company_id, status):
        self.store.companies[company_id].status = status
        return True

    def list_page(self, offset, limit):
        companies = sorted(self.store.companies.values(), key=lambda c: c.id)
        return [copy.copy(c) for c in companies[offset:offset + limit]]

    def search(self, query, limit=10):
        query = query.strip()
        return [
            copy.copy(c) for c in self.store.companies.values()
            if str(c.id) == query or c.code_prefix == query.upper() or query.lower() in c.name.lower()
        ][:limit]

    def update_field(self, company_id, field, value):
        setattr(self.store.companies[company_id], field, value)
        return True

    def counts(self):
        companies = self.store.companies.values()
        return {
            "total": len(companies),
            "active": sum(1 for c in companies if c.is_active()),
            "billing_total": sum((c.billing_balance for c in companies), Decimal("0.00")),
        }


class FakeProductRepo:
    def __init__(self, store: FakeStore):
        self.store = store

    def add(self, product):
        product.id = self.store.next_id("product")
        product.created_at = _now()
        self.store.products[product.id] = copy.copy(product)
        return product

    def get(self, product_id):
        return self.store.product_view(product_id)

    def list_by_company(self, company_id):
        return [self.store.product_view(p.id) for p in self.store.products.values() if p.company_id == company_id]

    def browse(self, page, per_page):
        visible = [
            self.store.product_view(p.id) for p in self.store.products.values()
            if self.store.companies[p.company_id].is_active()
        ]
        return visible[page * per_page:(page + 1) * per_page], len(visible)

    def title_exists(self, company_id, title, exclude_id=None):
        return any(
            p.company_id == company_id and p.title.lower() == title.lower() and p.id != exclude_id
            for p in self.store.products.values()
        )

    def update_field(self, product_id, field, value):
        setattr(self.store.products[product_id], field, value)
        return True

    def delete(self, product_id):
        return self.store.products.pop(product_id, None) is not None


class FakeReferralRepo:
    def __init__(self, store: FakeStore):
        self.store = store

    def add_code(self, code):
        code.id = self.store.next_id("code")
        code.created_at = _now()
        self.store.codes[code.code] = copy.copy(code)
        return code

    def code_exists(self, code):
        return code in self.store.codes

    def get_code(self, code):
        return self.store.code_view(code)

    def list_codes(self, user_id, active_only=False):
        return [
            self.store.code_view(c.code) for c in self.store.codes.values()
            if c.user_id == user_id and (c.active or not active_only)
        ]

    def stats(self, user_id, month_start):
        mine = [r for r in self.store.referrals if r.referrer_id == user_id]
        return {
            "total_referrals": len(mine),
            "total_earnings": sum((r.commission for r in mine), Decimal("0.00")),
            "month_earnings": sum((r.commission for r in mine if r.created_at >= month_start), Decimal("0.00")),
        }

    def company_referrers(self, company_id, limit=5):
        grouped = {}
        for r in self.store.referrals:
            if r.company_id != company_id:
                continue
            row = grouped.setdefault(r.referrer_id, {
                "user_id": r.referrer_id,
                "username": self.store.users[r.referrer_id].username,
                "first_name": self.store.users[r.referrer_id].first_name,
                "referrals": 0,
                "revenue": Decimal("0.00"),
                "commission": Decimal("0.00"),
            })
            row["referrals"] += 1
            row["revenue"] += r.amount
            row["commission"] += r.commission
        return sorted(grouped.values(), key=lambda row: row["revenue"], reverse=True)[:limit]

    def count_codes(self, company_id=None):
        codes = [c for c in self.store.codes.values() if company_id is None or c.company_id == company_id]
        return {
            "total": len(codes),
            "active": sum(1 for c in codes if c.active),
            "used": sum(1 for c in codes if not c.active),
        }


class FakeSaleRepo:
    def __init__(self, store: FakeStore):
        self.store = store

    def _matching(self, buyer_id=None, company_id=None, since=None, until=None):
        return [
            s for s in self.store.sales.values()
            if (buyer_id is None or s.buyer_id == buyer_id)
            and (company_id is None or s.company_id == company_id)
            and (since is None or s.created_at >= since)
            and (until is None or s.created_at < until)
        ]

    def totals(self, since=None, until=None, company_id=None):
        sales = self._matching(company_id=company_id, since=since, until=until)

        def total(attr):
            return sum((getattr(s, attr) for s in sales), Decimal("0.00"))

        return {
            "count": len(sales),
            "volume": total("amount"),
            "platform_fees": total("platform_fee"),
            "referrer_bonuses": total("referrer_bonus"),
            "buyer_bonuses": total("buyer_bonus"),
            "seller_earnings": total("seller_earnings"),
            "referred": sum(1 for s in sales if s.referral_code),
        }

    def company_totals(self, company_id):
        totals = self.totals(company_id=company_id)
        return {"count": totals["count"], "volume": totals["volume"], "earnings": totals["seller_earnings"]}

    def list_by_buyer(self, buyer_id, limit=20):
        sales = sorted(self._matching(buyer_id=buyer_id), key=lambda s: s.id, reverse=True)
        return [
            {
                "id": s.id,
                "created_at": s.created_at,
                "product": self.store.products[s.product_id].title if s.product_id in self.store.products else None,
                "company": self.store.companies[s.company_id].name,
                "quantity": s.quantity,
                "amount": s.amount,
                "referral_code": s.referral_code,
                "buyer_bonus": s.buyer_bonus,
            }
            for s in sales[:limit]
        ]

    def count_by_buyer(self, buyer_id):
        return len(self._matching(buyer_id=buyer_id))

    def top_products(self, company_id, limit=5):
        grouped = {}
        for s in self._matching(company_id=company_id):
            product = self.store.products.get(s.product_id)
            title = product.title if product else "Deleted product"
            row = grouped.setdefault(title, {"product": title, "units": 0, "volume": Decimal("0.00")})
            row["units"] += s.quantity
            row["volume"] += s.amount
        return sorted(grouped.values(), key=lambda row: row["volume"], reverse=True)[:limit]


class FakeSettingsRepo:
    def __init__(self, store: FakeStore):
        self.store = store

    def get(self):
        return copy.copy(self.store.settings)

    def update_field(self, field, value):
        setattr(self.store.settings, field, value)
        return True

    def set_maintenance(self, enabled):
        self.store.settings.maintenance_mode = enabled
        return True


class FakeWithdrawalRepo:
    def __init__(self, store: FakeStore):
        self.store = store

    def get(self, withdrawal_id):
        return self.store.withdrawal_view(withdrawal_id)

    def list_for_user(self, user_id):
        return [
            self.store.withdrawal_view(w.id) for w in self.store.withdrawals.values()
            if w.kind == KIND_REFERRAL and w.user_id == user_id
        ]

    def list_pending_for_owner(self, owner_id):
        return [
            self.store.withdrawal_view(w.id) for w in self.store.withdrawals.values()
            if w.status == STATUS_PENDING and self.store.companies[w.company_id].owner_id == owner_id
        ]

    def list_stale_pending(self, older_than):
        return [
            (self.store.companies[w.company_id].owner_id, self.store.withdrawal_view(w.id))
            for w in self.store.withdrawals.values()
            if w.status == STATUS_PENDING and w.created_at < older_than
        ]


def make_update(user_id: int, username: str = None, data: str = None):
    """A minimal stand-in for telegram.Update: a message, or a button press when `data` is given."""
    user = SimpleNamespace(id=user_id, username=username, first_name=f"User{user_id}", last_name=None)
    message = SimpleNamespace(reply_text=AsyncMock(), reply_document=AsyncMock(), reply_photo=AsyncMock())
    query = None
    if data is not None:
        query = SimpleNamespace(
            data=data,
            answer=AsyncMock(),
            edit_message_text=AsyncMock(),
            message=message,
        )
    return SimpleNamespace(effective_user=user, effective_message=message, callback_query=query, message=message)


def make_context(args=None, user_data=None):
    return SimpleNamespace(
        args=args or [],
        user_data=user_data if user_data is not None else {},
        bot=SimpleNamespace(send_message=AsyncMock()),
    )
