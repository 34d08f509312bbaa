"""
handlers/keyboards.py
----------------------
Typed callback data and the inline keyboards that carry it.

Callback data is a string `action:arg[:arg]`, at most 64 bytes as
Telegram requires. CallbackData parses it once so handlers read typed
arguments instead of splitting strings.
"""

from dataclasses import dataclass

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from models.product import Product
from models.withdrawal import KIND_BILLING, STATUS_APPROVED, Withdrawal

MAX_CALLBACK_BYTES = 64
SEPARATOR = ":"


@dataclass(frozen=True)
class CallbackData:
    action: str
    args: tuple[str, ...] = ()

    @classmethod
    def parse(cls, data: str) -> "CallbackData":
        """
        Raises:
            ValueError: Empty data or empty action.
        """
        if not data:
            raise ValueError("Empty callback data")
        action, *args = data.split(SEPARATOR)
        if not action:
            raise ValueError(f"Callback data without action: {data!r}")
        return cls(action=action, args=tuple(args))

    def pack(self) -> str:
        data = SEPARATOR.join((self.action, *self.args))
        if len(data.encode("utf-8")) > MAX_CALLBACK_BYTES:
            raise ValueError(f"Callback data too long: {data!r}")
        return data

    def arg(self, index: int, default: str = "") -> str:
        return self.args[index] if index < len(self.args) else default

    def int_arg(self, index: int) -> int:
        """
        Raises:
            ValueError: Missing or non-integer argument.
        """
        return int(self.args[index])


def cb(action: str, *args) -> str:
    return CallbackData(action, tuple(str(a) for a in args)).pack()


# ── Keyboards ─────────────────────────────────────────────

def browse_keyboard(products: list[Product], page: int, pages: int) -> InlineKeyboardMarkup:
    rows = [
        [InlineKeyboardButton(f"📦 {p.title[:40]}", callback_data=cb("product", p.id))]
        for p in products
    ]
    nav = []
    if page > 0:
        nav.append(InlineKeyboardButton("⬅️ Prev", callback_data=cb("browse", page - 1)))
    if page < pages - 1:
        nav.append(InlineKeyboardButton("Next ➡️", callback_data=cb("browse", page + 1)))
    if nav:
        rows.append(nav)
    return InlineKeyboardMarkup(rows)


def product_keyboard(product: Product) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("⭐ Favorite", callback_data=cb("fav", "add", product.id)),
            InlineKeyboardButton("🛒 Add to cart", callback_data=cb("cart", "add", product.id)),
        ],
        [InlineKeyboardButton("🔗 Get referral code", callback_data=cb("code", product.company_id))],
        [InlineKeyboardButton("🏢 About the company", callback_data=cb("company", product.company_id))],
    ])


def list_keyboard(kind: str, products: list[Product]) -> InlineKeyboardMarkup:
    """Remove buttons for the favorites ('fav') or cart ('cart') list."""
    rows = [
        [InlineKeyboardButton(f"🗑️ {p.title[:40]}", callback_data=cb(kind, "del", p.id))]
        for p in products
    ]
    if kind == "cart" and products:
        rows.append([InlineKeyboardButton("🧹 Clear cart", callback_data=cb("cart", "clear"))])
    return InlineKeyboardMarkup(rows)


def sale_confirm_keyboard(sale_key: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton("✅ Confirm", callback_data=cb("sale", "ok", sale_key)),
        InlineKeyboardButton("❌ Cancel", callback_data=cb("sale", "cancel", sale_key)),
    ]])


def withdrawal_decision_keyboard(withdrawal: Withdrawal) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton("✅ Approve", callback_data=cb("wd", "approve", withdrawal.id)),
        InlineKeyboardButton("❌ Decline", callback_data=cb("wd", "decline", withdrawal.id)),
    ]])


def billing_confirm_keyboard(withdrawal: Withdrawal) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton(
            f"💸 Mark #{withdrawal.id} as paid", callback_data=cb("billing", "confirm", withdrawal.id)
        ),
    ]])


def billing_list_keyboard(withdrawals: list[Withdrawal]) -> InlineKeyboardMarkup:
    rows = [
        [InlineKeyboardButton(f"💸 Mark #{w.id} as paid", callback_data=cb("billing", "confirm", w.id))]
        for w in withdrawals
        if w.kind == KIND_BILLING and w.status == STATUS_APPROVED
    ]
    return InlineKeyboardMarkup(rows)


def leaderboard_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton("🏆 All time", callback_data=cb("lb", "all")),
        InlineKeyboardButton("📅 This month", callback_data=cb("lb", "month")),
    ]])


def admin_keyboard(maintenance: bool) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("🔄 Refresh", callback_data=cb("admin", "stats")),
            InlineKeyboardButton("⚙️ Settings", callback_data=cb("admin", "settings")),
        ],
        [
            InlineKeyboardButton("👥 Users", callback_data=cb("admin", "users", 0)),
            InlineKeyboardButton("🏢 Companies", callback_data=cb("admin", "companies", 0)),
        ],
        [InlineKeyboardButton(
            "🔧 Maintenance OFF" if maintenance else "🔧 Maintenance ON",
            callback_data=cb("admin", "maint", "off" if maintenance else "on"),
        )],
    ])


def directory_keyboard(kind: str, entries: list, page: int, pages: int) -> InlineKeyboardMarkup:
    """
    Paged admin list. `kind` is 'users' or 'companies'; each entry opens
    its detail view through admin:user:<id> or admin:co:<id>.
    """
    if kind == "users":
        rows = [
            [InlineKeyboardButton(f"👤 {u.display_name[:40]}", callback_data=cb("admin", "user", u.telegram_id))]
            for u in entries
        ]
    else:
        rows = [
            [InlineKeyboardButton(f"🏢 {c.name[:40]}", callback_data=cb("admin", "co", c.id))]
            for c in entries
        ]
    nav = []
    if page > 0:
        nav.append(InlineKeyboardButton("⬅️ Prev", callback_data=cb("admin", kind, page - 1)))
    if page < pages - 1:
        nav.append(InlineKeyboardButton("Next ➡️", callback_data=cb("admin", kind, page + 1)))
    if nav:
        rows.append(nav)
    return InlineKeyboardMarkup(rows)
