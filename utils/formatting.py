"""
utils/formatting.py
-------------------
Small helpers shared by services when building chat messages,
plus parsing of user-typed amounts.
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from telegram.helpers import escape_markdown

from config import CURRENCY_SYMBOL

CENT = Decimal("0.01")

# Arabic-Indic digits are accepted the same as ASCII ones.
_AR_DIGITS = str.maketrans("٠١٢٣٤٥٦٧٨٩", "0123456789")


def to_money(value) -> Decimal:
    """Coerce an int/float/str/Decimal into a 2-decimal Decimal."""
    if isinstance(value, Decimal):
        dec = value
    else:
        dec = Decimal(str(value))
    return dec.quantize(CENT, rounding=ROUND_HALF_UP)


def money(value) -> str:
    """Format an amount for display, e.g. ``$1,234.50``."""
    amount = to_money(value or 0)
    sign = "-" if amount < 0 else ""
    return f"{sign}{CURRENCY_SYMBOL}{abs(amount):,.2f}"


def percent(value) -> str:
    return f"{Decimal(value).normalize():f}%"


def parse_amount(text: str) -> Optional[Decimal]:
    """
    Parse a user-typed amount such as "50", "$12.5" or "١٠٠".

    Returns:
        A positive Decimal rounded to cents, or None if the text is not a
        positive number.
    """
    if text is None:
        return None
    cleaned = text.translate(_AR_DIGITS).strip().replace(CURRENCY_SYMBOL, "").replace(",", "")
    if not re.fullmatch(r"\d+(\.\d+)?", cleaned):
        return None
    try:
        amount = to_money(cleaned)
    except InvalidOperation:
        return None
    return amount if amount > 0 else None


def parse_int(text: str) -> Optional[int]:
    if text is None:
        return None
    cleaned = text.translate(_AR_DIGITS).strip()
    return int(cleaned) if cleaned.isdigit() else None


def md(text) -> str:
    """Escape user-supplied text for legacy Markdown messages."""
    return escape_markdown(str(text if text is not None else ""))


# Escaped markers keep their character; bare ones are emphasis and go.
_MARKDOWN_MARKERS = re.compile(r"\\([_*`\[])|[_*`]")


def plain(text: str, limit: Optional[int] = None) -> str:
    """
    Turn a legacy Markdown message into plain text, e.g. for callback
    alerts, optionally cut to `limit` characters.
    """
    text = _MARKDOWN_MARKERS.sub(lambda m: m.group(1) or "", text or "")
    if limit is not None and len(text) > limit:
        text = text[: limit - 1] + "…"
    return text


def display_name(username: Optional[str], first_name: Optional[str], telegram_id: int) -> str:
    if username:
        return f"@{username}"
    if first_name:
        return first_name
    return f"User {telegram_id}"


def short_date(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"
