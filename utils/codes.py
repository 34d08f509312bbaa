"""
utils/codes.py
--------------
Generation and validation of company code prefixes and referral codes.

A referral code looks like ``AB-7K2Q9X``: the company's two-letter prefix,
a dash, then six upper-case alphanumerics.
"""

import re
import secrets
import string

_ALPHABET = string.ascii_uppercase + string.digits
CODE_PATTERN = re.compile(r"^[A-Z]{2}-[A-Z0-9]{6}$")


def code_prefix_from_name(name: str) -> str:
    """First two ASCII letters of the name, or two random letters."""
    letters = re.sub(r"[^A-Za-z]", "", name or "").upper()
    if len(letters) >= 2:
        return letters[:2]
    return random_prefix()


def random_prefix() -> str:
    return "".join(secrets.choice(string.ascii_uppercase) for _ in range(2))


def new_referral_code(prefix: str) -> str:
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{prefix.upper()}-{suffix}"


def normalize_code(text: str) -> str:
    return (text or "").strip().upper()


def looks_like_code(text: str) -> bool:
    return bool(CODE_PATTERN.match(normalize_code(text)))
