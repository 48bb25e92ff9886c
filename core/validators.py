from __future__ import annotations

import re

DEFAULT_COUNTRY_CODE = "233"
PASSWORD_MIN_LENGTH = 6

_ID_CARD_RE = re.compile(r"^[A-Z]{3}-\d{9}-\d{2}$", re.IGNORECASE)
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.\-]{3,20}$")
_LICENSE_RE = re.compile(r"^[A-Za-z0-9\-]{5,}$")
_LOCAL_PHONE_RE = re.compile(r"^0(?P<subscriber>\d{9})$")
_INTL_PHONE_RE = re.compile(r"^\+?(?P<country>\d{1,3})(?P<subscriber>\d{9})$")
_PHONE_SEPARATORS_RE = re.compile(r"[\s\-()]")
_DIGIT_RE = re.compile(r"\d")


def is_valid_name(value: str | None, min_length: int = 3) -> bool:
    text = (value or "").strip()
    if not text or len(text) < max(1, int(min_length)):
        return False
    return _DIGIT_RE.search(text) is None


def is_valid_id_card(value: str | None) -> bool:
    return _ID_CARD_RE.match((value or "").strip()) is not None


def is_valid_email(value: str | None) -> bool:
    return _EMAIL_RE.match((value or "").strip()) is not None


def is_valid_username(value: str | None) -> bool:
    return _USERNAME_RE.match((value or "").strip()) is not None


def is_valid_password(value: str | None) -> bool:
    return len((value or "").strip()) >= PASSWORD_MIN_LENGTH


def is_valid_license_number(value: str | None) -> bool:
    return _LICENSE_RE.match((value or "").strip()) is not None


def is_valid_phone(value: str | None) -> bool:
    text = _strip_phone_separators(value)
    if _LOCAL_PHONE_RE.match(text):
        return True
    if text.startswith("0"):
        return False
    return _INTL_PHONE_RE.match(text) is not None


def normalize_phone(value: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Rewrite a local or international number to `<country code><9 digits>`.

    Input that is not an accepted phone form is returned trimmed and untouched,
    so callers can still use it as an opaque subscriber key.
    """
    text = _strip_phone_separators(value)
    local = _LOCAL_PHONE_RE.match(text)
    if local is not None:
        return f"{country_code}{local.group('subscriber')}"
    if not text.startswith("0"):
        intl = _INTL_PHONE_RE.match(text)
        if intl is not None:
            return f"{intl.group('country')}{intl.group('subscriber')}"
    return (value or "").strip()


def parse_amount(value: str | None) -> int | None:
    text = (value or "").strip().replace(",", "")
    if not text or not text.isdigit():
        return None
    return int(text)


def is_amount_in_range(amount: int | None, minimum: int, maximum: int) -> bool:
    if amount is None:
        return False
    return minimum <= amount <= maximum


def _strip_phone_separators(value: str | None) -> str:
    return _PHONE_SEPARATORS_RE.sub("", (value or "").strip())


def lookup_key_for(query: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> tuple[str, str]:
    """Pick the identity key a free-text lookup refers to: card, phone or license."""
    text = (query or "").strip()
    if is_valid_id_card(text):
        return "id_card_number", text.upper()
    if is_valid_phone(text):
        return "phone", normalize_phone(text, country_code)
    return "license_number", text.upper()
