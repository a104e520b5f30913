import re
import uuid
from typing import Optional

_NON_DIGITS = re.compile(r"\D+")
_MOBILE = re.compile(r"^01\d{9}$")
_ZIP = re.compile(r"^\d{4}$")

def digits_only(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", value or "")

def normalize_phone(raw: Optional[str]) -> str:
    """Reduce +8801XXXXXXXXX / 8801XXXXXXXXX / 01XXXXXXXXX to 01XXXXXXXXX"""
    digits = digits_only(raw)
    if digits.startswith("8801") and len(digits) >= 13:
        return digits[2:13]
    if digits.startswith("01") and len(digits) >= 11:
        return digits[:11]
    return digits

def is_valid_phone(raw: Optional[str]) -> bool:
    return bool(_MOBILE.match(normalize_phone(raw)))

def is_valid_zip(raw: Optional[str]) -> bool:
    return bool(_ZIP.match((raw or "").strip()))

def is_email(value: str) -> bool:
    return "@" in value

def normalize_email(value: str) -> str:
    return value.strip().lower()

def phone_matches(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two phone numbers typed with or without a country code"""
    da, db = digits_only(a), digits_only(b)
    if not da or not db:
        return False
    if da == db:
        return True
    return da[-11:] == db[-11:] or da[-10:] == db[-10:]

def is_uuid(value: Optional[str]) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True
