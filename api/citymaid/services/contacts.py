from __future__ import annotations

import re

_NON_DIGIT_RE = re.compile(r"\D")
_COUNTRY_CODE_RE = re.compile(r"^(\+\d{1,4})[\s-]")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def mask_contact(contact: str | None) -> str:
    """Hide the middle digits of a phone number, keeping a short prefix and suffix.

    ``+977 9812345678`` becomes ``+977 98******78``. Values with fewer than four
    characters, or without enough digits to keep anything, collapse to ``****``.
    """
    if not contact or len(contact) < 4:
        return "****"

    country_code = ""
    number = contact
    match = _COUNTRY_CODE_RE.match(contact)
    if match:
        country_code = match.group(1)
        number = contact[match.end() :]

    digits = _NON_DIGIT_RE.sub("", number)
    if len(digits) < 4:
        return "****"

    if len(digits) >= 10:
        start_digits = 3 if len(digits) >= 12 else 2
        end_digits = 2
    elif len(digits) >= 7:
        start_digits = 2
        end_digits = 2
    else:
        start_digits = 2
        end_digits = 1

    hidden = max(3, len(digits) - start_digits - end_digits)
    masked = f"{digits[:start_digits]}{'*' * hidden}{digits[-end_digits:]}"
    if country_code:
        return f"{country_code} {masked}"
    return masked


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value))
