"""
Field masking transforms.

Deterministic, format-preserving obfuscation of sensitive values. Every
transform returns a fixed sentinel instead of raising on malformed input,
so a bad value can neither crash a response nor leak through unmasked.
"""

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

EMAIL_SENTINEL = "***@***"
PHONE_EMPTY_SENTINEL = "***-***-***"
SHORT_SENTINEL = "***"
FINANCIAL_SENTINEL = "$***,***"
PERCENTAGE_SENTINEL = "XX%"
PERSONAL_ID_EMPTY_SENTINEL = "***-***-***"
DOCUMENT_ID_EMPTY_SENTINEL = "***-***"
REDACTED = "***"
REDACTED_LINK = "[REDACTED]"

_PHONE_STRIP = re.compile(r"[^\d+]")
_MAX_PHONE_MIDDLE = 6
# Largest decimal exponent accepted for an amount; beyond it the value is malformed
_MAX_MAGNITUDE = 30


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def mask_email(email: Any, show_domain: bool = True) -> str:
    """
    Mask an email address.

    Example: john.doe@example.com -> j***@example.com
    """
    text = _text(email)
    if "@" not in text:
        return EMAIL_SENTINEL

    local, _, domain = text.partition("@")
    masked_local = local[:1] + "***"

    if show_domain:
        return f"{masked_local}@{domain}"
    return f"{masked_local}@***"


def mask_phone(phone: Any) -> str:
    """
    Mask a phone number, keeping the first and last three characters.

    Example: +855-12-345-678 -> +85-******-678
    """
    text = _text(phone)
    if not text:
        return PHONE_EMPTY_SENTINEL

    cleaned = _PHONE_STRIP.sub("", text)
    length = len(cleaned)

    if length < 4:
        return SHORT_SENTINEL

    end = cleaned[-3:]
    if length <= 6:
        # No middle left to hide once both ends are shown
        return f"***-***-{end}"

    start = cleaned[:3]
    middle = "*" * min(length - 6, _MAX_PHONE_MIDDLE)
    return f"{start}-{middle}-{end}"


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            return None
        number = Decimal(repr(value))
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "").replace("$", "")
        if not cleaned:
            return None
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            return None
    else:
        return None

    if not number.is_finite() or number.adjusted() > _MAX_MAGNITUDE:
        return None
    return number


def mask_financial(amount: Any, show_first_digit: bool = True) -> str:
    """
    Mask a currency amount, keeping only its order of magnitude.

    The integer part is formatted with grouping separators and every digit
    after the first is replaced with X. Amounts below 10 have no magnitude
    worth keeping and render as ``$X``.

    Examples:
        >>> mask_financial(1234567)
        '$1,XXX,XXX'
        >>> mask_financial("abc")
        '$***,***'
    """
    number = _to_decimal(amount)
    if number is None or not show_first_digit:
        return FINANCIAL_SENTINEL

    sign = "-" if number < 0 else ""
    integer_part = int(abs(number))

    if integer_part < 10:
        return f"{sign}$X"

    grouped = f"{integer_part:,}"
    masked = grouped[0] + re.sub(r"\d", "X", grouped[1:])
    return f"{sign}${masked}"


def mask_percentage(percentage: Any) -> str:
    """
    Mask a percentage, keeping its first character.

    Example: 25.5 -> 2XXX%
    """
    text = _text(percentage)
    if not text:
        return PERCENTAGE_SENTINEL
    return text[0] + "X" * (len(text) - 1) + "%"


def mask_personal_id(identifier: Any) -> str:
    """
    Mask a personal identification number, keeping the last 4 characters.

    Example: 123-456-7890 -> ********7890
    """
    text = _text(identifier)
    if not text:
        return PERSONAL_ID_EMPTY_SENTINEL
    if len(text) < 4:
        return SHORT_SENTINEL
    return "*" * (len(text) - 4) + text[-4:]


def mask_bank_account(account: Any) -> str:
    """
    Mask a bank account number, keeping the last 4 characters.

    Example: 1234567890 -> ******7890
    """
    text = _text(account)
    if len(text) < 4:
        return SHORT_SENTINEL
    return "*" * (len(text) - 4) + text[-4:]


def mask_document_id(doc_id: Any) -> str:
    """
    Mask a document number.

    Hyphenated ids keep the first segment, star interior segments and show
    the last 4 characters of the final segment; other ids keep 2 characters
    at each end.

    Example: DOC-2024-001234 -> DOC-****-**1234
    """
    text = _text(doc_id)
    if not text:
        return DOCUMENT_ID_EMPTY_SENTINEL

    parts = text.split("-")
    if len(parts) < 2:
        if len(text) < 4:
            return SHORT_SENTINEL
        return text[:2] + "*" * (len(text) - 4) + text[-2:]

    masked = []
    last = len(parts) - 1
    for index, part in enumerate(parts):
        if index == 0:
            masked.append(part)
        elif index == last:
            hidden = max(0, len(part) - 4)
            masked.append("*" * hidden + part[hidden:])
        else:
            masked.append("*" * len(part))
    return "-".join(masked)


def mask_generic(value: Any, visible_chars: int = 4) -> str:
    """Keep the last ``visible_chars`` characters and star the rest."""
    text = _text(value)
    if not text:
        return SHORT_SENTINEL
    visible_chars = max(0, visible_chars)
    if visible_chars == 0 or len(text) <= visible_chars:
        return "*" * len(text)
    return "*" * (len(text) - visible_chars) + text[-visible_chars:]


# ============================================================================
# Record-kind transforms
# ============================================================================

def approximate_magnitude(amount: Any) -> Any:
    """
    Round an amount down to its leading digit's power of ten.

    Keeps the value numeric so clients can still sort and chart it.
    Example: 1234567 -> 1000000
    """
    number = _to_decimal(amount)
    if number is None:
        return REDACTED

    integer_part = int(abs(number))
    if integer_part == 0:
        return 0
    magnitude = 10 ** Decimal(integer_part).adjusted()
    rounded = (integer_part // magnitude) * magnitude
    return -rounded if number < 0 else rounded


def round_down_to_step(value: Any, step: int = 5) -> Any:
    """
    Round a numeric value down to a multiple of ``step``.

    Example: 23.7 -> 20
    """
    number = _to_decimal(value)
    if number is None:
        return REDACTED
    return math.floor(number / step) * step


def redact(value: Any) -> str:
    return REDACTED


def redact_link(value: Any) -> str:
    return REDACTED_LINK


TRANSFORMS: Dict[str, Callable[[Any], Any]] = {
    "email": mask_email,
    "phone": mask_phone,
    "financial": mask_financial,
    "percentage": mask_percentage,
    "personal_id": mask_personal_id,
    "bank_account": mask_bank_account,
    "document_id": mask_document_id,
    "generic": mask_generic,
    "approximate_magnitude": approximate_magnitude,
    "round_down_to_step": round_down_to_step,
    "redact": redact,
    "redact_link": redact_link,
}
