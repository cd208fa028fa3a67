"""Amount and address helpers shared across the node.


- Amounts are exact decimals (base units) and travel as strings over JSON.
- AMOUNT_MAX_DIGITS / AMOUNT_DECIMALS mirror the NUMERIC(78, 18) column type.
- Addresses are stored lowercased; the zero address denotes the native asset.
"""

import re
from decimal import Decimal, InvalidOperation

AMOUNT_MAX_DIGITS = 78
AMOUNT_DECIMALS = 18
ZERO = Decimal("0")

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_AMOUNT_RE = re.compile(r"^\d{1,60}(\.\d{0,18})?$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def to_amount(value: "str | int | Decimal") -> Decimal:
    """
    Parse a non-negative amount into a Decimal without ever passing through float.
    """
    if isinstance(value, float):
        raise TypeError("binary floats are not accepted as amounts")
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip()
        if not _AMOUNT_RE.match(text):
            raise ValueError(f"invalid amount: {value!r}")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"invalid amount: {value!r}")
    if amount < ZERO or not amount.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return amount


def format_amount(amount: Decimal) -> str:
    """
    Render a Decimal as a plain string with no exponent and no trailing zeros.
    """
    if amount == ZERO:
        return "0"
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def is_address(value) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def normalize_address(value: str) -> str:
    return value.strip().lower()


def is_native(asset: str) -> bool:
    return normalize_address(asset) == ZERO_ADDRESS
