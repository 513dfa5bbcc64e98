"""Free-text parsers for purchase and limit input.

Both line parsers accept a single message, normalise separators and either
return a validated schema object or raise one of the ``InputError``
subclasses with a message describing the expected format.
"""

from __future__ import annotations

import math
import re

from pydantic import BaseModel, ValidationError

from .errors import InvalidAmount, InvalidCategory, InvalidFormat
from .schemas import ParsedLimitInput, ParsedPurchaseInput

NOTE_SEPARATOR = " · "

PURCHASE_FORMAT_HINT = (
    "Use the format: `amount; category; note` (note is optional, separators `; , |`)."
)
LIMIT_FORMAT_HINT = "Limit format: `category; amount`. Example: Groceries; 15000"
PURCHASE_AMOUNT_HINT = "The amount must be a positive number."
LIMIT_AMOUNT_HINT = "The limit amount must be a positive number."
CATEGORY_HINT = "The category name must be between 2 and 120 characters long."

# A comma between two digits is a decimal separator, any other comma separates fields.
_DECIMAL_COMMA = re.compile(r"(?<=\d),(?=\d)")
_REPEATED_SPACES = re.compile(r" +")
_PURCHASE_SEPARATORS = re.compile(r"[;|,]")
_LIMIT_SEPARATORS = re.compile(r"[;|]")
_AMOUNT_NOISE = re.compile(r"[^\d.,]")
_LEADING_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def _normalise_decimal_comma(raw: str) -> str:
    return _DECIMAL_COMMA.sub(".", raw)


def _positive_number(raw: str, message: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise InvalidAmount(message) from exc
    if not math.isfinite(value) or value <= 0:
        raise InvalidAmount(message)
    return value


def _validate(schema: type[BaseModel], payload: dict[str, object], amount_message: str):
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        fields = {error["loc"][0] for error in exc.errors() if error.get("loc")}
        if "amount" in fields:
            raise InvalidAmount(amount_message) from exc
        raise InvalidCategory(CATEGORY_HINT) from exc


def parse_purchase_input(raw: str) -> ParsedPurchaseInput:
    """Parse ``amount; category; note?`` into a purchase entry."""
    # Decimal commas must become dots before the comma is used as a separator.
    cleaned = _REPEATED_SPACES.sub(" ", _normalise_decimal_comma(raw)).strip()
    parts = [chunk.strip() for chunk in _PURCHASE_SEPARATORS.split(cleaned)]

    if len(parts) < 2:
        raise InvalidFormat(PURCHASE_FORMAT_HINT)

    amount = _positive_number(parts[0], PURCHASE_AMOUNT_HINT)
    note = NOTE_SEPARATOR.join(part for part in parts[2:] if part) or None

    return _validate(
        ParsedPurchaseInput,
        {"amount": amount, "category": parts[1], "note": note},
        PURCHASE_AMOUNT_HINT,
    )


def parse_limit_input(raw: str) -> ParsedLimitInput:
    """Parse ``category; amount`` into a monthly limit entry."""
    cleaned = _normalise_decimal_comma(raw).strip()
    parts = [chunk.strip() for chunk in _LIMIT_SEPARATORS.split(cleaned)]

    if len(parts) < 2:
        raise InvalidFormat(LIMIT_FORMAT_HINT)

    amount = _positive_number(parts[1], LIMIT_AMOUNT_HINT)

    return _validate(
        ParsedLimitInput,
        {"category": parts[0], "amount": amount},
        LIMIT_AMOUNT_HINT,
    )


def parse_amount(raw: str, message: str = PURCHASE_AMOUNT_HINT) -> float:
    """Read a bare amount typed during a guided step, e.g. ``1 250,50 ₽``."""
    cleaned = _AMOUNT_NOISE.sub("", raw.strip()).replace(",", ".", 1)
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        raise InvalidAmount(message)
    return _positive_number(match.group(0), message)
