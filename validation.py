"""
Input validation for ledger forms and CLI arguments.

Raw user input is checked here before it reaches the ledger. All problems
in one submission are collected and reported together in
``LedgerValidationError.details["errors"]``.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple, Union

from exceptions import LedgerValidationError
from ledger_models import ItemDraft, TransactionType, coerce_timestamp, utc_now

logger = logging.getLogger(__name__)

COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")
MAX_NAME_LENGTH = 100
MAX_AMOUNT = 1_000_000_000  # Sanity check


def parse_amount(amount_value: Any, decimal_places: int = 2) -> Optional[float]:
    """
    Parse and normalize an amount value.

    Currency symbols, thousands separators and spaces are stripped.

    Args:
        amount_value: Amount value (string, number, or other)
        decimal_places: Rounding precision

    Returns:
        Float rounded to decimal_places, or None if parsing fails or the
        value is not finite
    """
    if amount_value is None or isinstance(amount_value, bool):
        return None

    if isinstance(amount_value, (int, float)):
        amount_float = float(amount_value)
    else:
        amount_str = str(amount_value).strip()
        if not amount_str:
            return None
        amount_str = amount_str.replace("$", "").replace(",", "").replace(" ", "")
        try:
            amount_float = float(amount_str)
        except (ValueError, TypeError):
            logger.warning("Failed to parse amount value '%s'", amount_value)
            return None

    if not math.isfinite(amount_float):
        return None
    return round(amount_float, decimal_places)


def parse_tags(tags: Union[None, str, Iterable[str]]) -> Tuple[str, ...]:
    """Accept a comma-separated string or an iterable of tags."""
    if tags is None:
        return ()
    if isinstance(tags, str):
        tags = tags.split(",")
    return tuple(tag.strip() for tag in tags if tag and tag.strip())


def _check_amount(amount: Any, errors: List[str]) -> Optional[float]:
    parsed = parse_amount(amount)
    if parsed is None:
        errors.append(f"Amount '{amount}' is not a valid number")
    elif parsed < 0:
        errors.append("Amount must not be negative")
    elif parsed > MAX_AMOUNT:
        errors.append("Amount seems unreasonably large")
    return parsed


def _check_name(name: Any, errors: List[str], label: str = "Name") -> str:
    text = "" if name is None else str(name).strip()
    if not text:
        errors.append(f"{label} is required")
    elif len(text) > MAX_NAME_LENGTH:
        errors.append(f"{label} must be at most {MAX_NAME_LENGTH} characters")
    return text


def validate_item_input(
    name: Any,
    amount: Any,
    category: Any,
    type: Any,
    date: Any = None,
    description: Optional[str] = None,
    tags: Union[None, str, Iterable[str]] = None,
    known_categories: Optional[Iterable[str]] = None
) -> ItemDraft:
    """
    Validate raw item fields and build an ItemDraft.

    Args:
        name: Item label
        amount: Amount as number or text (e.g. "$1,200.50")
        category: Category name
        type: 'income' or 'expense'
        date: Date, datetime or ISO string (defaults to now)
        description: Optional free text
        tags: Comma-separated string or iterable of tags
        known_categories: When given, expense categories must be one of these

    Returns:
        A validated ItemDraft

    Raises:
        LedgerValidationError: With every problem listed in details["errors"]
    """
    errors: List[str] = []

    clean_name = _check_name(name, errors)
    parsed_amount = _check_amount(amount, errors)

    transaction_type = None
    try:
        transaction_type = TransactionType.parse(type)
    except ValueError:
        errors.append(f"Type must be 'income' or 'expense', got '{type}'")

    clean_category = str(category or "").strip()
    if known_categories is not None and transaction_type is TransactionType.EXPENSE:
        allowed = set(known_categories)
        if clean_category not in allowed:
            errors.append(f"Unknown category '{clean_category}'")

    timestamp: Optional[datetime] = None
    try:
        timestamp = utc_now() if date in (None, "") else coerce_timestamp(date)
    except ValueError:
        errors.append(f"Date '{date}' is not a valid ISO date")

    if errors:
        raise LedgerValidationError("Invalid item input", details={"errors": errors})

    clean_description = (description or "").strip() or None
    return ItemDraft(
        name=clean_name,
        amount=parsed_amount,
        category=clean_category,
        date=timestamp,
        type=transaction_type,
        description=clean_description,
        tags=parse_tags(tags),
    )


def validate_category_input(
    name: Any,
    color: Any,
    limit: Any = None,
    existing_names: Optional[Iterable[str]] = None
) -> Tuple[str, str, Optional[float]]:
    """
    Validate raw category fields.

    Names already in use are rejected so each name joins to one category.

    Args:
        name: Category name
        color: Hex color such as '#ef4444'
        limit: Optional spending limit as number or text; blank means none
        existing_names: Names of other categories

    Returns:
        Tuple of (name, color, limit)

    Raises:
        LedgerValidationError: With every problem listed in details["errors"]
    """
    errors: List[str] = []

    clean_name = _check_name(name, errors, label="Category name")
    if clean_name and existing_names is not None and clean_name in set(existing_names):
        errors.append(f"Category '{clean_name}' already exists")

    clean_color = str(color or "").strip()
    if not COLOR_PATTERN.match(clean_color):
        errors.append(f"Color '{clean_color}' must look like #RRGGBB")

    parsed_limit = None
    if limit not in (None, ""):
        parsed_limit = _check_amount(limit, errors)

    if errors:
        raise LedgerValidationError("Invalid category input", details={"errors": errors})

    return clean_name, clean_color, parsed_limit
