"""Money type shared by the entities."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from pydantic import BeforeValidator

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce a number (or numeric string) to a 2-place Decimal."""
    if isinstance(value, float):
        # go through str so 0.1 stays 0.1
        value = repr(value)
    try:
        return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a money amount: {value!r}") from e


Money = Annotated[Decimal, BeforeValidator(to_money)]
